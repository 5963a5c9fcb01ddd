# file: tiss_editor/epilogo.py
from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import EpilogoError
from .xml_model import codec_for, detect_encoding

logger = logging.getLogger(__name__)

# Tag de fechamento onde o epílogo é inserido (primeira encontrada vence)
EPILOGO_WRAPPERS = ('</ans:prestadorParaOperadora>', '</ans:tissLoteGuias>')

_EPILOGO_RE = re.compile(r'<(?:ans:)?epilogo\b[^>]*?(?:/>|>[\s\S]*?</(?:ans:)?epilogo>)')
_HASH_RE = re.compile(r'<(?:ans:)?hash>\s*(.*?)\s*</(?:ans:)?hash>')


class HashStatus(str, Enum):
    VALID = 'valido'
    INVALID = 'invalido'
    MISSING = 'ausente'


@dataclass(frozen=True)
class HashReport:
    status: HashStatus
    declared: Optional[str] = None
    calculated: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.status is HashStatus.VALID

    @property
    def message(self) -> str:
        if self.status is HashStatus.MISSING:
            return 'ALERTA: Tag <ans:hash> não encontrada no documento.'
        if self.status is HashStatus.VALID:
            return 'Hash Válido: O hash MD5 do documento está correto.'
        return f'ERRO: Hash Inválido! Hash no documento: {self.declared} | Hash calculado: {self.calculated}'


def strip_epilogo(xml_content: str) -> str:
    return _EPILOGO_RE.sub('', xml_content)


def calculate_hash(xml_content: str) -> str:
    """
    MD5 do conteúdo sem o epílogo, sobre os bytes no encoding declarado
    (ISO-8859-1 / UTF-8 / Windows-1252; sem declaração => UTF-8).
    """
    content = strip_epilogo(xml_content)
    codec = codec_for(detect_encoding(content))
    return hashlib.md5(content.encode(codec, errors='xmlcharrefreplace')).hexdigest()


def add_epilogo(xml_content: str, strict: bool = False) -> str:
    """
    Remove epílogo anterior, calcula o hash e insere
    <ans:epilogo><ans:hash>…</ans:hash></ans:epilogo> antes do fechamento de
    ans:prestadorParaOperadora (ou ans:tissLoteGuias).

    Sem tag de fechamento conhecida o conteúdo volta sem epílogo; com
    strict=True levanta EpilogoError.
    """
    content = strip_epilogo(xml_content)
    digest = calculate_hash(content)

    for closing_tag in EPILOGO_WRAPPERS:
        index = content.rfind(closing_tag)
        if index != -1:
            epilogo = f'<ans:epilogo><ans:hash>{digest}</ans:hash></ans:epilogo>'
            logger.debug('Epílogo inserido antes de %s (hash %s).', closing_tag, digest)
            return content[:index] + epilogo + content[index:]

    logger.warning('Epílogo não inserido: nenhuma tag de fechamento %s encontrada.', ' / '.join(EPILOGO_WRAPPERS))
    if strict:
        raise EpilogoError('Documento sem ans:prestadorParaOperadora ou ans:tissLoteGuias para receber o epílogo.')
    return content


def validate_hash(xml_content: str) -> HashReport:
    m = _HASH_RE.search(xml_content)
    if not m:
        return HashReport(HashStatus.MISSING)
    declared = m.group(1)
    calculated = calculate_hash(xml_content)
    if declared == calculated:
        return HashReport(HashStatus.VALID, declared, calculated)
    logger.warning('Hash inválido: documento=%s calculado=%s', declared, calculated)
    return HashReport(HashStatus.INVALID, declared, calculated)

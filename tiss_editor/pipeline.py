# file: tiss_editor/pipeline.py
from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Tuple

from .epilogo import add_epilogo, validate_hash
from .errors import TissError, TissParsingError
from .guides import Guide, extract_guides
from .normalizer import (
    CorrectionRule,
    apply_correction_rules,
    clean_null_values,
    standardize_cbos,
    standardize_tipo_atendimento,
)
from .structure import fix_structure
from .xml_model import check_security, codec_for, detect_encoding

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 50 * 1024 * 1024  # 50MB


@dataclass
class PipelineResult:
    content: str
    changes: int
    guides: List[Guide] = field(default_factory=list)
    total: Decimal = Decimal('0')
    sealed: bool = False
    log: List[Tuple[str, int]] = field(default_factory=list)


@dataclass
class BatchResult:
    content: bytes
    files: Dict[str, PipelineResult] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def changes(self) -> int:
        return sum(r.changes for r in self.files.values())

    @property
    def guides(self) -> List[Guide]:
        return [g for r in self.files.values() for g in r.guides]

    @property
    def total(self) -> Decimal:
        return sum((r.total for r in self.files.values()), Decimal('0'))


# ----------------------------
# Bytes <-> texto
# ----------------------------
def check_size(data: bytes) -> None:
    if len(data) > MAX_FILE_SIZE:
        raise TissParsingError(f'O arquivo deve ter no máximo {MAX_FILE_SIZE // 1024 // 1024}MB.')


def decode_xml_bytes(data: bytes) -> str:
    """Decodifica pelo encoding declarado no cabeçalho (sem declaração => UTF-8)."""
    if data.startswith(b'\xef\xbb\xbf'):
        return data[3:].decode('utf-8', errors='replace')
    head = data[:500].decode('ascii', errors='ignore')
    return data.decode(codec_for(detect_encoding(head)), errors='replace')


def encode_xml_text(content: str) -> bytes:
    return content.encode(codec_for(detect_encoding(content)), errors='xmlcharrefreplace')


# ----------------------------
# Pipeline automático
# ----------------------------
def process_xml(xml_content: str, rules: Iterable[CorrectionRule] = ()) -> PipelineResult:
    """
    Modo automático, na ordem:
      limpeza de 'NULL' -> estrutura -> tipoAtendimento -> CBOS -> regras do perfil
      -> epílogo (hash) -> extração das guias.
    Só a proteção de entidades e conteúdo que não é XML interrompem o processamento.
    """
    stripped = xml_content.strip()
    if not stripped.startswith('<'):
        raise TissParsingError('O arquivo não contém XML válido.')
    check_security(xml_content)

    content = xml_content
    steps: List[Tuple[str, int]] = []
    for step_name, step in (
        ('Limpeza de NULL', clean_null_values),
        ('Estrutura', fix_structure),
        ('tipoAtendimento', standardize_tipo_atendimento),
        ('CBOS', standardize_cbos),
    ):
        content, changes = step(content)
        steps.append((step_name, changes))

    rules = list(rules)
    if rules:
        content, changes = apply_correction_rules(content, rules)
        steps.append(('Regras do perfil', changes))

    content = add_epilogo(content)
    sealed = validate_hash(content).valid
    if not sealed:
        logger.warning('Documento processado sem epílogo válido.')

    guides = extract_guides(content)
    total = sum((g.valor_total_geral for g in guides), Decimal('0'))
    changes = sum(n for _, n in steps)
    logger.info('Processamento: %d correções aplicadas, %d guia(s), total %s.', changes, len(guides), total)
    return PipelineResult(content, changes, guides, total, sealed, steps)


def process_zip(data: bytes, rules: Iterable[CorrectionRule] = ()) -> BatchResult:
    """
    Processa cada .xml do ZIP de forma independente e reempacota a saída.
    Arquivo recusado/ilegível é registrado em `errors` e não interrompe o lote.
    """
    check_size(data)
    rules = list(rules)
    out = io.BytesIO()
    result = BatchResult(content=b'')

    try:
        source = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise TissParsingError(f'ZIP inválido: {e}') from e

    with source, zipfile.ZipFile(out, 'w', zipfile.ZIP_DEFLATED) as target:
        for info in source.infolist():
            if info.is_dir() or PurePosixPath(info.filename).suffix.lower() != '.xml':
                continue
            try:
                processed = process_xml(decode_xml_bytes(source.read(info)), rules)
            except TissError as e:
                logger.error('Arquivo %s não processado: %s', info.filename, e)
                result.errors[info.filename] = str(e)
                continue
            target.writestr(info.filename, encode_xml_text(processed.content))
            result.files[info.filename] = processed

    result.content = out.getvalue()
    logger.info('%d arquivo(s) processado(s), %d correções aplicadas, %d com erro.',
                len(result.files), result.changes, len(result.errors))
    return result


def zip_single_xml(file_name: str, content: str) -> bytes:
    """Empacota um único XML processado em ZIP (saída padrão do modo automático)."""
    base = PurePosixPath(file_name).stem
    out = io.BytesIO()
    with zipfile.ZipFile(out, 'w', zipfile.ZIP_DEFLATED) as target:
        target.writestr(f'{base}.xml', encode_xml_text(content))
    return out.getvalue()

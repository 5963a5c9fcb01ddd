# file: tiss_editor/guides.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .errors import TissSecurityError
from .xml_model import (
    Document,
    GUIDE_TAGS,
    Element,
    ParseStatus,
    SerializeMode,
    find_guides,
    find_nested_value,
    parse_document,
    serialize,
)

logger = logging.getLogger(__name__)

NOT_AVAILABLE = 'N/A'

NUMERO_GUIA_TAGS = ('ans:numeroGuiaPrestador', 'numeroGuiaPrestador')
NUMERO_CARTEIRA_TAGS = ('ans:numeroCarteira', 'numeroCarteira')
NOME_PROFISSIONAL_TAGS = ('ans:nomeProfissional', 'nomeProfissional')
DATA_EXECUCAO_TAGS = ('ans:dataExecucao', 'dataExecucao')
VALOR_TOTAL_GERAL_TAGS = ('ans:valorTotalGeral', 'valorTotalGeral')
VALOR_TOTAL_TAGS = ('ans:valorTotal', 'valorTotal')
NUMERO_LOTE_TAGS = ('ans:numeroLote', 'numeroLote')

_NON_NUMERIC_RE = re.compile(r'[^0-9.,]')
_THOUSANDS_TAIL_RE = re.compile(r'[.,]\d{3}$')
_NUMBER_PREFIX_RE = re.compile(r'\d+(?:\.\d*)?|\.\d+')

_GUIDE_RE = re.compile(r'<(ans:)?guiaSP-SADT\b[^>]*>([\s\S]*?)</(?:ans:)?guiaSP-SADT>')


@dataclass
class Guide:
    """Uma guia SP-SADT do lote. `id` é o numeroGuiaPrestador (sem unicidade garantida)."""
    id: str
    numero_guia_prestador: str
    numero_carteira: str
    nome_profissional: str
    valor_total_geral: Decimal
    data_execucao: str

    def as_dict(self) -> Dict:
        """Chaves com os nomes das tags TISS (para tabela/relatório)."""
        return {
            'id': self.id,
            'numeroGuiaPrestador': self.numero_guia_prestador,
            'numeroCarteira': self.numero_carteira,
            'nomeProfissional': self.nome_profissional,
            'valorTotalGeral': self.valor_total_geral,
            'dataExecucao': self.data_execucao,
        }


@dataclass
class GuideExtraction:
    guides: List[Guide] = field(default_factory=list)
    status: ParseStatus = ParseStatus.OK
    reason: str = ''
    numeric_fallbacks: int = 0

    @property
    def degraded(self) -> bool:
        return self.status is ParseStatus.DEGRADED


# ----------------------------
# Valores monetários
# ----------------------------
def _parse_valor(raw: Optional[str], numero_guia: str = NOT_AVAILABLE) -> Tuple[Decimal, bool]:
    """(valor, ok). ok=False quando o texto não pôde ser interpretado e virou 0."""
    if not raw or not raw.strip():
        return Decimal('0'), True

    s = _NON_NUMERIC_RE.sub('', raw.strip())
    last_comma = s.rfind(',')
    last_dot = s.rfind('.')

    if last_comma != -1 and last_dot != -1:
        if last_comma > last_dot:
            # 1.234,56 (brasileiro): vírgula decimal
            s = s.replace('.', '').replace(',', '.')
        else:
            # 1,234.56 (americano): ponto decimal
            s = s.replace(',', '')
    elif last_comma != -1 or last_dot != -1:
        # Um só tipo de separador: grupo final de 3 dígitos => milhar
        sep = ',' if last_comma != -1 else '.'
        if _THOUSANDS_TAIL_RE.search(s):
            s = s.replace(sep, '')
        else:
            s = s.replace(sep, '.')

    m = _NUMBER_PREFIX_RE.match(s)
    if not m:
        logger.warning('Falha ao parsear valorTotalGeral para guia %s. Valor bruto: "%s", sanitizado: "%s". Usando 0.',
                       numero_guia, raw, s)
        return Decimal('0'), False
    return Decimal(m.group(0)), True


def parse_valor(raw: Optional[str]) -> Decimal:
    """
    Converte valor monetário com separadores ambíguos:
      '1.234,56' -> 1234.56 | '1,234.56' -> 1234.56 | '1.000' -> 1000
      '123,45'   -> 123.45  | '12345'    -> 12345
    Texto não interpretável => 0 (nunca levanta).
    """
    return _parse_valor(raw)[0]


# ----------------------------
# Extração (árvore)
# ----------------------------
def _guide_from_element(guide: Element) -> Tuple[Guide, bool]:
    numero = find_nested_value(guide, NUMERO_GUIA_TAGS) or NOT_AVAILABLE
    raw_valor = find_nested_value(guide, VALOR_TOTAL_GERAL_TAGS)
    if not raw_valor:
        raw_valor = find_nested_value(guide, VALOR_TOTAL_TAGS)
    valor, ok = _parse_valor(raw_valor, numero)
    return Guide(
        id=numero,
        numero_guia_prestador=numero,
        numero_carteira=find_nested_value(guide, NUMERO_CARTEIRA_TAGS) or NOT_AVAILABLE,
        nome_profissional=find_nested_value(guide, NOME_PROFISSIONAL_TAGS) or NOT_AVAILABLE,
        valor_total_geral=valor,
        data_execucao=find_nested_value(guide, DATA_EXECUCAO_TAGS) or NOT_AVAILABLE,
    ), ok


def guides_from_document(document: Document) -> GuideExtraction:
    result = GuideExtraction()
    elements = find_guides(document.root)
    logger.debug('extract_guides (parser): %d guia(s) encontrada(s).', len(elements))
    if not elements:
        logger.warning("extract_guides (parser): nenhuma tag 'ans:guiaSP-SADT' ou 'guiaSP-SADT' encontrada.")
    for el in elements:
        guide, ok = _guide_from_element(el)
        result.guides.append(guide)
        if not ok:
            result.numeric_fallbacks += 1
    return result


# ----------------------------
# Extração (fallback por regex)
# ----------------------------
def _regex_value(content: str, tag: str) -> Optional[str]:
    for name in (f'ans:{tag}', tag):
        m = re.search(rf'<{name}>(.*?)</{name}>', content)
        if m:
            return m.group(1).strip()
    return None


def _guides_by_regex(xml_content: str, reason: str) -> GuideExtraction:
    result = GuideExtraction(status=ParseStatus.DEGRADED, reason=reason)
    for m in _GUIDE_RE.finditer(xml_content):
        body = m.group(2)
        numero = _regex_value(body, 'numeroGuiaPrestador') or NOT_AVAILABLE
        raw_valor = _regex_value(body, 'valorTotalGeral') or _regex_value(body, 'valorTotal')
        valor, ok = _parse_valor(raw_valor, numero)
        if not ok:
            result.numeric_fallbacks += 1
        result.guides.append(Guide(
            id=numero,
            numero_guia_prestador=numero,
            numero_carteira=_regex_value(body, 'numeroCarteira') or NOT_AVAILABLE,
            nome_profissional=_regex_value(body, 'nomeProfissional') or NOT_AVAILABLE,
            valor_total_geral=valor,
            data_execucao=_regex_value(body, 'dataExecucao') or NOT_AVAILABLE,
        ))
    logger.warning('extract_guides (regex fallback): %d guia(s) extraída(s) de XML malformado (%s).',
                   len(result.guides), reason)
    return result


def extract_guides_result(xml_content: str) -> GuideExtraction:
    """
    Extrai as guias indicando o caminho usado:
      - status OK: parsing estruturado
      - status DEGRADED: XML malformado, extração por regex (menor fidelidade)
    Documento recusado pela proteção de entidades => TissSecurityError.
    """
    outcome = parse_document(xml_content)
    if outcome.status is ParseStatus.REJECTED:
        raise TissSecurityError(outcome.reason)
    if not outcome.ok:
        return _guides_by_regex(xml_content, outcome.reason)
    return guides_from_document(outcome.document)


def extract_guides(xml_content: str) -> List[Guide]:
    return extract_guides_result(xml_content).guides


def extract_lot_number(xml_content: str) -> Optional[str]:
    """numeroLote do documento (com ou sem prefixo)."""
    outcome = parse_document(xml_content)
    if outcome.status is ParseStatus.REJECTED:
        raise TissSecurityError(outcome.reason)
    if outcome.ok:
        return find_nested_value(outcome.document.root, NUMERO_LOTE_TAGS) or None
    logger.warning('extract_lot_number: usando regex (%s).', outcome.reason)
    return _regex_value(xml_content, 'numeroLote') or None


# ----------------------------
# Exclusão de guias
# ----------------------------
def remove_guides(document: Document, guide_id: str) -> int:
    """
    Remove da árvore (in place) toda guia cujo numeroGuiaPrestador == guide_id.
    Retorna quantas foram removidas. Não recalcula o hash do epílogo.
    """
    def _remove(element: Element) -> int:
        removed = 0
        kept = []
        for child in element.children:
            if (isinstance(child, Element) and child.name in GUIDE_TAGS
                    and find_nested_value(child, NUMERO_GUIA_TAGS) == guide_id):
                removed += 1
                continue
            kept.append(child)
        element.children = kept
        for child in element.elements():
            removed += _remove(child)
        return removed

    return _remove(document.root)


def delete_guide(xml_content: str, guide_id: str) -> str:
    """
    Exclui a(s) guia(s) com o numeroGuiaPrestador informado e reconstrói o XML (compacto).
    Guia inexistente ou XML malformado => conteúdo devolvido sem alteração.
    """
    outcome = parse_document(xml_content)
    if outcome.status is ParseStatus.REJECTED:
        raise TissSecurityError(outcome.reason)
    if not outcome.ok:
        logger.error('Erro ao excluir guia %s: XML não pôde ser parseado (%s).', guide_id, outcome.reason)
        return xml_content

    removed = remove_guides(outcome.document, guide_id)
    if not removed:
        logger.warning('Guia com ID %s não encontrada para exclusão.', guide_id)
        return xml_content
    if removed > 1:
        logger.warning('%d guias com o mesmo numeroGuiaPrestador %s foram excluídas.', removed, guide_id)
    return serialize(outcome.document, SerializeMode.COMPACT)

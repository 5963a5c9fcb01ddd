# file: tiss_editor/normalizer.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .errors import ConfigError, TissSecurityError
from .structure import ProcessingResult
from .xml_model import (
    GUIDE_TAGS,
    Element,
    ParseStatus,
    SerializeMode,
    local_name,
    parse_document,
    serialize,
)

logger = logging.getLogger(__name__)

CANONICAL_TIPO_ATENDIMENTO = '23'
CANONICAL_CBOS = '225125'

OPERATORS = ('equals', 'contains', 'startsWith', 'endsWith', 'isEmpty')

_NULL_VALUE_RE = re.compile(r'(<[a-zA-Z:_][\w:.-]*>)\s*NULL\s*(</[a-zA-Z:_][\w:.-]*>)', re.IGNORECASE)


# ----------------------------
# Placeholders 'NULL'
# ----------------------------
def clean_null_values(xml_content: str) -> ProcessingResult:
    """<tag>NULL</tag> (qualquer caixa) => <tag></tag>."""
    content, changes = _NULL_VALUE_RE.subn(r'\1\2', xml_content)
    logger.info("Limpos %d valores 'NULL'.", changes)
    return ProcessingResult(content, changes)


# ----------------------------
# Padronização de campos
# ----------------------------
def _field_patterns(field_tag: str) -> Tuple[re.Pattern, re.Pattern]:
    tag = re.escape(field_tag)
    any_value = re.compile(rf'<{tag}>(.*?)</{tag}>|<{tag}\s*/>', re.S)
    empty_value = re.compile(rf'<{tag}>\s*(?:NULL)?\s*</{tag}>|<{tag}\s*/>')
    return any_value, empty_value


def standardize_field(
    xml_content: str,
    field_tag: str,
    canonical_value: str,
    remove_empty: bool = False,
) -> ProcessingResult:
    """
    Reescreve todas as ocorrências de `field_tag` para `canonical_value`
    (vazias, 'NULL', auto-fechadas ou simplesmente diferentes).

    Com remove_empty=True as tags vazias/NULL/auto-fechadas são REMOVIDAS
    antes da padronização, em vez de receberem o valor canônico.
    Só conta como mudança o que de fato mudou de valor.
    """
    any_value, empty_value = _field_patterns(field_tag)
    canonical = f'<{field_tag}>{canonical_value}</{field_tag}>'
    content = xml_content
    changes = 0

    if remove_empty:
        content, removed = empty_value.subn('', content)
        changes += removed

    def _rewrite(m: re.Match) -> str:
        nonlocal changes
        value = m.group(1)
        if value is not None and value.strip() == canonical_value:
            # mesmo valor com espaços ao redor: mantém o texto original
            return m.group(0)
        changes += 1
        return canonical

    content = any_value.sub(_rewrite, content)
    if changes:
        logger.info("standardize_field: %d ocorrência(s) de <%s> padronizada(s) para '%s'.",
                    changes, field_tag, canonical_value)
    return ProcessingResult(content, changes)


def standardize_tipo_atendimento(xml_content: str) -> ProcessingResult:
    return standardize_field(xml_content, 'ans:tipoAtendimento', CANONICAL_TIPO_ATENDIMENTO)


def standardize_cbos(xml_content: str) -> ProcessingResult:
    """CBOS vazio/NULL é removido; os demais viram '225125'."""
    return standardize_field(xml_content, 'ans:CBOS', CANONICAL_CBOS, remove_empty=True)


# ----------------------------
# Regras de correção (perfis)
# ----------------------------
@dataclass(frozen=True)
class RuleCondition:
    field: str
    operator: str
    value: str = ''

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise ConfigError(f"Operador de regra inválido: '{self.operator}'.")

    def matches(self, value: str) -> bool:
        if self.operator == 'equals':
            return value == self.value
        if self.operator == 'contains':
            return self.value in value
        if self.operator == 'startsWith':
            return value.startswith(self.value)
        if self.operator == 'endsWith':
            return value.endswith(self.value)
        return not value.strip()


@dataclass(frozen=True)
class RuleAction:
    field: str
    new_value: str


@dataclass(frozen=True)
class CorrectionRule:
    condition: RuleCondition
    action: RuleAction
    id: str = ''
    name: str = ''
    description: str = ''
    enabled: bool = True


def _matches_with_scope(element: Element, field_name: str, scope: Element) -> List[Tuple[Element, Element]]:
    """Pares (elemento que casa com o campo, guia que o contém ou a raiz)."""
    out: List[Tuple[Element, Element]] = []
    for child in element.elements():
        child_scope = child if child.name in GUIDE_TAGS else scope
        if child.local_name == field_name:
            out.append((child, child_scope))
        out.extend(_matches_with_scope(child, field_name, child_scope))
    return out


def _apply_rule(root: Element, rule: CorrectionRule) -> int:
    condition_field = local_name(rule.condition.field)
    action_field = local_name(rule.action.field)
    changes = 0

    for element, scope in _matches_with_scope(root, condition_field, root):
        if not rule.condition.matches(element.value):
            continue
        if action_field == condition_field:
            targets = [element]
        else:
            targets = [el for el in scope.iter() if el.local_name == action_field]
        for target in targets:
            if any(target.elements()):
                logger.debug("Regra '%s': <%s> tem filhos, ignorado.", rule.name or rule.id, target.name)
                continue
            if target.value != rule.action.new_value:
                target.set_value(rule.action.new_value)
                changes += 1
    return changes


def apply_correction_rules(xml_content: str, rules: Iterable[CorrectionRule]) -> ProcessingResult:
    """
    Aplica as regras habilitadas do perfil sobre a árvore do documento.
    Falha de parsing => documento devolvido sem alteração.
    """
    active = [r for r in rules if r.enabled]
    if not active:
        return ProcessingResult(xml_content, 0)

    outcome = parse_document(xml_content)
    if outcome.status is ParseStatus.REJECTED:
        raise TissSecurityError(outcome.reason)
    if not outcome.ok:
        logger.warning('Regras de correção não aplicadas: XML não pôde ser parseado (%s).', outcome.reason)
        return ProcessingResult(xml_content, 0)

    changes = 0
    for rule in active:
        applied = _apply_rule(outcome.document.root, rule)
        logger.debug("Regra '%s': %d alteração(ões).", rule.name or rule.id, applied)
        changes += applied

    if not changes:
        return ProcessingResult(xml_content, 0)
    return ProcessingResult(serialize(outcome.document, SerializeMode.COMPACT), changes)


# ----------------------------
# Localizar / substituir (modo manual)
# ----------------------------
def replace_next(xml_content: str, find_text: str, replace_text: str) -> ProcessingResult:
    if not find_text or find_text not in xml_content:
        return ProcessingResult(xml_content, 0)
    return ProcessingResult(xml_content.replace(find_text, replace_text, 1), 1)


def replace_all(xml_content: str, find_text: str, replace_text: str) -> ProcessingResult:
    if not find_text:
        return ProcessingResult(xml_content, 0)
    count = xml_content.count(find_text)
    if not count:
        return ProcessingResult(xml_content, 0)
    return ProcessingResult(xml_content.replace(find_text, replace_text), count)

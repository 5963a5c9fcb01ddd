# file: tiss_editor/session.py
"""
Estado do modo manual: conteúdo atual, pilha de desfazer e conferência do
total das guias contra o arquivo original.

O front-end guarda uma ManualSession em st.session_state; toda edição passa
por aqui para entrar no histórico.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, List

from .epilogo import HashReport, add_epilogo, validate_hash
from .guides import delete_guide, extract_guides
from .normalizer import clean_null_values, replace_all, replace_next, standardize_cbos, standardize_tipo_atendimento
from .report import guides_total
from .structure import ProcessingResult, fix_structure

logger = logging.getLogger(__name__)

MAX_HISTORY = 50

# rótulo do botão -> etapa de correção
MANUAL_ACTIONS: Dict[str, Callable[[str], ProcessingResult]] = {
    'Limpar NULL': clean_null_values,
    'Corrigir estrutura': fix_structure,
    'Padronizar tipoAtendimento': standardize_tipo_atendimento,
    'Padronizar CBOS': standardize_cbos,
}


@dataclass(frozen=True)
class Conferencia:
    original_total: Decimal
    current_total: Decimal

    @property
    def difference(self) -> Decimal:
        return self.current_total - self.original_total

    @property
    def matches(self) -> bool:
        return self.difference == 0


@dataclass
class ManualSession:
    name: str
    content: str
    original_total: Decimal = Decimal('0')
    history: List[str] = field(default_factory=list)

    @classmethod
    def open(cls, name: str, content: str) -> 'ManualSession':
        """Guarda o total das guias no carregamento (base da conferência)."""
        return cls(name, content, guides_total(extract_guides(content)))

    def _commit(self, new_content: str) -> bool:
        if new_content == self.content:
            return False
        self.history.append(self.content)
        del self.history[:-MAX_HISTORY]
        self.content = new_content
        return True

    @property
    def can_undo(self) -> bool:
        return bool(self.history)

    def undo(self) -> bool:
        if not self.history:
            return False
        self.content = self.history.pop()
        return True

    def apply(self, action: str) -> ProcessingResult:
        result = MANUAL_ACTIONS[action](self.content)
        self._commit(result.content)
        logger.info('%s: %d alteração(ões) em %s', action, result.changes, self.name)
        return result

    def remove_guide(self, guide_id: str) -> bool:
        return self._commit(delete_guide(self.content, guide_id))

    def replace(self, find_text: str, replace_text: str, every: bool = False) -> int:
        result = (replace_all if every else replace_next)(self.content, find_text, replace_text)
        self._commit(result.content)
        return result.changes

    def reseal(self) -> HashReport:
        """Recalcula o epílogo. O relatório diz se o hash gravado confere."""
        sealed = add_epilogo(self.content)
        self._commit(sealed)
        report = validate_hash(sealed)
        if not report.valid:
            logger.warning('Hash não gravado/confirmado em %s: %s', self.name, report.message)
        return report

    def conferencia(self) -> Conferencia:
        return Conferencia(self.original_total, guides_total(extract_guides(self.content)))

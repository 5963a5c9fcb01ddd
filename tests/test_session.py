"""
Testes do estado do modo manual: correções por botão, desfazer,
conferência de totais e recálculo do hash.
"""

import re
from decimal import Decimal

from conftest import make_document, make_guide
from tiss_editor.epilogo import HashStatus, validate_hash
from tiss_editor.guides import extract_guides
from tiss_editor.session import MANUAL_ACTIONS, MAX_HISTORY, ManualSession


# ============================================================================
# Correções e desfazer
# ============================================================================

class TestActions:
    def test_each_action_recorded_and_undone(self, dirty_xml):
        session = ManualSession.open('lote.xml', dirty_xml)
        for action in ('Limpar NULL', 'Padronizar tipoAtendimento', 'Padronizar CBOS'):
            assert session.apply(action).changes > 0
        assert 'NULL' not in session.content
        assert len(session.history) == 3

        while session.can_undo:
            session.undo()
        assert session.content == dirty_xml

    def test_structure_action(self, sample_xml):
        session = ManualSession.open('lote.xml', sample_xml.replace('<ans:numeroLote>', 'ans:<ans:numeroLote>'))
        assert session.apply('Corrigir estrutura').changes == 1
        assert session.content == sample_xml

    def test_no_change_not_in_history(self, sample_xml):
        session = ManualSession.open('lote.xml', sample_xml)
        assert session.apply('Corrigir estrutura').changes == 0
        assert not session.can_undo
        assert not session.undo()

    def test_all_buttons_registered(self):
        assert list(MANUAL_ACTIONS) == ['Limpar NULL', 'Corrigir estrutura',
                                        'Padronizar tipoAtendimento', 'Padronizar CBOS']

    def test_history_bounded(self):
        session = ManualSession('a.xml', '<a>0</a>')
        for i in range(MAX_HISTORY + 5):
            session.replace(f'>{i}<', f'>{i + 1}<')
        assert len(session.history) == MAX_HISTORY
        assert session.content == f'<a>{MAX_HISTORY + 5}</a>'

    def test_replace_next_and_all(self):
        session = ManualSession('a.xml', '<a>x</a><b>x</b>')
        assert session.replace('x', 'y') == 1
        assert session.content == '<a>y</a><b>x</b>'
        assert session.replace('x', 'z', every=True) == 1
        assert session.replace('nada', 'z') == 0
        session.undo()
        assert session.content == '<a>y</a><b>x</b>'


# ============================================================================
# Conferência
# ============================================================================

class TestConferencia:
    def test_original_total_kept_after_delete(self, sample_xml):
        session = ManualSession.open('lote.xml', sample_xml)
        assert session.remove_guide('1002')
        conf = session.conferencia()
        assert conf.original_total == Decimal('450.00')
        assert conf.current_total == Decimal('300.00')
        assert conf.difference == Decimal('-150.00')
        assert not conf.matches

        session.undo()
        assert session.conferencia().matches

    def test_unknown_guide_not_recorded(self, sample_xml):
        session = ManualSession.open('lote.xml', sample_xml)
        assert not session.remove_guide('9999')
        assert not session.can_undo


# ============================================================================
# Recalcular hash
# ============================================================================

class TestReseal:
    def test_valid_after_edit(self, sample_xml):
        session = ManualSession.open('lote.xml', sample_xml)
        session.remove_guide('1001')
        report = session.reseal()
        assert report.valid
        assert validate_hash(session.content).valid
        assert [g.id for g in extract_guides(session.content)] == ['1002', '1003']

    def test_without_wrapper_reports_missing(self):
        xml = ('<ans:mensagemTISS xmlns:ans="http://www.ans.gov.br/padroes/tiss/schemas">'
               + make_guide('1', '10,00') + '</ans:mensagemTISS>')
        session = ManualSession.open('solto.xml', xml)
        report = session.reseal()
        assert not report.valid
        assert report.status is HashStatus.MISSING
        assert session.content == xml

    def test_reseal_replaces_stale_hash(self):
        xml = make_document(make_guide('1', '10,00'), make_guide('2', '20,00'))
        session = ManualSession.open('lote.xml', xml)
        session.reseal()
        session.remove_guide('2')
        assert not validate_hash(session.content).valid
        assert session.reseal().valid
        assert len(re.findall(r'<ans:hash>', session.content)) == 1

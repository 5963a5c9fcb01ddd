"""
Testes de ponta a ponta do modo automático (XML único e lote ZIP).
"""

import io
import re
import zipfile
from decimal import Decimal

import pytest

from conftest import make_document, make_guide
from tiss_editor.epilogo import validate_hash
from tiss_editor.errors import TissParsingError, TissSecurityError
from tiss_editor.guides import extract_guides
from tiss_editor.normalizer import CorrectionRule, RuleAction, RuleCondition
from tiss_editor.pipeline import (
    MAX_FILE_SIZE,
    check_size,
    decode_xml_bytes,
    process_xml,
    process_zip,
    zip_single_xml,
)


def _zip(members):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buffer.getvalue()


# ============================================================================
# process_xml
# ============================================================================

class TestProcessXml:
    def test_end_to_end(self, dirty_xml):
        assert sum(g.valor_total_geral for g in extract_guides(dirty_xml)) == Decimal('450.00')

        result = process_xml(dirty_xml)
        content = result.content

        assert set(re.findall(r'<ans:tipoAtendimento>(.*?)</ans:tipoAtendimento>', content)) == {'23'}
        assert re.findall(r'<ans:CBOS>(.*?)</ans:CBOS>', content) == ['225125']
        assert 'NULL' not in content
        assert result.sealed
        assert validate_hash(content).valid

        assert [g.id for g in result.guides] == ['1001', '1002', '1003']
        assert result.total == Decimal('450.00')
        assert sum(g.valor_total_geral for g in extract_guides(content)) == Decimal('450.00')

    def test_change_log(self, dirty_xml):
        result = process_xml(dirty_xml)
        assert dict(result.log) == {
            'Limpeza de NULL': 2,
            'Estrutura': 0,
            'tipoAtendimento': 2,
            'CBOS': 3,
        }
        assert result.changes == 7

    def test_structure_repaired_before_parsing(self, sample_xml):
        broken = sample_xml.replace('<ans:numeroLote>', 'ans:<ans:numeroLote>')
        result = process_xml(broken)
        assert dict(result.log)['Estrutura'] == 1
        assert len(result.guides) == 3

    def test_rules_applied(self, sample_xml):
        rule = CorrectionRule(RuleCondition('numeroGuiaPrestador', 'equals', '1003'),
                              RuleAction('numeroCarteira', '999'), id='r1')
        result = process_xml(sample_xml, [rule])
        assert dict(result.log)['Regras do perfil'] == 1
        assert [g.numero_carteira for g in result.guides] == ['0001234500', '0001234500', '999']
        assert validate_hash(result.content).valid

    def test_unsealed_without_wrapper(self):
        result = process_xml('<root><ans:tipoAtendimento>NULL</ans:tipoAtendimento></root>')
        assert not result.sealed
        assert result.guides == []

    def test_not_xml(self):
        with pytest.raises(TissParsingError):
            process_xml('isto não é xml')

    def test_security_rejected(self, entity_xml):
        with pytest.raises(TissSecurityError):
            process_xml(entity_xml)


# ============================================================================
# Bytes / ZIP
# ============================================================================

class TestDecode:
    def test_declared_iso(self, sample_xml):
        assert decode_xml_bytes(sample_xml.encode('iso-8859-1')) == sample_xml

    def test_utf8_bom(self):
        assert decode_xml_bytes('\ufeff<a>ç</a>'.encode('utf-8')) == '<a>ç</a>'

    def test_size_limit(self):
        check_size(b'x' * 10)
        with pytest.raises(TissParsingError):
            check_size(b'x' * (MAX_FILE_SIZE + 1))


class TestProcessZip:
    def test_members_processed_independently(self, dirty_xml, entity_xml):
        data = _zip({
            'lote1.xml': dirty_xml.encode('iso-8859-1'),
            'ruim.xml': entity_xml.encode('utf-8'),
            'leia-me.txt': b'ignorado',
        })
        batch = process_zip(data)

        assert list(batch.files) == ['lote1.xml']
        assert list(batch.errors) == ['ruim.xml']
        assert batch.total == Decimal('450.00')
        assert len(batch.guides) == 3

        with zipfile.ZipFile(io.BytesIO(batch.content)) as zf:
            assert zf.namelist() == ['lote1.xml']
            content = decode_xml_bytes(zf.read('lote1.xml'))
        assert validate_hash(content).valid
        assert content == batch.files['lote1.xml'].content

    def test_invalid_zip(self):
        with pytest.raises(TissParsingError):
            process_zip(b'nao sou zip')

    def test_zip_single_xml(self, sample_xml):
        data = zip_single_xml('envio/lote.xml', sample_xml)
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert zf.namelist() == ['lote.xml']
            assert zf.read('lote.xml') == sample_xml.encode('iso-8859-1')


def test_monetary_values_unaffected_by_normalization():
    xml = make_document(make_guide('1', '1.234,56', tipo='NULL', cbos=''), make_guide('2', '1,000'))
    result = process_xml(xml)
    assert [g.valor_total_geral for g in result.guides] == [Decimal('1234.56'), Decimal('1000')]

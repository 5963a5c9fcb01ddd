"""Documentos TISS de exemplo compartilhados pelos testes."""

import pytest

ANS_NS = 'http://www.ans.gov.br/padroes/tiss/schemas'
XSI_NS = 'http://www.w3.org/2001/XMLSchema-instance'


def make_guide(numero, valor, tipo='23', cbos='225142', nome='Dr. João Silva',
               procedimento='40901475', carteira='0001234500', data='2025-01-15'):
    return f"""
        <ans:guiaSP-SADT>
          <ans:cabecalhoGuia>
            <ans:registroANS>123456</ans:registroANS>
            <ans:numeroGuiaPrestador>{numero}</ans:numeroGuiaPrestador>
          </ans:cabecalhoGuia>
          <ans:dadosBeneficiario>
            <ans:numeroCarteira>{carteira}</ans:numeroCarteira>
            <ans:nomeBeneficiario>Maria Souza</ans:nomeBeneficiario>
          </ans:dadosBeneficiario>
          <ans:dadosExecutante>
            <ans:contratadoExecutante>
              <ans:codigoPrestadorNaOperadora>12345</ans:codigoPrestadorNaOperadora>
            </ans:contratadoExecutante>
          </ans:dadosExecutante>
          <ans:dadosAtendimento>
            <ans:tipoAtendimento>{tipo}</ans:tipoAtendimento>
            <ans:indicacaoAcidente>0</ans:indicacaoAcidente>
          </ans:dadosAtendimento>
          <ans:procedimentosExecutados>
            <ans:procedimentoExecutado>
              <ans:dataExecucao>{data}</ans:dataExecucao>
              <ans:procedimento>
                <ans:codigoProcedimento>{procedimento}</ans:codigoProcedimento>
              </ans:procedimento>
              <ans:valorTotal>{valor}</ans:valorTotal>
              <ans:equipeSadt>
                <ans:nomeProfissional>{nome}</ans:nomeProfissional>
                <ans:CBOS>{cbos}</ans:CBOS>
              </ans:equipeSadt>
            </ans:procedimentoExecutado>
          </ans:procedimentosExecutados>
          <ans:valorTotal>
            <ans:valorTotalGeral>{valor}</ans:valorTotalGeral>
          </ans:valorTotal>
        </ans:guiaSP-SADT>"""


def make_document(*guides, encoding='ISO-8859-1'):
    return f"""<?xml version="1.0" encoding="{encoding}"?>
<ans:mensagemTISS xmlns:ans="{ANS_NS}" xmlns:xsi="{XSI_NS}" xsi:schemaLocation="{ANS_NS} tissV4_01_00.xsd">
  <ans:cabecalho>
    <ans:identificacaoTransacao>
      <ans:tipoTransacao>ENVIO_LOTE_GUIAS</ans:tipoTransacao>
      <ans:sequencialTransacao>1</ans:sequencialTransacao>
      <ans:dataRegistroTransacao>2025-01-20</ans:dataRegistroTransacao>
      <ans:horaRegistroTransacao>10:00:00</ans:horaRegistroTransacao>
    </ans:identificacaoTransacao>
    <ans:origem>
      <ans:identificacaoPrestador>
        <ans:codigoPrestadorNaOperadora>12345</ans:codigoPrestadorNaOperadora>
      </ans:identificacaoPrestador>
    </ans:origem>
    <ans:destino>
      <ans:registroANS>123456</ans:registroANS>
    </ans:destino>
    <ans:Padrao>4.01.00</ans:Padrao>
  </ans:cabecalho>
  <ans:prestadorParaOperadora>
    <ans:loteGuias>
      <ans:numeroLote>98765</ans:numeroLote>
      <ans:guiasTISS>{''.join(guides)}
      </ans:guiasTISS>
    </ans:loteGuias>
  </ans:prestadorParaOperadora>
</ans:mensagemTISS>
"""


@pytest.fixture
def sample_xml():
    """Lote com 3 guias válidas (1001, 1002, 1003) somando R$ 450,00."""
    return make_document(
        make_guide('1001', '100.00'),
        make_guide('1002', '150.00'),
        make_guide('1003', '200.00'),
    )


@pytest.fixture
def dirty_xml():
    """Lote com tipoAtendimento/CBOS vazios ou 'NULL' e valores em formatos mistos (total R$ 450,00)."""
    return make_document(
        make_guide('1001', '100.00', tipo='NULL', cbos='225142'),
        make_guide('1002', '150,00', tipo='', cbos=''),
        make_guide('1003', '200.00', tipo='23', cbos='NULL'),
    )


@pytest.fixture
def single_guide_xml():
    return make_document(make_guide('1001', '100.00'))


@pytest.fixture
def malformed_xml(sample_xml):
    """Fechamento de ans:loteGuias removido: parsing estruturado falha."""
    return sample_xml.replace('</ans:loteGuias>', '', 1)


@pytest.fixture
def entity_xml():
    return """<?xml version="1.0"?>
<!DOCTYPE mensagem [<!ENTITY xxe SYSTEM "file:///etc/passwd">]>
<ans:mensagemTISS xmlns:ans="http://www.ans.gov.br/padroes/tiss/schemas">&xxe;</ans:mensagemTISS>
"""

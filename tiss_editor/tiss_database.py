# file: tiss_editor/tiss_database.py
"""
Banco de dados TISS local (offline), simplificado.
Catálogo de tags obrigatórias (nível documento e nível guia), CBOS e
procedimentos TUSS com os CBOS compatíveis.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

DOCUMENTO = 'documento'
GUIA = 'guia'


@dataclass(frozen=True)
class TagInfo:
    tag: str
    name: str
    description: str
    example: Optional[str] = None
    required: bool = False
    level: str = GUIA


@dataclass(frozen=True)
class CBOSInfo:
    code: str
    name: str
    description: str


@dataclass(frozen=True)
class ProcedureInfo:
    code: str
    name: str
    description: str
    compatible_cbos: Tuple[str, ...] = ()


TISS_TAGS_DATABASE: Tuple[TagInfo, ...] = (
    # Nível documento
    TagInfo('ans:cabecalho', 'Cabeçalho', 'Cabeçalho da mensagem TISS.', required=True, level=DOCUMENTO),
    TagInfo('ans:identificacaoTransacao', 'Identificação da Transação',
            'Tipo, sequencial, data e hora da transação.', required=True, level=DOCUMENTO),
    TagInfo('ans:origem', 'Origem', 'Identificação do prestador que envia a mensagem.', required=True, level=DOCUMENTO),
    TagInfo('ans:destino', 'Destino', 'Registro ANS da operadora destinatária.', required=True, level=DOCUMENTO),
    TagInfo('ans:prestadorParaOperadora', 'Prestador para Operadora',
            'Bloco da mensagem enviada do prestador para a operadora.', required=True, level=DOCUMENTO),
    TagInfo('ans:loteGuias', 'Lote de Guias', 'Lote com número e guias enviadas.', required=True, level=DOCUMENTO),
    TagInfo('ans:guiasTISS', 'Guias TISS', 'Agrupador das guias do lote.', required=True, level=DOCUMENTO),
    TagInfo('ans:epilogo', 'Epílogo e Hash MD5',
            'Seção final do XML que contém o hash MD5 para validação da integridade do documento. '
            'O hash garante que o conteúdo não foi adulterado.', required=True, level=DOCUMENTO),
    # Nível guia
    TagInfo('ans:numeroGuiaPrestador', 'Número da Guia do Prestador',
            'Número único atribuído pelo prestador para identificar a guia. Deve conter até 20 caracteres alfanuméricos.',
            example='2025010100001', required=True),
    TagInfo('ans:numeroGuiaOperadora', 'Número da Guia da Operadora',
            'Número atribuído pela operadora ao autorizar a guia. Pode ser diferente do número do prestador.'),
    TagInfo('ans:nomeProfissional', 'Nome do Profissional Executante',
            'Nome completo do profissional que executou o procedimento. Não deve conter nomes de exames ou equipamentos.',
            example='Dr. João Silva', required=True),
    TagInfo('ans:CBOS', 'Código CBO (Classificação Brasileira de Ocupações)',
            'Código de 6 dígitos que identifica a ocupação do profissional executante. '
            'Deve ser compatível com o procedimento realizado.', example='225125', required=True),
    TagInfo('ans:codigoProcedimento', 'Código do Procedimento',
            'Código da tabela TUSS que identifica o procedimento realizado. Formato: 8 dígitos numéricos.',
            example='40901475', required=True),
    TagInfo('ans:tipoAtendimento', 'Tipo de Atendimento',
            'Código que indica a modalidade do atendimento. O valor padrão mais utilizado é "23".',
            example='23', required=True),
    TagInfo('ans:indicacaoAcidente', 'Indicação de Acidente',
            'Indica se o atendimento é decorrente de acidente. Valores: 0 (Não), 1 (Acidente de trabalho), '
            '2 (Acidente de trânsito), 9 (Outros acidentes).', example='0', required=True),
    TagInfo('ans:valorTotal', 'Valor Total',
            'Valor monetário total do procedimento ou da guia. Formato: número decimal com duas casas (ex: 150.00).',
            example='150.00', required=True),
    TagInfo('ans:numeroCarteira', 'Número da Carteira do Beneficiário',
            'Número da carteirinha do beneficiário/paciente no plano de saúde.', required=True),
    TagInfo('ans:nomeBeneficiario', 'Nome do Beneficiário', 'Nome completo do paciente/beneficiário.', required=True),
    TagInfo('ans:dataExecucao', 'Data de Execução',
            'Data em que o procedimento foi realizado. Formato: AAAA-MM-DD (ISO 8601).',
            example='2025-01-15', required=True),
)

CBOS_DATABASE: Tuple[CBOSInfo, ...] = (
    CBOSInfo('225125', 'Médico clínico', 'Médico de clínica geral'),
    CBOSInfo('225142', 'Médico cardiologista', 'Médico especialista em cardiologia'),
    CBOSInfo('225320', 'Médico radiologista', 'Médico especialista em radiologia e diagnóstico por imagem'),
)

PROCEDURES_DATABASE: Tuple[ProcedureInfo, ...] = (
    ProcedureInfo('40901475', 'Doppler arterial de membros',
                  'Exame de ultrassom com doppler das artérias dos membros', ('225142', '225320')),
    ProcedureInfo('20101020', 'Consulta médica', 'Consulta médica em consultório', ('225125', '225142')),
)

# Termos que indicam exame, equipamento ou empresa no lugar do nome do profissional
SUSPICIOUS_PROFESSIONAL_NAMES = (
    'ECOCARDIOGRAMA', 'ULTRASSOM', 'RAIO-X', 'TOMOGRAFIA', 'RESSONANCIA',
    'LABORATORIO', 'EXAME', 'CONSULTA', 'PROCEDIMENTO', 'TELELAUDO TECNOLOGIA MEDICA LTDA',
    'ECO-RAD SERVICOS DE DIAGNOSTICO POR IMAGEM LTDA',
)


def document_required_tags() -> List[TagInfo]:
    return [t for t in TISS_TAGS_DATABASE if t.required and t.level == DOCUMENTO]


def guide_required_tags() -> List[TagInfo]:
    return [t for t in TISS_TAGS_DATABASE if t.required and t.level == GUIA]


def search_tag(query: str) -> List[TagInfo]:
    q = query.lower()
    return [t for t in TISS_TAGS_DATABASE
            if q in t.tag.lower() or q in t.name.lower() or q in t.description.lower()]


def get_tag_info(tag_name: str) -> Optional[TagInfo]:
    """Aceita 'ans:CBOS' ou só 'CBOS' (sem diferenciar caixa)."""
    name = tag_name.lower()
    return next((t for t in TISS_TAGS_DATABASE
                 if t.tag.lower() == name or t.tag.lower().endswith(':' + name)), None)


def search_cbos(query: str) -> List[CBOSInfo]:
    q = query.lower()
    return [c for c in CBOS_DATABASE
            if query in c.code or q in c.name.lower() or q in c.description.lower()]


def search_procedure(query: str) -> List[ProcedureInfo]:
    q = query.lower()
    return [p for p in PROCEDURES_DATABASE
            if query in p.code or q in p.name.lower() or q in p.description.lower()]


def is_suspicious_professional_name(name: str) -> bool:
    upper = name.upper()
    return any(term in upper for term in SUSPICIOUS_PROFESSIONAL_NAMES)


def validate_cbos_procedure_compatibility(cbos_code: str, procedure_code: str) -> Tuple[bool, Optional[str]]:
    """
    (compatível, aviso). Códigos fora das tabelas não são validados
    e contam como compatíveis.
    """
    procedure = next((p for p in PROCEDURES_DATABASE if p.code == procedure_code), None)
    cbos = next((c for c in CBOS_DATABASE if c.code == cbos_code), None)
    if procedure is None or cbos is None:
        return True, None
    if cbos_code in procedure.compatible_cbos:
        return True, None
    return False, (f"O CBO '{cbos_code}' ({cbos.name}) pode ser incompatível com o procedimento "
                   f"'{procedure_code}' ({procedure.name})")

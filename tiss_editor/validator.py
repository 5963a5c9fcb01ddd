# file: tiss_editor/validator.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .errors import TissSecurityError
from .guides import NOME_PROFISSIONAL_TAGS, NOT_AVAILABLE, NUMERO_GUIA_TAGS, extract_guides
from .xml_model import ParseStatus, find_guides, find_nested_value, name_variants, parse_document, tag_exists
from .tiss_database import (
    document_required_tags,
    guide_required_tags,
    is_suspicious_professional_name,
    validate_cbos_procedure_compatibility,
)

logger = logging.getLogger(__name__)

# Campos críticos verificados quanto a valor vazio / NULL / auto-fechado
CRITICAL_FIELDS = ('ans:CBOS', 'ans:tipoAtendimento', 'ans:codigoPrestadorNaOperadora')


class Severity(str, Enum):
    OK = 'ok'
    WARNING = 'alerta'
    ERROR = 'erro'


@dataclass(frozen=True)
class Finding:
    severity: Severity
    message: str
    guide: Optional[str] = None

    def __str__(self) -> str:
        label = {Severity.OK: 'OK', Severity.WARNING: 'ALERTA', Severity.ERROR: 'ERRO'}[self.severity]
        where = f' (Guia {self.guide})' if self.guide else ''
        return f'{label}{where}: {self.message}'


def find_empty_fields(xml_content: str) -> Finding:
    empty: List[str] = []
    for tag in CRITICAL_FIELDS:
        t = re.escape(tag)
        hits = re.findall(rf'<{t}>\s*(?:NULL)?\s*</{t}>|<{t}\s*/>', xml_content)
        if hits:
            empty.append(f'<{tag} /> ({len(hits)} ocorrências)')
    if not empty:
        return Finding(Severity.OK, 'Campos OK: Não foram encontradas tags críticas vazias.')
    return Finding(Severity.WARNING, f"Encontradas tags vazias: {', '.join(empty)}")


def _professional_finding(numero: str, nome: str) -> Optional[Finding]:
    if not is_suspicious_professional_name(nome):
        return None
    return Finding(
        Severity.WARNING,
        f"Nome de profissional ('{nome}') parece ser um procedimento ou nome de empresa, "
        f"não um nome válido de pessoa física.",
        guide=numero,
    )


def validate_professional_data(xml_content: str) -> List[Finding]:
    findings: List[Finding] = []
    for g in extract_guides(xml_content):
        finding = _professional_finding(g.numero_guia_prestador, g.nome_profissional)
        if finding:
            findings.append(finding)
    if not findings:
        findings.append(Finding(Severity.OK, 'Dados Profissionais OK: Não foram encontrados dados suspeitos.'))
    return findings


def validate_tiss_compliance(xml_content: str) -> List[Finding]:
    """
    Validador TISS (subconjunto pragmático, não é validação XSD):
      1) tags obrigatórias de documento;
      2) por guia: tags obrigatórias, nome de profissional suspeito,
         compatibilidade CBOS x procedimento;
      3) campos críticos vazios.
    Nunca devolve lista vazia: sem achados => um item OK.
    """
    outcome = parse_document(xml_content)
    if outcome.status is ParseStatus.REJECTED:
        raise TissSecurityError(outcome.reason)
    if not outcome.ok:
        return [Finding(Severity.ERROR, f'Falha ao parsear XML para validação TISS: {outcome.reason}')]

    root = outcome.document.root
    findings: List[Finding] = []

    for required in document_required_tags():
        if not tag_exists(root, name_variants(required.tag), include_self=True):
            findings.append(Finding(
                Severity.ERROR,
                f"Tag obrigatória de documento '{required.tag}' ({required.name}) não encontrada.",
            ))

    guides = find_guides(root)
    if not guides:
        findings.append(Finding(
            Severity.WARNING,
            'Nenhuma guia (ans:guiaSP-SADT) encontrada para validação de tags obrigatórias de guia.',
        ))

    for guide in guides:
        numero = find_nested_value(guide, NUMERO_GUIA_TAGS) or NOT_AVAILABLE

        for required in guide_required_tags():
            if not tag_exists(guide, name_variants(required.tag)):
                findings.append(Finding(
                    Severity.ERROR,
                    f"Tag obrigatória '{required.tag}' ({required.name}) não encontrada.",
                    guide=numero,
                ))

        nome = find_nested_value(guide, NOME_PROFISSIONAL_TAGS) or NOT_AVAILABLE
        suspicious = _professional_finding(numero, nome)
        if suspicious:
            findings.append(suspicious)

        cbos = find_nested_value(guide, name_variants('CBOS'))
        procedimento = find_nested_value(guide, name_variants('codigoProcedimento'))
        if cbos and procedimento:
            compatible, warning = validate_cbos_procedure_compatibility(cbos, procedimento)
            if not compatible:
                findings.append(Finding(Severity.WARNING, warning, guide=numero))
        else:
            if not cbos:
                findings.append(Finding(Severity.WARNING,
                                        'CBO-S não encontrado para validação de compatibilidade.', guide=numero))
            if not procedimento:
                findings.append(Finding(Severity.WARNING,
                                        'Código de Procedimento não encontrado para validação de compatibilidade.',
                                        guide=numero))

    empty = find_empty_fields(xml_content)
    if empty.severity is not Severity.OK:
        findings.append(empty)

    if not findings:
        findings.append(Finding(Severity.OK, 'Validação TISS OK: Nenhuma inconsistência crítica encontrada.'))
    logger.info('validate_tiss_compliance: %d achado(s), %d guia(s).', len(findings), len(guides))
    return findings

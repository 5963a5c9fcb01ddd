# file: tiss_editor/__init__.py
from __future__ import annotations

__version__ = "2026.10.18-ptbr-01"

from .epilogo import HashReport, HashStatus, add_epilogo, calculate_hash, strip_epilogo, validate_hash
from .errors import ConfigError, EpilogoError, TissError, TissParsingError, TissSecurityError
from .guides import (
    Guide,
    GuideExtraction,
    delete_guide,
    extract_guides,
    extract_guides_result,
    extract_lot_number,
    parse_valor,
)
from .normalizer import (
    CorrectionRule,
    RuleAction,
    RuleCondition,
    apply_correction_rules,
    clean_null_values,
    replace_all,
    replace_next,
    standardize_cbos,
    standardize_field,
    standardize_tipo_atendimento,
)
from .pipeline import BatchResult, PipelineResult, process_xml, process_zip
from .session import Conferencia, ManualSession
from .structure import ProcessingResult, fix_structure
from .validator import Finding, Severity, find_empty_fields, validate_professional_data, validate_tiss_compliance
from .xml_model import Document, Element, ParseStatus, SerializeMode, Text, parse, parse_document, serialize

# file: tiss_editor/structure.py
from __future__ import annotations

import logging
import re
from typing import NamedTuple

logger = logging.getLogger(__name__)


class ProcessingResult(NamedTuple):
    content: str
    changes: int


# Prefixo duplicado em volta do delimitador: ans:<ans:tag> e ans:</ans:tag>
_DUPLICATE_OPEN_RE = re.compile(r'(?:ans:)+<ans:')
_DUPLICATE_CLOSE_RE = re.compile(r'(?:ans:)+</ans:')


def fix_structure(xml_content: str) -> ProcessingResult:
    """
    Corrige prefixos de namespace duplicados antes do parsing estruturado:
      - ans:<ans:tag>   -> <ans:tag>
      - ans:</ans:tag>  -> </ans:tag>
    Substituição puramente textual e idempotente.
    """
    content, n_open = _DUPLICATE_OPEN_RE.subn('<ans:', xml_content)
    content, n_close = _DUPLICATE_CLOSE_RE.subn('</ans:', content)
    changes = n_open + n_close
    if changes:
        logger.info('fix_structure: %d prefixo(s) duplicado(s) corrigido(s).', changes)
    return ProcessingResult(content, changes)

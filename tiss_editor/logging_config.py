# file: tiss_editor/logging_config.py
"""
Configuração de logging do editor TISS.

Dois formatos:
- ConsoleFormatter: legível, com prefixo por nível (padrão)
- JSONFormatter: uma linha JSON por registro (json_mode=True ou arquivo)
"""
from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Union

LOG_LEVEL_ENV = 'TISS_EDITOR_LOG_LEVEL'


class JSONFormatter(logging.Formatter):
    """Cada registro vira uma linha JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'ts': self.formatTime(record, '%Y-%m-%dT%H:%M:%S'),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry['error'] = {
                'type': type(record.exc_info[1]).__name__,
                'message': str(record.exc_info[1]),
            }
        return json.dumps(entry, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    FORMATS = {
        logging.DEBUG: '[DEBUG] %(name)s: %(message)s',
        logging.INFO: '[INFO] %(message)s',
        logging.WARNING: '[ALERTA] %(message)s',
        logging.ERROR: '[ERRO] %(message)s',
        logging.CRITICAL: '[CRITICO] %(message)s',
    }

    def format(self, record: logging.LogRecord) -> str:
        fmt = self.FORMATS.get(record.levelno, '[%(levelname)s] %(message)s')
        return logging.Formatter(fmt).format(record)


def level_from_env(default: Union[int, str] = logging.INFO) -> Union[int, str]:
    """Nível vindo de TISS_EDITOR_LOG_LEVEL (ex.: 'DEBUG'); ausente => default."""
    value = os.environ.get(LOG_LEVEL_ENV, '').strip().upper()
    return value if isinstance(logging.getLevelName(value), int) else default


def configure_logging(
    level: Union[int, str] = logging.INFO,
    json_mode: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Reconfigura o logger raiz (remove handlers anteriores, ex.: basicConfig)."""
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(JSONFormatter() if json_mode else ConsoleFormatter())
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding='utf-8')
        fh.setLevel(level)
        fh.setFormatter(JSONFormatter())
        root.addHandler(fh)

# file: tiss_editor/errors.py
from __future__ import annotations


class TissError(Exception):
    """Erro base do editor TISS."""
    pass


class TissParsingError(TissError):
    """Erro de parsing para arquivos TISS XML (malformado ou ilegível)."""
    pass


class TissSecurityError(TissError):
    """Documento recusado pela proteção contra expansão de entidades (XXE)."""
    pass


class EpilogoError(TissError):
    """Não foi possível inserir o epílogo (nenhuma tag de fechamento conhecida)."""
    pass


class ConfigError(TissError):
    """Configuração de perfis/regras inválida."""
    pass

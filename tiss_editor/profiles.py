# file: tiss_editor/profiles.py
"""
Perfis de convênio e regras de correção, persistidos em JSON.

Caminho do arquivo: variável de ambiente TISS_EDITOR_CONFIG ou
~/.tiss_editor/config.json. Chaves em camelCase (mesmo formato do
export/import entre instalações).
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import ConfigError
from .normalizer import CorrectionRule, RuleAction, RuleCondition

logger = logging.getLogger(__name__)

VERSION = '10.0.0'
CONFIG_ENV = 'TISS_EDITOR_CONFIG'
OUTPUT_FORMATS = ('zip', 'xml')

PathLike = Union[str, Path]


@dataclass
class Profile:
    id: str
    name: str
    output_format: str = 'zip'
    associated_rules: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec='seconds'))
    updated_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec='seconds'))

    def __post_init__(self):
        if self.output_format not in OUTPUT_FORMATS:
            raise ConfigError(f"Formato de saída inválido: '{self.output_format}' (use zip ou xml).")


@dataclass
class ProfilesConfig:
    profiles: List[Profile] = field(default_factory=list)
    rules: List[CorrectionRule] = field(default_factory=list)
    version: str = VERSION


def default_config_path() -> Path:
    env = os.environ.get(CONFIG_ENV)
    if env:
        return Path(env)
    return Path.home() / '.tiss_editor' / 'config.json'


# ----------------------------
# (De)serialização
# ----------------------------
def _rule_to_dict(rule: CorrectionRule) -> Dict:
    return {
        'id': rule.id,
        'name': rule.name,
        'description': rule.description,
        'condition': {
            'field': rule.condition.field,
            'operator': rule.condition.operator,
            'value': rule.condition.value,
        },
        'action': {'field': rule.action.field, 'newValue': rule.action.new_value},
        'enabled': rule.enabled,
    }


def _rule_from_dict(data: Dict) -> CorrectionRule:
    condition = data['condition']
    action = data['action']
    return CorrectionRule(
        condition=RuleCondition(condition['field'], condition['operator'], condition.get('value', '')),
        action=RuleAction(action['field'], action['newValue']),
        id=data['id'],
        name=data.get('name', ''),
        description=data.get('description', ''),
        enabled=data.get('enabled', True),
    )


def _profile_to_dict(profile: Profile) -> Dict:
    return {
        'id': profile.id,
        'name': profile.name,
        'outputFormat': profile.output_format,
        'associatedRules': list(profile.associated_rules),
        'createdAt': profile.created_at,
        'updatedAt': profile.updated_at,
    }


def _profile_from_dict(data: Dict) -> Profile:
    kwargs = {}
    if data.get('createdAt'):
        kwargs['created_at'] = data['createdAt']
    if data.get('updatedAt'):
        kwargs['updated_at'] = data['updatedAt']
    return Profile(
        id=data['id'],
        name=data['name'],
        output_format=data.get('outputFormat', 'zip'),
        associated_rules=list(data.get('associatedRules', [])),
        **kwargs,
    )


def config_to_dict(config: ProfilesConfig) -> Dict:
    return {
        'profiles': [_profile_to_dict(p) for p in config.profiles],
        'rules': [_rule_to_dict(r) for r in config.rules],
        'version': config.version,
    }


def config_from_dict(data: Dict) -> ProfilesConfig:
    try:
        return ProfilesConfig(
            profiles=[_profile_from_dict(p) for p in data.get('profiles', [])],
            rules=[_rule_from_dict(r) for r in data.get('rules', [])],
            version=data.get('version', VERSION),
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise ConfigError(f'Configuração de perfis inválida: {e}') from e


# ----------------------------
# Armazenamento
# ----------------------------
def load_config(path: Optional[PathLike] = None) -> ProfilesConfig:
    """Arquivo inexistente ou ilegível => configuração vazia (erro registrado em log)."""
    path = Path(path) if path else default_config_path()
    if not path.exists():
        return ProfilesConfig()
    try:
        return config_from_dict(json.loads(path.read_text(encoding='utf-8')))
    except (OSError, ValueError, ConfigError) as e:
        logger.error('Erro ao carregar configuração de %s: %s', path, e)
        return ProfilesConfig()


def save_config(config: ProfilesConfig, path: Optional[PathLike] = None) -> None:
    path = Path(path) if path else default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config_to_dict(config), ensure_ascii=False, indent=2), encoding='utf-8')
    logger.debug('Configuração salva em %s (%d perfis, %d regras).', path, len(config.profiles), len(config.rules))


def save_profile(profile: Profile, path: Optional[PathLike] = None) -> None:
    """Insere ou substitui (mesmo id) o perfil."""
    config = load_config(path)
    profile.updated_at = datetime.now().isoformat(timespec='seconds')
    for i, existing in enumerate(config.profiles):
        if existing.id == profile.id:
            config.profiles[i] = profile
            break
    else:
        config.profiles.append(profile)
    save_config(config, path)


def delete_profile(profile_id: str, path: Optional[PathLike] = None) -> None:
    config = load_config(path)
    config.profiles = [p for p in config.profiles if p.id != profile_id]
    save_config(config, path)


def save_rule(rule: CorrectionRule, path: Optional[PathLike] = None) -> None:
    config = load_config(path)
    for i, existing in enumerate(config.rules):
        if existing.id == rule.id:
            config.rules[i] = rule
            break
    else:
        config.rules.append(rule)
    save_config(config, path)


def delete_rule(rule_id: str, path: Optional[PathLike] = None) -> None:
    config = load_config(path)
    config.rules = [r for r in config.rules if r.id != rule_id]
    save_config(config, path)


def export_config(path: Optional[PathLike] = None) -> str:
    return json.dumps(config_to_dict(load_config(path)), ensure_ascii=False, indent=2)


def import_config(json_string: str, path: Optional[PathLike] = None) -> bool:
    """Substitui a configuração atual. JSON inválido => False, nada é gravado."""
    try:
        config = config_from_dict(json.loads(json_string))
    except (ValueError, ConfigError) as e:
        logger.error('Erro ao importar configuração: %s', e)
        return False
    save_config(config, path)
    return True


def rules_for_profile(profile: Profile, config: ProfilesConfig) -> List[CorrectionRule]:
    """Regras associadas ao perfil e habilitadas, na ordem da configuração."""
    wanted = set(profile.associated_rules)
    return [r for r in config.rules if r.id in wanted and r.enabled]

"""
Testes da persistência de perfis e regras (arquivo JSON).
"""

import json

import pytest

from tiss_editor.errors import ConfigError
from tiss_editor.normalizer import CorrectionRule, RuleAction, RuleCondition
from tiss_editor.profiles import (
    VERSION,
    Profile,
    ProfilesConfig,
    default_config_path,
    delete_profile,
    delete_rule,
    export_config,
    import_config,
    load_config,
    rules_for_profile,
    save_profile,
    save_rule,
)


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / 'cfg' / 'config.json'


def _rule(rule_id, enabled=True):
    return CorrectionRule(
        RuleCondition('codigoProcedimento', 'startsWith', '4090'),
        RuleAction('ans:CBOS', '225320'),
        id=rule_id,
        name=f'Regra {rule_id}',
        enabled=enabled,
    )


class TestStore:
    def test_missing_file_is_empty_config(self, config_path):
        config = load_config(config_path)
        assert config == ProfilesConfig()
        assert config.version == VERSION

    def test_corrupt_file_is_empty_config(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text('{nao e json', encoding='utf-8')
        assert load_config(config_path) == ProfilesConfig()

    def test_save_and_load_profile(self, config_path):
        save_profile(Profile('p1', 'Unimed', 'xml', ['r1']), config_path)
        loaded = load_config(config_path).profiles
        assert [(p.id, p.name, p.output_format, p.associated_rules) for p in loaded] == [('p1', 'Unimed', 'xml', ['r1'])]

    def test_save_profile_replaces_same_id(self, config_path):
        save_profile(Profile('p1', 'Antigo'), config_path)
        save_profile(Profile('p1', 'Novo'), config_path)
        assert [p.name for p in load_config(config_path).profiles] == ['Novo']

    def test_delete_profile(self, config_path):
        save_profile(Profile('p1', 'A'), config_path)
        save_profile(Profile('p2', 'B'), config_path)
        delete_profile('p1', config_path)
        assert [p.id for p in load_config(config_path).profiles] == ['p2']

    def test_rules_round_trip(self, config_path):
        save_rule(_rule('r1'), config_path)
        save_rule(_rule('r2', enabled=False), config_path)
        assert load_config(config_path).rules == [_rule('r1'), _rule('r2', enabled=False)]
        delete_rule('r1', config_path)
        assert [r.id for r in load_config(config_path).rules] == ['r2']

    def test_camel_case_on_disk(self, config_path):
        save_rule(_rule('r1'), config_path)
        save_profile(Profile('p1', 'A', associated_rules=['r1']), config_path)
        data = json.loads(config_path.read_text(encoding='utf-8'))
        assert data['rules'][0]['action'] == {'field': 'ans:CBOS', 'newValue': '225320'}
        assert data['profiles'][0]['outputFormat'] == 'zip'
        assert data['profiles'][0]['associatedRules'] == ['r1']

    def test_env_path(self, monkeypatch, config_path):
        monkeypatch.setenv('TISS_EDITOR_CONFIG', str(config_path))
        assert default_config_path() == config_path
        save_profile(Profile('p1', 'A'))
        assert config_path.exists()


class TestImportExport:
    def test_export_then_import(self, config_path, tmp_path):
        save_rule(_rule('r1'), config_path)
        save_profile(Profile('p1', 'A', associated_rules=['r1']), config_path)
        other = tmp_path / 'outro.json'
        assert import_config(export_config(config_path), other)
        assert load_config(other) == load_config(config_path)

    def test_invalid_import(self, config_path):
        assert not import_config('[]', config_path)
        assert not import_config('{"rules": [{"id": "x"}]}', config_path)
        assert not config_path.exists()


class TestProfiles:
    def test_invalid_output_format(self):
        with pytest.raises(ConfigError):
            Profile('p1', 'A', output_format='rar')

    def test_rules_for_profile_enabled_only(self):
        config = ProfilesConfig(rules=[_rule('r1'), _rule('r2', enabled=False), _rule('r3')])
        profile = Profile('p1', 'A', associated_rules=['r3', 'r2'])
        assert [r.id for r in rules_for_profile(profile, config)] == ['r3']

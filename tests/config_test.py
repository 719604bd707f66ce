"""
Tests for YAML config loading and startup validation
"""

import pytest

import run
from debate.config import load_config, get_flow_config, get_llm_config, get_agent_config


class TestLoadConfig:

    def test_defaults_without_overlay(self, tmp_path):
        config = load_config(str(tmp_path))
        assert config['llm']['provider'] == 'groq'
        assert config['flow']['stream_delay_seconds'] == 0.0

    def test_overlay_merges_per_key(self, tmp_path):
        (tmp_path / 'debate.yaml').write_text(
            "flow:\n  max_rounds: 8\nagents:\n  debate:\n    temperature: 0.2\n"
        )
        load_config(str(tmp_path))

        assert get_flow_config()['max_rounds'] == 8
        assert get_flow_config()['validation_keep_threshold'] == 70
        assert get_agent_config('debate') == {'temperature': 0.2, 'max_tokens': 2000}

    def test_env_overrides_provider(self, tmp_path, monkeypatch):
        monkeypatch.setenv('AI_PROVIDER', 'Anthropic')
        load_config(str(tmp_path))
        assert get_llm_config()['provider'] == 'anthropic'

    def test_invalid_yaml_keeps_defaults(self, tmp_path):
        (tmp_path / 'debate.yaml').write_text("flow: [unclosed\n")
        config = load_config(str(tmp_path))
        assert config['flow']['max_rounds'] == 5


class TestValidateConfiguration:

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in run.LLM_KEY_VARS + (
            'SUPABASE_URL', 'SUPABASE_ANON_KEY', 'SUPABASE_SERVICE_ROLE_KEY',
            'FLASK_SECRET_KEY', 'FLASK_ENV', 'DEV_MODE',
        ):
            monkeypatch.delenv(name, raising=False)

    def test_dev_mode_needs_only_llm_key(self, monkeypatch):
        monkeypatch.setenv('DEV_MODE', 'true')
        monkeypatch.setenv('FLASK_ENV', 'development')
        monkeypatch.setenv('GROQ_API_KEY', 'gsk')

        config = run.validate_configuration()
        assert config['llm_keys'] == {'GROQ_API_KEY': 'gsk'}
        assert config['flask']['secret_key'] == 'dev-secret-key-not-for-production'

    def test_missing_llm_key_exits(self, monkeypatch):
        monkeypatch.setenv('DEV_MODE', 'true')
        monkeypatch.setenv('FLASK_SECRET_KEY', 'k')
        with pytest.raises(SystemExit):
            run.validate_configuration()

    def test_supabase_required_outside_dev_mode(self, monkeypatch):
        monkeypatch.setenv('FLASK_SECRET_KEY', 'k')
        monkeypatch.setenv('OPENAI_API_KEY', 'sk')
        with pytest.raises(SystemExit):
            run.validate_configuration()

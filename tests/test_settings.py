"""Tests for the YAML settings loader."""
import pytest

from config.settings import Settings, get_settings, load_settings, reset_settings


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "app_name: tutor\n"
        "debug: true\n"
        "max_llm_calls: 25\n"
        "llm:\n"
        "  provider: anthropic\n"
        "  model: claude-test\n"
        "  api_key: ${TUTOR_API_KEY}\n"
        "interactive:\n"
        "  prompt: 'You: '\n"
    )
    return path


class TestLoadSettings:
    def test_defaults_when_file_missing(self, tmp_path):
        settings = load_settings(str(tmp_path / "nope.yaml"))
        assert settings == Settings()
        assert settings.debug is False
        assert settings.max_llm_calls == 100

    def test_reads_yaml_with_env_substitution(self, config_file, monkeypatch):
        monkeypatch.setenv("TUTOR_API_KEY", "secret-123")
        settings = load_settings(str(config_file))
        assert settings.app_name == "tutor"
        assert settings.debug is True
        assert settings.max_llm_calls == 25
        assert settings.llm.provider == "anthropic"
        assert settings.llm.model == "claude-test"
        assert settings.llm.api_key == "secret-123"
        assert settings.interactive.prompt == "You: "

    def test_unset_env_var_left_as_is(self, config_file):
        settings = load_settings(str(config_file))
        assert settings.llm.api_key == "${TUTOR_API_KEY}"

    def test_env_var_default(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.yaml"
        path.write_text("llm:\n  model: ${TUTOR_MODEL:gpt-x}\n")
        assert load_settings(str(path)).llm.model == "gpt-x"
        monkeypatch.setenv("TUTOR_MODEL", "gpt-y")
        assert load_settings(str(path)).llm.model == "gpt-y"

    def test_env_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv("TRAILKIT_DEBUG", "false")
        monkeypatch.setenv("TRAILKIT_MAX_LLM_CALLS", "7")
        settings = load_settings(str(config_file))
        assert settings.debug is False
        assert settings.max_llm_calls == 7

    def test_bad_max_calls(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TRAILKIT_MAX_LLM_CALLS", "lots")
        with pytest.raises(ValueError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_config_path_from_env(self, config_file, monkeypatch):
        monkeypatch.setenv("TRAILKIT_CONFIG", str(config_file))
        reset_settings()
        assert get_settings().app_name == "tutor"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
        reset_settings()
        first = get_settings()
        reset_settings()
        assert get_settings() is not first

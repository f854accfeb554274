"""
Tests for runtime settings.

Validates:
- Settings defaults and bounds
- Settings.from_env() environment loading and precedence
- load_settings() YAML layering and error handling
- require_browserbase() / require_llm_key() credential checks
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from pilot.config.settings import DEFAULT_BROWSERBASE_API_URL, Settings, load_settings
from pilot.exceptions import ConfigurationError

_CLEAN_ENV = {
    "PILOT_ENV": "",
    "PILOT_LOG_LEVEL": "",
    "PILOT_CONFIG": "",
    "API_KEY": "",
    "BROWSERBASE_API_KEY": "",
    "BROWSERBASE_PROJECT_ID": "",
    "BROWSERBASE_API_URL": "",
    "PILOT_LLM_PROVIDER": "",
    "PILOT_LLM_MODEL": "",
    "OPENAI_API_KEY": "",
    "ANTHROPIC_API_KEY": "",
    "PILOT_GOTO_TIMEOUT_MS": "",
    "PILOT_REQUEST_TIMEOUT_S": "",
    "PILOT_MAX_STEPS": "",
    "PILOT_HOST": "",
    "PILOT_PORT": "",
}


class TestSettingsDefaults:

    def test_default_values(self):
        settings = Settings()
        assert settings.env == "development"
        assert settings.browserbase_api_url == DEFAULT_BROWSERBASE_API_URL
        assert settings.llm_provider == "openai"
        assert settings.goto_timeout_ms == 60000
        assert settings.max_steps == 50
        assert settings.port == 3000
        assert settings.api_key is None

    def test_goto_timeout_lower_bound(self):
        with pytest.raises(Exception):
            Settings(goto_timeout_ms=10)

    def test_unknown_provider_rejected(self):
        with pytest.raises(Exception):
            Settings(llm_provider="mistral")


class TestFromEnv:

    def test_reads_environment(self):
        env = {
            **_CLEAN_ENV,
            "API_KEY": "secret",
            "BROWSERBASE_API_KEY": "bb",
            "BROWSERBASE_PROJECT_ID": "proj",
            "PILOT_GOTO_TIMEOUT_MS": "30000",
            "PILOT_LLM_PROVIDER": "anthropic",
        }
        with patch.dict("os.environ", env):
            settings = Settings.from_env()
        assert settings.api_key == "secret"
        assert settings.browserbase_api_key == "bb"
        assert settings.browserbase_project_id == "proj"
        assert settings.goto_timeout_ms == 30000
        assert settings.llm_provider == "anthropic"

    def test_env_overrides_base(self):
        with patch.dict("os.environ", {**_CLEAN_ENV, "PILOT_PORT": "8080"}):
            settings = Settings.from_env(base={"port": 9000, "host": "0.0.0.0"})
        assert settings.port == 8080
        assert settings.host == "0.0.0.0"

    def test_blank_env_values_ignored(self):
        with patch.dict("os.environ", {**_CLEAN_ENV, "PILOT_PORT": "   "}):
            settings = Settings.from_env()
        assert settings.port == 3000

    def test_invalid_value_is_configuration_error(self):
        with patch.dict("os.environ", {**_CLEAN_ENV, "PILOT_PORT": "not-a-port"}):
            with pytest.raises(ConfigurationError) as exc_info:
                Settings.from_env()
        assert exc_info.value.details["errors"]


class TestLoadSettings:

    def test_no_file_uses_environment(self):
        with patch.dict("os.environ", {**_CLEAN_ENV, "API_KEY": "k"}):
            settings = load_settings()
        assert settings.api_key == "k"

    def test_yaml_layered_under_env(self, tmp_path):
        config = tmp_path / "pilot.yaml"
        config.write_text("port: 4000\nmax_steps: 12\napi_key: from-file\n")
        with patch.dict("os.environ", {**_CLEAN_ENV, "API_KEY": "from-env"}):
            settings = load_settings(config)
        assert settings.port == 4000
        assert settings.max_steps == 12
        assert settings.api_key == "from-env"

    def test_pilot_config_env_var(self, tmp_path):
        config = tmp_path / "pilot.yaml"
        config.write_text("host: 10.0.0.1\n")
        with patch.dict("os.environ", {**_CLEAN_ENV, "PILOT_CONFIG": str(config)}):
            settings = load_settings()
        assert settings.host == "10.0.0.1"

    def test_empty_yaml_is_allowed(self, tmp_path):
        config = tmp_path / "pilot.yaml"
        config.write_text("")
        with patch.dict("os.environ", _CLEAN_ENV):
            settings = load_settings(config)
        assert settings.port == 3000

    def test_missing_file(self, tmp_path):
        with patch.dict("os.environ", _CLEAN_ENV):
            with pytest.raises(ConfigurationError, match="Config not found"):
                load_settings(tmp_path / "nope.yaml")

    def test_non_mapping_yaml(self, tmp_path):
        config = tmp_path / "pilot.yaml"
        config.write_text("- just\n- a list\n")
        with patch.dict("os.environ", _CLEAN_ENV):
            with pytest.raises(ConfigurationError, match="mapping"):
                load_settings(config)


class TestCredentialChecks:

    def test_require_browserbase(self):
        settings = Settings(browserbase_api_key="bb", browserbase_project_id="proj")
        assert settings.require_browserbase() == ("bb", "proj")

    def test_require_browserbase_missing_project(self):
        settings = Settings(browserbase_api_key="bb")
        with pytest.raises(ConfigurationError):
            settings.require_browserbase()

    def test_require_llm_key_follows_provider(self):
        settings = Settings(llm_provider="anthropic", anthropic_api_key="ant", openai_api_key="oa")
        assert settings.require_llm_key() == "ant"

    def test_require_llm_key_missing(self):
        with pytest.raises(ConfigurationError):
            Settings(llm_provider="openai").require_llm_key()

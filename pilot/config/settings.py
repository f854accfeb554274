"""
Runtime settings for Pilot.

Defines Settings (Pydantic model) holding credentials for the inbound API,
Browserbase, and the reasoning-model provider, plus timeouts and server
options. Values come from environment variables, optionally layered over
a YAML file.

Usage:
    from pilot.config.settings import Settings, load_settings

    settings = Settings.from_env()                 # environment only
    settings = load_settings("pilot.yaml")         # YAML, then env overrides
    settings.require_browserbase()                 # raises ConfigurationError
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaValidationError

from pilot.exceptions import ConfigurationError


DEFAULT_BROWSERBASE_API_URL = "https://api.browserbase.com/v1"

# env var -> Settings field
_ENV_FIELDS: dict[str, str] = {
    "PILOT_ENV": "env",
    "PILOT_LOG_LEVEL": "log_level",
    "API_KEY": "api_key",
    "BROWSERBASE_API_KEY": "browserbase_api_key",
    "BROWSERBASE_PROJECT_ID": "browserbase_project_id",
    "BROWSERBASE_API_URL": "browserbase_api_url",
    "PILOT_LLM_PROVIDER": "llm_provider",
    "PILOT_LLM_MODEL": "llm_model",
    "OPENAI_API_KEY": "openai_api_key",
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "PILOT_GOTO_TIMEOUT_MS": "goto_timeout_ms",
    "PILOT_REQUEST_TIMEOUT_S": "request_timeout_s",
    "PILOT_MAX_STEPS": "max_steps",
    "PILOT_HOST": "host",
    "PILOT_PORT": "port",
}


class Settings(BaseModel):
    """
    Configuration for a Pilot deployment.

    Attributes:
        env: Deployment environment; "production" switches logs to JSON.
        log_level: Root log level name.
        api_key: Credential callers must send in X-API-Key.
        browserbase_api_key: Browserbase API key.
        browserbase_project_id: Browserbase project sessions are billed to.
        browserbase_api_url: Base URL of the Browserbase REST API.
        llm_provider: Which reasoning-model SDK to use.
        llm_model: Model name; empty means the provider's default profile.
        openai_api_key: Key for the OpenAI provider.
        anthropic_api_key: Key for the Anthropic provider.
        goto_timeout_ms: Upper bound for a GOTO to commit.
        request_timeout_s: Timeout for each Browserbase REST call.
        max_steps: Ceiling on planned steps per run (None disables it).
        host: Bind address for `main.py serve`.
        port: Bind port for `main.py serve`.
    """

    # ─── Runtime ────────────────────────────────────────────────
    env: str = Field("development", description="Deployment environment")
    log_level: str = Field("INFO", description="Root log level")

    # ─── Inbound Auth ───────────────────────────────────────────
    api_key: Optional[str] = Field(
        None,
        description="Credential required in the X-API-Key header",
    )

    # ─── Browserbase ────────────────────────────────────────────
    browserbase_api_key: Optional[str] = Field(None, description="Browserbase API key")
    browserbase_project_id: Optional[str] = Field(None, description="Browserbase project id")
    browserbase_api_url: str = Field(
        DEFAULT_BROWSERBASE_API_URL,
        description="Browserbase REST API base URL",
    )

    # ─── Reasoning Model ────────────────────────────────────────
    llm_provider: Literal["openai", "anthropic"] = Field(
        "openai",
        description="Reasoning-model provider",
    )
    llm_model: Optional[str] = Field(
        None,
        description="Model override (defaults to the provider's profile)",
    )
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    anthropic_api_key: Optional[str] = Field(None, description="Anthropic API key")

    # ─── Timing ─────────────────────────────────────────────────
    goto_timeout_ms: int = Field(
        60000,
        ge=1000,
        description="Max milliseconds for a navigation to commit",
    )
    request_timeout_s: float = Field(
        30.0,
        gt=0.0,
        description="Timeout for each Browserbase REST call (seconds)",
    )
    max_steps: Optional[int] = Field(
        50,
        ge=1,
        description="Ceiling on planned steps per run",
    )

    # ─── Server ─────────────────────────────────────────────────
    host: str = Field("127.0.0.1", description="Bind address")
    port: int = Field(3000, ge=1, le=65535, description="Bind port")

    def require_browserbase(self) -> tuple[str, str]:
        """Return (api_key, project_id) or raise ConfigurationError."""
        if not self.browserbase_api_key:
            raise ConfigurationError(
                "BROWSERBASE_API_KEY environment variable is not set",
                setting="browserbase_api_key",
            )
        if not self.browserbase_project_id:
            raise ConfigurationError(
                "BROWSERBASE_PROJECT_ID environment variable is not set",
                setting="browserbase_project_id",
            )
        return self.browserbase_api_key, self.browserbase_project_id

    def require_llm_key(self) -> str:
        """Return the API key of the configured provider or raise."""
        if self.llm_provider == "anthropic":
            key, name = self.anthropic_api_key, "ANTHROPIC_API_KEY"
        else:
            key, name = self.openai_api_key, "OPENAI_API_KEY"
        if not key:
            raise ConfigurationError(
                f"{name} environment variable is not set",
                setting=name.lower(),
            )
        return key

    @classmethod
    def from_env(cls, base: Optional[dict[str, Any]] = None) -> "Settings":
        """
        Create settings from environment variables.

        Args:
            base: Values to start from (e.g. a parsed YAML file). Set
                environment variables take precedence over them.

        Raises:
            ConfigurationError: If the combined values fail validation.
        """
        kwargs: dict[str, Any] = dict(base or {})
        for env_name, field_name in _ENV_FIELDS.items():
            value = os.environ.get(env_name)
            if value is not None and value.strip() != "":
                kwargs[field_name] = value.strip()

        try:
            return cls(**kwargs)
        except SchemaValidationError as e:
            raise ConfigurationError(
                f"Invalid settings: {e.error_count()} validation error(s)",
                details={"errors": e.errors(include_url=False)},
            ) from e


def load_settings(config_path: Optional[str | Path] = None) -> Settings:
    """
    Load settings from an optional YAML file, then the environment.

    Args:
        config_path: Path to a YAML mapping of Settings fields. Falls back
            to the PILOT_CONFIG env var; no file means environment only.

    Raises:
        ConfigurationError: If the file is missing, not a mapping, or the
            resulting settings are invalid.
    """
    config_path = config_path or os.environ.get("PILOT_CONFIG")
    if not config_path:
        return Settings.from_env()

    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Config not found: {path}", setting="PILOT_CONFIG")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Config file must contain a mapping: {path}",
            setting="PILOT_CONFIG",
        )

    return Settings.from_env(base=raw)

"""
LLM Configuration — provider profiles for the reasoning model.

Each provider has one default profile; a Settings.llm_model override
swaps the model name while keeping the provider's sampling defaults.

Usage:
    from pilot.llm.llm_config import profile_for

    profile = profile_for(settings)
    # → ModelProfile(provider="openai", model="gpt-4o", ...)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from pilot.config.settings import Settings


# ---------------------------------------------------------------------------
# Model Profile
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelProfile:
    """Provider, model name, sampling defaults and list pricing."""

    provider: str
    model: str
    temperature: float = 0.2
    max_tokens: int = 2048
    input_price: float = 0.0     # USD per 1K tokens
    output_price: float = 0.0

    @property
    def display_name(self) -> str:
        return f"{self.provider}/{self.model}"

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens / 1000 * self.input_price
            + output_tokens / 1000 * self.output_price
        )


# ---------------------------------------------------------------------------
# Known Profiles
# ---------------------------------------------------------------------------

GPT_4O = ModelProfile(
    provider="openai",
    model="gpt-4o",
    input_price=0.0025,
    output_price=0.01,
)

GPT_4O_MINI = ModelProfile(
    provider="openai",
    model="gpt-4o-mini",
    input_price=0.00015,
    output_price=0.0006,
)

CLAUDE_SONNET = ModelProfile(
    provider="anthropic",
    model="claude-sonnet-4-20250514",
    input_price=0.003,
    output_price=0.015,
)

DEFAULT_PROFILES: dict[str, ModelProfile] = {
    "openai": GPT_4O,
    "anthropic": CLAUDE_SONNET,
}

KNOWN_PROFILES: dict[str, ModelProfile] = {
    p.model: p for p in (GPT_4O, GPT_4O_MINI, CLAUDE_SONNET)
}


def profile_for(settings: Settings, model: Optional[str] = None) -> ModelProfile:
    """
    Resolve the profile for the configured provider.

    Args:
        settings: Provides llm_provider and the optional llm_model override.
        model: Explicit model name, taking precedence over settings.

    Raises:
        ValueError: For an unsupported provider.
    """
    try:
        profile = DEFAULT_PROFILES[settings.llm_provider]
    except KeyError:
        raise ValueError(f"Unsupported provider: {settings.llm_provider}") from None

    override = model or settings.llm_model
    known = KNOWN_PROFILES.get(override or "")
    if known is not None and known.provider == profile.provider:
        return known
    if override and override != profile.model:
        # Unknown model: keep sampling defaults, drop pricing
        profile = replace(profile, model=override, input_price=0.0, output_price=0.0)
    return profile

"""
Model Router — schema-constrained structured completion.

Sends one user message (text plus optional screenshots) to the configured
provider and returns an instance of the requested Pydantic schema. The
schema is enforced by the provider (OpenAI strict json_schema, Anthropic
forced tool use) and validated again locally; a response that does not
conform raises PlanningError instead of being repaired.

Usage:
    from pilot.llm.router import ModelRouter

    router = ModelRouter(settings)
    step = await router.generate_object(
        "Determine the next step...",
        Step,
        images=[{"media_type": "image/png", "data": screenshot_b64}],
    )
    print(router.get_usage_stats())
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from pilot.config.settings import Settings
from pilot.exceptions import PilotError, PlanningError
from pilot.llm.llm_config import ModelProfile, profile_for

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Response Type
# ---------------------------------------------------------------------------

@dataclass
class LLMResponse:
    """Raw structured payload from any provider, before validation."""

    data: Any
    provider: str
    model: str
    usage: tuple[int, int] = (0, 0)    # (input, output) tokens
    cost: float = 0.0
    latency_ms: float = 0.0

    @property
    def tokens(self) -> int:
        return sum(self.usage)


@dataclass
class UsageStats:
    """Running totals over every successful call of one router."""

    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0

    def record(self, response: LLMResponse) -> None:
        tokens_in, tokens_out = response.usage
        self.calls += 1
        self.input_tokens += tokens_in
        self.output_tokens += tokens_out
        self.cost_usd += response.cost

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_calls": self.calls,
            "total_cost_usd": round(self.cost_usd, 4),
            "total_input_tokens": self.input_tokens,
            "total_output_tokens": self.output_tokens,
            "total_tokens": self.input_tokens + self.output_tokens,
        }


def strict_json_schema(schema: Type[BaseModel]) -> dict[str, Any]:
    """
    JSON schema of `schema` in the form OpenAI strict mode accepts.

    Pydantic emits `{"$ref": ..., "description": ...}` for enum fields;
    strict mode rejects a $ref with siblings, so the SDK's converter
    inlines those and marks every object closed and fully required.
    """
    from openai.lib._pydantic import to_strict_json_schema

    return to_strict_json_schema(schema)


# ---------------------------------------------------------------------------
# Model Router
# ---------------------------------------------------------------------------

class ModelRouter:
    """
    Structured-output client over the OpenAI or Anthropic SDK.

    Clients are created lazily from settings unless injected. No fallback
    provider and no retries: a failed call is a PlanningError.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        openai_client: Any = None,
        anthropic_client: Any = None,
        profile: Optional[ModelProfile] = None,
    ):
        self.settings = settings
        self.profile = profile or profile_for(settings)
        self._openai = openai_client
        self._anthropic = anthropic_client

        self.usage = UsageStats()

    @property
    def call_count(self) -> int:
        return self.usage.calls

    @property
    def total_cost(self) -> float:
        return self.usage.cost_usd

    # --- Main API ---

    async def generate_object(
        self,
        prompt: str,
        schema: Type[SchemaT],
        *,
        images: Optional[list[dict[str, Any]]] = None,
        stage: str = "generate",
    ) -> SchemaT:
        """
        Ask the model for one object conforming to `schema`.

        Args:
            prompt: User message text.
            schema: Pydantic model the output must satisfy.
            images: Optional [{"media_type": "image/png", "data": "<b64>"}].
            stage: Label carried by PlanningError for diagnostics.

        Raises:
            PlanningError: Provider failure or schema violation.
        """
        try:
            response = await self._call_model(prompt, schema, images)
        except PilotError as e:
            raise PlanningError(str(e), stage=stage) from e
        except Exception as e:
            logger.error(
                "llm_call_failed",
                extra={"stage": stage, "model": self.profile.display_name, "error": str(e)[:200]},
            )
            raise PlanningError(f"Reasoning model call failed: {e}", stage=stage) from e

        self.usage.record(response)

        try:
            result = schema.model_validate(response.data)
        except SchemaValidationError as e:
            logger.warning(
                "llm_schema_violation",
                extra={"stage": stage, "model": self.profile.display_name},
            )
            raise PlanningError(
                f"Model output does not match {schema.__name__} schema: "
                f"{e.error_count()} error(s)",
                stage=stage,
                details={"errors": e.errors(include_url=False), "raw": response.data},
            ) from e

        logger.info(
            "llm_object_generated",
            extra={
                "stage": stage,
                "model": self.profile.display_name,
                "tokens": response.tokens,
                "duration_ms": int(response.latency_ms),
            },
        )
        return result

    # --- Provider Adapters ---

    async def _call_model(
        self,
        prompt: str,
        schema: Type[BaseModel],
        images: Optional[list[dict[str, Any]]],
    ) -> LLMResponse:
        adapters = {
            "openai": self._openai_call,
            "anthropic": self._anthropic_call,
        }
        adapter = adapters.get(self.profile.provider)
        if adapter is None:
            raise ValueError(f"Unsupported provider: {self.profile.provider}")

        started = time.monotonic()
        data, usage = await adapter(prompt, schema, images or [])
        return LLMResponse(
            data=data,
            provider=self.profile.provider,
            model=self.profile.model,
            usage=usage,
            cost=self.profile.estimate_cost(*usage),
            latency_ms=(time.monotonic() - started) * 1000,
        )

    async def _openai_call(
        self,
        prompt: str,
        schema: Type[BaseModel],
        images: list[dict[str, Any]],
    ) -> tuple[Any, tuple[int, int]]:
        """Strict json_schema response format; screenshots as data URLs."""
        parts: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        parts.extend(
            {
                "type": "image_url",
                "image_url": {"url": f"data:{img.get('media_type', 'image/png')};base64,{img['data']}"},
            }
            for img in images
        )

        completion = await self._get_openai().chat.completions.create(
            model=self.profile.model,
            messages=[{"role": "user", "content": parts}],
            temperature=self.profile.temperature,
            max_tokens=self.profile.max_tokens,
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": schema.__name__,
                    "schema": strict_json_schema(schema),
                    "strict": True,
                },
            },
        )

        if not completion.choices:
            raise PlanningError("OpenAI returned no choices")
        message = completion.choices[0].message
        if getattr(message, "refusal", None):
            raise PlanningError(f"Model refused: {message.refusal}")

        try:
            data = json.loads(message.content or "")
        except ValueError as e:
            raise PlanningError(f"Model returned invalid JSON: {e}") from e

        counts = completion.usage
        if counts is None:
            return data, (0, 0)
        return data, (counts.prompt_tokens, counts.completion_tokens)

    async def _anthropic_call(
        self,
        prompt: str,
        schema: Type[BaseModel],
        images: list[dict[str, Any]],
    ) -> tuple[Any, tuple[int, int]]:
        """One forced tool whose input_schema is the target schema."""
        parts: list[dict[str, Any]] = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": img.get("media_type", "image/png"),
                    "data": img["data"],
                },
            }
            for img in images
        ]
        parts.append({"type": "text", "text": prompt})

        tool_name = schema.__name__
        reply = await self._get_anthropic().messages.create(
            model=self.profile.model,
            max_tokens=self.profile.max_tokens,
            temperature=self.profile.temperature,
            messages=[{"role": "user", "content": parts}],
            tools=[{
                "name": tool_name,
                "description": f"Return the answer as a {tool_name} object.",
                "input_schema": schema.model_json_schema(),
            }],
            tool_choice={"type": "tool", "name": tool_name},
        )

        for block in reply.content or []:
            if getattr(block, "type", None) == "tool_use":
                break
        else:
            raise PlanningError("Anthropic response contained no tool_use block")

        return block.input, (
            getattr(reply.usage, "input_tokens", 0),
            getattr(reply.usage, "output_tokens", 0),
        )

    # --- Clients ---

    def _get_openai(self) -> Any:
        if self._openai is None:
            from openai import AsyncOpenAI

            self._openai = AsyncOpenAI(api_key=self.settings.require_llm_key())
        return self._openai

    def _get_anthropic(self) -> Any:
        if self._anthropic is None:
            from anthropic import AsyncAnthropic

            self._anthropic = AsyncAnthropic(api_key=self.settings.require_llm_key())
        return self._anthropic

    def get_usage_stats(self) -> dict[str, Any]:
        """Cumulative calls, tokens, and estimated cost."""
        return self.usage.as_dict()

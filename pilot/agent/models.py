"""
Data model for agent runs.

Step is both the unit of history and the output schema the reasoning
model must satisfy, so it forbids extra fields and is frozen once
produced. AgentEvent is what the loop emits after every transition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Tool(str, Enum):
    """Action kinds a planned Step may perform."""

    GOTO = "GOTO"
    ACT = "ACT"
    EXTRACT = "EXTRACT"
    OBSERVE = "OBSERVE"
    CLOSE = "CLOSE"
    WAIT = "WAIT"
    NAVBACK = "NAVBACK"


class Step(BaseModel):
    """One atomic browser action with its rationale."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    text: str = Field(..., description="Short description of the action")
    reasoning: str = Field(..., description="Why this action moves toward the goal")
    tool: Tool = Field(..., description="Which browser tool performs the action")
    instruction: str = Field(
        ...,
        description=(
            "URL for GOTO, natural-language action for ACT/EXTRACT/OBSERVE, "
            "milliseconds for WAIT, empty for CLOSE/NAVBACK"
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.tool is Tool.CLOSE

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class StartingUrl(BaseModel):
    """Output schema of the navigation prompt."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str = Field(..., description="Absolute http(s) URL to open first")
    reasoning: str = Field(..., description="Why this is a good starting point")

    @field_validator("url")
    @classmethod
    def _absolute_http_url(cls, value: str) -> str:
        parsed = urlparse(value.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"not an absolute http(s) URL: {value!r}")
        return value.strip()


class RunState(str, Enum):
    """Agent loop states."""

    STARTING = "STARTING"
    NAVIGATING = "NAVIGATING"
    STEPPING = "STEPPING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class EventType(str, Enum):
    SESSION_START = "session_start"
    STARTING_URL = "starting_url"
    STEP_COMPLETE = "step_complete"
    STEP_PLANNED = "step_planned"
    STEP_EXECUTED = "step_executed"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENTS = frozenset({EventType.COMPLETE, EventType.ERROR})


@dataclass(frozen=True)
class AgentEvent:
    """A progress event; `to_record()` gives its wire shape."""

    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def to_record(self) -> dict[str, Any]:
        return {"type": self.type.value, **self.payload}

    # --- Constructors (one per wire shape) ---

    @classmethod
    def session_start(
        cls, session_id: str, session_url: str, context_id: Optional[str]
    ) -> "AgentEvent":
        return cls(EventType.SESSION_START, {
            "sessionId": session_id,
            "sessionUrl": session_url,
            "contextId": context_id,
        })

    @classmethod
    def starting_url(cls, url: str, reasoning: str) -> "AgentEvent":
        return cls(EventType.STARTING_URL, {"url": url, "reasoning": reasoning})

    @classmethod
    def step_complete(cls, step: Step) -> "AgentEvent":
        return cls(EventType.STEP_COMPLETE, {"result": step.to_dict(), "done": False})

    @classmethod
    def step_planned(cls, step: Step, done: bool) -> "AgentEvent":
        return cls(EventType.STEP_PLANNED, {"result": step.to_dict(), "done": done})

    @classmethod
    def step_executed(cls, step: Step, extraction: Any) -> "AgentEvent":
        return cls(EventType.STEP_EXECUTED, {
            "extraction": extraction if extraction else None,
            "currentStep": step.to_dict(),
            "url": step.instruction if step.tool is Tool.GOTO else None,
        })

    @classmethod
    def complete(cls, steps: list[Step]) -> "AgentEvent":
        return cls(EventType.COMPLETE, {
            "steps": [s.to_dict() for s in steps],
            "finalResult": steps[-1].to_dict() if steps else None,
        })

    @classmethod
    def error(cls, message: str) -> "AgentEvent":
        return cls(EventType.ERROR, {"error": message or "Unknown error"})

"""
In-process fakes for running agents without Browserbase or a model.

FakeDriver stands in for the Stagehand handle the executor attaches,
ScriptedRouter replays canned model answers, and FakeSessionManager
hands out sessions without any HTTP. Each records what it was asked to
do so tests can assert on call order and release counts.

Usage:
    from pilot.testing.fakes import (
        FakeDriver, FakeSessionManager, ScriptedRouter, make_settings,
    )

    settings = make_settings()
    driver = FakeDriver(extract_result={"price": "$9"})
    executor = ActionExecutor(settings, driver_factory=driver)
    router = ScriptedRouter([
        {"url": "https://example.com", "reasoning": "known shop"},
        {"text": "Done", "reasoning": "found it", "tool": "CLOSE", "instruction": ""},
    ])
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from pilot.browser.sessions import Session, fallback_session_url
from pilot.config.settings import Settings
from pilot.exceptions import PlanningError, SessionCreationError, SessionTerminationError

logger = logging.getLogger(__name__)

FAKE_PNG = b"\x89PNG\r\n\x1a\nfake"


def make_settings(**overrides: Any) -> Settings:
    """Settings with every credential filled in."""
    values: dict[str, Any] = {
        "api_key": "test-key",
        "browserbase_api_key": "bb-test",
        "browserbase_project_id": "proj-test",
        "openai_api_key": "sk-test",
        "goto_timeout_ms": 5000,
    }
    values.update(overrides)
    return Settings(**values)


# ─── Browser Driver ──────────────────────────────────────────────────


class FakePage:
    """
    Records every call the executor makes on a page.

    Args:
        url: Value of `page.url`.
        extract_result: Returned by extract().
        observe_result: Returned by observe().
        errors: Method name → exception to raise from that method.
        goto_delay: Seconds goto() sleeps before returning.
    """

    def __init__(
        self,
        *,
        url: str = "https://example.com/",
        extract_result: Any = None,
        observe_result: Optional[list[Any]] = None,
        errors: Optional[dict[str, BaseException]] = None,
        goto_delay: float = 0.0,
    ):
        self.url = url
        self.extract_result = extract_result
        self.observe_result = observe_result or []
        self.errors = errors or {}
        self.goto_delay = goto_delay
        self.calls: list[tuple[str, Any]] = []

    def _record(self, name: str, arg: Any = None) -> None:
        self.calls.append((name, arg))
        if name in self.errors:
            raise self.errors[name]

    async def goto(self, url: str, **kwargs: Any) -> None:
        self._record("goto", url)
        if self.goto_delay:
            await asyncio.sleep(self.goto_delay)
        self.url = url

    async def act(self, instruction: str) -> None:
        self._record("act", instruction)

    async def extract(self, instruction: str) -> Any:
        self._record("extract", instruction)
        return self.extract_result

    async def observe(self, instruction: str) -> list[Any]:
        self._record("observe", instruction)
        return self.observe_result

    async def screenshot(self, **kwargs: Any) -> bytes:
        self._record("screenshot")
        return FAKE_PNG

    async def go_back(self) -> None:
        self._record("go_back")

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeHandle:
    """One attached automation handle; shares its page with the driver."""

    def __init__(self, page: FakePage, session_id: str, init_error: Optional[BaseException] = None):
        self.page = page
        self.session_id = session_id
        self.init_error = init_error
        self.initialized = False
        self.closed = False

    async def init(self) -> None:
        if self.init_error is not None:
            raise self.init_error
        self.initialized = True

    async def close(self) -> None:
        self.closed = True


class FakeDriver:
    """
    Driver factory for ActionExecutor.

    Every call creates a new handle on the same FakePage, so tests can
    check that each operation got its own attach/release pair.
    """

    def __init__(self, *, init_error: Optional[BaseException] = None, **page_kwargs: Any):
        self.page = FakePage(**page_kwargs)
        self.init_error = init_error
        self.handles: list[FakeHandle] = []

    def __call__(self, session_id: str) -> FakeHandle:
        handle = FakeHandle(self.page, session_id, self.init_error)
        self.handles.append(handle)
        return handle

    @property
    def all_released(self) -> bool:
        return all(h.closed for h in self.handles)


# ─── Reasoning Model ─────────────────────────────────────────────────


@dataclass
class RouterCall:
    prompt: str
    schema: str
    images: Optional[list[dict[str, Any]]]
    stage: str


class ScriptedRouter:
    """
    Replays model answers in order, with ModelRouter's contract.

    Script entries may be dicts (validated against the requested schema),
    model instances (returned as-is), or exceptions (raised).
    """

    def __init__(self, script: Iterable[Any]):
        self.script = list(script)
        self.calls: list[RouterCall] = []

    async def generate_object(
        self,
        prompt: str,
        schema: Type[BaseModel],
        *,
        images: Optional[list[dict[str, Any]]] = None,
        stage: str = "generate",
    ) -> Any:
        self.calls.append(RouterCall(prompt, schema.__name__, images, stage))
        if not self.script:
            raise PlanningError("Script exhausted", stage=stage)

        answer = self.script.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        if isinstance(answer, BaseModel):
            return answer
        try:
            return schema.model_validate(answer)
        except SchemaValidationError as e:
            raise PlanningError(
                f"Model output does not match {schema.__name__} schema",
                stage=stage,
            ) from e


# ─── Sessions ────────────────────────────────────────────────────────


@dataclass
class FakeSessionManager:
    """
    SessionManager without HTTP.

    Attributes:
        create_error: Raised from create() when set.
        terminate_error: Raised from terminate() when set.
        terminate_delay: Seconds terminate() sleeps before finishing.
        live_view_error: Raised from live_view_url() when set.
    """

    create_error: Optional[BaseException] = None
    terminate_error: Optional[BaseException] = None
    terminate_delay: float = 0.0
    live_view_error: Optional[BaseException] = None
    created: list[Session] = field(default_factory=list)
    create_calls: list[dict[str, Any]] = field(default_factory=list)
    terminated: list[str] = field(default_factory=list)

    async def create(
        self,
        timezone: Optional[str] = None,
        context_id: Optional[str] = None,
    ) -> Session:
        self.create_calls.append({"timezone": timezone, "context_id": context_id})
        if self.create_error is not None:
            raise self.create_error
        session_id = f"sess-{len(self.created) + 1}"
        session = Session(
            session_id=session_id,
            session_url=fallback_session_url(session_id),
            context_id=context_id or f"ctx-{len(self.created) + 1}",
            region="us-west-2",
        )
        self.created.append(session)
        return session

    async def live_view_url(self, session_id: str) -> str:
        if self.live_view_error is not None:
            raise self.live_view_error
        return f"https://live.example/{session_id}"

    async def terminate(self, session_id: str) -> None:
        if self.terminate_delay:
            await asyncio.sleep(self.terminate_delay)
        self.terminated.append(session_id)
        if self.terminate_error is not None:
            raise self.terminate_error


def failing_session_manager(stage: str = "session") -> FakeSessionManager:
    """A manager whose create() fails at `stage`."""
    return FakeSessionManager(
        create_error=SessionCreationError(f"Failed to create {stage}", stage=stage),
    )


def refusing_session_manager() -> FakeSessionManager:
    """A manager whose terminate() always fails."""
    return FakeSessionManager(
        terminate_error=SessionTerminationError("already released", status_code=409),
    )

"""
ActionExecutor — one primitive browser operation per call.

Attaches a fresh automation handle to an existing Browserbase session,
performs a single operation (navigate, act, extract, observe, screenshot,
wait, go back, close), and always releases the handle afterwards. The
remote session itself is never created or ended here.

Architecture:
    ActionExecutor.execute(session_id, tool, instruction)
    +-- attach(session_id)           (async context manager)
    |   +-- driver_factory(session_id) → handle
    |   +-- handle.init()
    |   +-- handle.page              (goto / act / extract / observe / ...)
    |   +-- handle.close()           (always, even when init fails)

Usage:
    from pilot.browser.executor import ActionExecutor

    executor = ActionExecutor(settings)
    await executor.execute(session_id, "GOTO", "https://example.com")
    data = await executor.execute(session_id, "EXTRACT", "the product price")
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Callable, Optional, Protocol

from pilot.config.settings import Settings
from pilot.exceptions import ActionExecutionError, NavigationTimeoutError, PilotError
from pilot.llm.llm_config import profile_for

logger = logging.getLogger(__name__)

# Longest pause a planned WAIT may take.
MAX_WAIT_MS = 30_000


class BrowserMethod(str, Enum):
    """Operations the executor can perform. A superset of Tool."""

    GOTO = "GOTO"
    ACT = "ACT"
    EXTRACT = "EXTRACT"
    OBSERVE = "OBSERVE"
    CLOSE = "CLOSE"
    WAIT = "WAIT"
    NAVBACK = "NAVBACK"
    SCREENSHOT = "SCREENSHOT"


class DriverHandle(Protocol):
    """What a driver factory must return (Stagehand satisfies this)."""

    page: Any

    async def init(self) -> Any: ...

    async def close(self) -> Any: ...


DriverFactory = Callable[[str], DriverHandle]


def stagehand_model_name(settings: Settings) -> str:
    """Stagehand's `provider/model` name for the configured reasoning model."""
    return profile_for(settings).display_name


def stagehand_driver_factory(settings: Settings) -> DriverFactory:
    """
    Build a factory producing Stagehand handles bound to a Browserbase session.

    Stagehand runs its act/extract/observe inference on the same provider
    and model as the planner, so one API key serves both.

    Stagehand is imported lazily so the package imports (and tests run)
    without it installed.
    """

    def factory(session_id: str) -> DriverHandle:
        try:
            from stagehand import Stagehand, StagehandConfig
        except ImportError as e:
            raise ActionExecutionError(
                "stagehand is not installed. Run: pip install stagehand",
                session_id=session_id,
            ) from e

        config = StagehandConfig(
            env="BROWSERBASE",
            api_key=settings.browserbase_api_key,
            project_id=settings.browserbase_project_id,
            browserbase_session_id=session_id,
            model_name=stagehand_model_name(settings),
            model_api_key=settings.require_llm_key(),
            use_api=False,
            verbose=0,
        )
        return Stagehand(config)

    return factory


def _to_jsonable(value: Any) -> Any:
    """Flatten driver results (pydantic models, lists of them) to plain data."""
    if hasattr(value, "model_dump"):
        return value.model_dump()
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


def _is_timeout(error: BaseException) -> bool:
    # Playwright raises its own TimeoutError type; match it by name so the
    # driver stays an optional import.
    return isinstance(error, asyncio.TimeoutError) or type(error).__name__ == "TimeoutError"


class ActionExecutor:
    """
    Executes primitive browser operations against a named remote session.

    Args:
        settings: Settings providing credentials and the GOTO timeout.
        driver_factory: Callable mapping a session id to an unopened driver
            handle. Defaults to Stagehand in BROWSERBASE mode.
    """

    def __init__(
        self,
        settings: Settings,
        driver_factory: Optional[DriverFactory] = None,
    ) -> None:
        self.settings = settings
        self.goto_timeout_ms = settings.goto_timeout_ms
        self._driver_factory = driver_factory or stagehand_driver_factory(settings)

    # ─── Handle Scope ────────────────────────────────────────────────

    @asynccontextmanager
    async def attach(self, session_id: str) -> AsyncIterator[Any]:
        """
        Open an automation handle on `session_id` and yield its page.

        The handle is released on every exit path. If opening fails, a
        release is still attempted; a failure of that release is logged
        and swallowed so the original error surfaces.
        """
        handle = None
        try:
            handle = self._driver_factory(session_id)
            await handle.init()
        except PilotError:
            await self._release(handle, session_id)
            raise
        except Exception as e:
            await self._release(handle, session_id)
            raise ActionExecutionError(
                f"Failed to attach to session {session_id}: {e}",
                session_id=session_id,
            ) from e

        try:
            yield handle.page
        finally:
            await self._release(handle, session_id)

    async def _release(self, handle: Optional[DriverHandle], session_id: str) -> None:
        if handle is None:
            return
        try:
            await handle.close()
        except Exception as e:
            logger.warning(
                "driver_release_failed",
                extra={"session_id": session_id, "error": str(e)},
            )

    # ─── Core Operations ─────────────────────────────────────────────

    async def execute(
        self,
        session_id: str,
        tool: str | BrowserMethod,
        instruction: Optional[str] = None,
    ) -> Any:
        """
        Perform one browser operation.

        Returns:
            EXTRACT → extracted content; OBSERVE → list of candidates;
            SCREENSHOT → base64 PNG; everything else → None.

        Raises:
            NavigationTimeoutError: GOTO did not commit in time.
            ActionExecutionError: Any other driver failure (carries tool).
        """
        try:
            method = BrowserMethod(tool.value if isinstance(tool, Enum) else tool)
        except ValueError as e:
            raise ActionExecutionError(f"Unknown browser method: {tool}", tool=str(tool)) from e

        start = time.monotonic()

        if method is BrowserMethod.WAIT:
            await self._wait(session_id, instruction)
            return None

        try:
            async with self.attach(session_id) as page:
                result = await self._dispatch(page, method, instruction, session_id)
        except ActionExecutionError as e:
            if e.tool is None:
                e.tool = method.value
            raise
        except PilotError:
            raise
        except Exception as e:
            logger.error(
                "browser_action_failed",
                extra={"session_id": session_id, "tool": method.value, "error": str(e)},
            )
            raise ActionExecutionError(
                f"Failed to execute {method.value}: {e}",
                tool=method.value,
                session_id=session_id,
            ) from e

        logger.info(
            "browser_action_completed",
            extra={
                "session_id": session_id,
                "tool": method.value,
                "duration_ms": int((time.monotonic() - start) * 1000),
            },
        )
        return result

    async def current_url(self, session_id: str) -> Optional[str]:
        """Best-effort URL of the session's current page; None on any failure."""
        try:
            async with self.attach(session_id) as page:
                url = page.url
                if asyncio.iscoroutine(url):
                    url = await url
                return url or None
        except Exception as e:
            logger.debug(
                "current_url_unavailable",
                extra={"session_id": session_id, "error": str(e)},
            )
            return None

    # ─── Private Helpers ─────────────────────────────────────────────

    async def _dispatch(
        self,
        page: Any,
        method: BrowserMethod,
        instruction: Optional[str],
        session_id: str,
    ) -> Any:
        if method is BrowserMethod.GOTO:
            await self._goto(page, instruction, session_id)
            return None

        if method is BrowserMethod.ACT:
            await page.act(self._require(instruction, method))
            return None

        if method is BrowserMethod.EXTRACT:
            result = await page.extract(self._require(instruction, method))
            extraction = getattr(result, "extraction", result)
            return _to_jsonable(extraction)

        if method is BrowserMethod.OBSERVE:
            results = await page.observe(instruction or "")
            return _to_jsonable(list(results or []))

        if method is BrowserMethod.SCREENSHOT:
            data = await page.screenshot(type="png")
            return base64.b64encode(data).decode("ascii")

        if method is BrowserMethod.NAVBACK:
            await page.go_back()
            return None

        # CLOSE: releasing the handle on scope exit is the whole operation.
        return None

    async def _goto(self, page: Any, url: Optional[str], session_id: str) -> None:
        url = self._require(url, BrowserMethod.GOTO)
        timeout_s = self.goto_timeout_ms / 1000
        try:
            await asyncio.wait_for(
                page.goto(url, wait_until="commit", timeout=self.goto_timeout_ms),
                timeout=timeout_s,
            )
        except Exception as e:
            if not _is_timeout(e):
                raise
            logger.warning(
                "navigation_timeout",
                extra={"session_id": session_id, "url": url, "timeout_ms": self.goto_timeout_ms},
            )
            raise NavigationTimeoutError(
                f"Navigation to {url} did not commit within {self.goto_timeout_ms} ms",
                url=url,
                timeout_ms=self.goto_timeout_ms,
                session_id=session_id,
            ) from e

    async def _wait(self, session_id: str, instruction: Optional[str]) -> None:
        try:
            duration_ms = int(float((instruction or "").strip()))
        except (ValueError, OverflowError) as e:
            raise ActionExecutionError(
                f"WAIT needs a duration in milliseconds, got {instruction!r}",
                tool=BrowserMethod.WAIT.value,
                session_id=session_id,
            ) from e

        if duration_ms > MAX_WAIT_MS:
            logger.warning(
                "wait_clamped",
                extra={"session_id": session_id, "requested_ms": duration_ms, "max_ms": MAX_WAIT_MS},
            )
            duration_ms = MAX_WAIT_MS
        await asyncio.sleep(max(duration_ms, 0) / 1000)

    @staticmethod
    def _require(instruction: Optional[str], method: BrowserMethod) -> str:
        if not instruction:
            raise ActionExecutionError(
                f"{method.value} requires an instruction",
                tool=method.value,
            )
        return instruction

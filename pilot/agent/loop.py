"""
AgentLoop — the orchestrator of a browser agent run.

Resolves a session, asks for a starting URL, then alternates
Planner → ActionExecutor until the model answers CLOSE or something
fails. Every transition yields an AgentEvent; the consumer pulls them
one at a time, so closing the iterator stops the run at its next
network round trip.

State machine:
    STARTING ──► NAVIGATING ──► STEPPING ⟲ ──► COMPLETE
        │             │             │
        └─────────────┴─────────────┴──────► FAILED

Session ownership is explicit on AgentRun: only a session the run
created itself is released during cleanup, and only once.

Usage:
    from pilot.agent.loop import AgentLoop, AgentRun

    loop = AgentLoop(session_manager, executor, planner)
    run = AgentRun(goal="find the price of item X")
    async for event in loop.run(run):
        print(event.to_record())
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from pilot.agent.models import AgentEvent, RunState, Step, Tool
from pilot.agent.planner import Planner
from pilot.browser.executor import ActionExecutor, BrowserMethod
from pilot.browser.sessions import Session, SessionManager, fallback_session_url
from pilot.exceptions import SessionError, SessionTerminationError, StepLimitExceededError
from pilot.observability.logging_config import clear_run_id, set_run_id

logger = logging.getLogger(__name__)


@dataclass
class AgentRun:
    """
    Mutable state of one agent run.

    Args:
        goal: Natural-language objective; never modified.
        session_id: Caller-supplied session to reuse. The run never
            releases a session it did not create.
        timezone: Region hint used only when a session is created.
        context_id: Persisted context used only when a session is created.
    """

    goal: str
    session_id: Optional[str] = None
    timezone: Optional[str] = None
    context_id: Optional[str] = None
    run_id: str = field(default_factory=lambda: f"run-{uuid.uuid4().hex[:12]}")

    state: RunState = RunState.STARTING
    session: Optional[Session] = None
    owns_session: bool = False
    steps: list[Step] = field(default_factory=list)
    last_result: Any = None
    planned_steps: int = 0
    terminated: bool = False
    error: Optional[str] = None


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class AgentLoop:
    """
    Drives AgentRuns through the planning/execution state machine.

    Holds no per-run state, so one instance can serve concurrent runs on
    different sessions.

    Args:
        session_manager: Creates and releases Browserbase sessions.
        executor: Performs browser operations.
        planner: Produces starting URLs and next steps.
        max_steps: Ceiling on planned steps per run (None = unbounded).
    """

    def __init__(
        self,
        session_manager: SessionManager,
        executor: ActionExecutor,
        planner: Planner,
        *,
        max_steps: Optional[int] = 50,
    ) -> None:
        self.session_manager = session_manager
        self.executor = executor
        self.planner = planner
        self.max_steps = max_steps
        self._releases: set[asyncio.Task] = set()

    # ─── STARTING ────────────────────────────────────────────────────

    async def start(self, run: AgentRun) -> Session:
        """
        Resolve the run's session.

        A caller-supplied session is used verbatim; otherwise one is created
        and marked as owned by the run.

        Raises:
            SessionCreationError: Creation failed (nothing to clean up).
        """
        if run.session is not None:
            return run.session

        if run.session_id:
            run.session = Session(
                session_id=run.session_id,
                session_url=await self._describe(run.session_id),
                context_id=run.context_id,
            )
            run.owns_session = False
        else:
            run.session = await self.session_manager.create(
                timezone=run.timezone,
                context_id=run.context_id,
            )
            run.owns_session = True

        logger.info(
            "agent_session_resolved",
            extra={
                "run_id": run.run_id,
                "session_id": run.session.session_id,
                "owned": run.owns_session,
            },
        )
        return run.session

    # ─── Main Loop ───────────────────────────────────────────────────

    async def run(self, run: AgentRun) -> AsyncIterator[AgentEvent]:
        """
        Execute the run, yielding one event per transition.

        Never raises for run failures: they become a single terminal
        `error` event. Cleanup of an owned session always happens when the
        iterator finishes, fails, or is closed early.
        """
        set_run_id(run.run_id)
        started = time.monotonic()
        try:
            try:
                session = await self.start(run)
            except Exception as e:
                self._fail(run, e)
                yield AgentEvent.error(_error_message(e))
                return

            yield AgentEvent.session_start(
                session.session_id, session.session_url, session.context_id
            )

            try:
                # NAVIGATING
                self._transition(run, RunState.NAVIGATING)
                start = await self.planner.select_starting_url(run.goal)
                yield AgentEvent.starting_url(start.url, start.reasoning)

                first_step = Step(
                    text=f"Navigating to {start.url}",
                    reasoning=start.reasoning,
                    tool=Tool.GOTO,
                    instruction=start.url,
                )
                await self.executor.execute(session.session_id, BrowserMethod.GOTO, start.url)
                run.steps.append(first_step)
                yield AgentEvent.step_complete(first_step)

                # STEPPING
                self._transition(run, RunState.STEPPING)
                while True:
                    if self.max_steps is not None and run.planned_steps >= self.max_steps:
                        raise StepLimitExceededError(
                            f"Goal not reached within {self.max_steps} steps",
                            max_steps=self.max_steps,
                        )

                    plan = await self.planner.plan_next(
                        run.goal,
                        run.steps,
                        run.last_result,
                        session_id=session.session_id,
                    )
                    run.steps = plan.history
                    run.planned_steps += 1
                    step = plan.step
                    done = step.is_terminal

                    yield AgentEvent.step_planned(step, done)
                    if done:
                        break

                    result = await self.executor.execute(
                        session.session_id, step.tool.value, step.instruction
                    )
                    run.last_result = result
                    yield AgentEvent.step_executed(step, result)

            except Exception as e:
                self._fail(run, e)
                yield AgentEvent.error(_error_message(e))
                return

            self._transition(run, RunState.COMPLETE)
            logger.info(
                "agent_run_completed",
                extra={
                    "run_id": run.run_id,
                    "steps": len(run.steps),
                    "duration_ms": int((time.monotonic() - started) * 1000),
                },
            )
            yield AgentEvent.complete(run.steps)

        finally:
            try:
                await self.cleanup(run)
            finally:
                clear_run_id()

    # ─── Cleanup ─────────────────────────────────────────────────────

    async def cleanup(self, run: AgentRun) -> None:
        """
        Release the run's session if the run owns it. Idempotent.

        Termination failures are logged and swallowed so they cannot mask
        the run's outcome. The release is shielded: a consumer that
        disconnected mid-run still gets its session released.
        """
        if not run.owns_session or run.terminated or run.session is None:
            return

        run.terminated = True
        session_id = run.session.session_id
        release = asyncio.ensure_future(self.session_manager.terminate(session_id))
        self._releases.add(release)
        release.add_done_callback(self._releases.discard)
        try:
            await asyncio.shield(release)
        except SessionTerminationError as e:
            logger.warning(
                "session_cleanup_failed",
                extra={"run_id": run.run_id, "session_id": session_id, "error": str(e)},
            )
        except asyncio.CancelledError:
            logger.info(
                "session_cleanup_detached",
                extra={"run_id": run.run_id, "session_id": session_id},
            )
            raise
        except Exception as e:
            logger.error(
                "session_cleanup_error",
                extra={"run_id": run.run_id, "session_id": session_id, "error": str(e)},
            )

    # ─── Private Helpers ─────────────────────────────────────────────

    async def _describe(self, session_id: str) -> str:
        """Live-view URL of a supplied session, or the inspector URL."""
        try:
            return await self.session_manager.live_view_url(session_id)
        except SessionError as e:
            logger.warning(
                "live_view_unavailable",
                extra={"session_id": session_id, "error": str(e)},
            )
            return fallback_session_url(session_id)

    def _transition(self, run: AgentRun, state: RunState) -> None:
        logger.debug(
            "agent_state_changed",
            extra={"run_id": run.run_id, "state": state.value, "from_state": run.state.value},
        )
        run.state = state

    def _fail(self, run: AgentRun, error: BaseException) -> None:
        run.error = _error_message(error)
        logger.error(
            "agent_run_failed",
            extra={
                "run_id": run.run_id,
                "state": run.state.value,
                "error": run.error,
                "error_type": type(error).__name__,
            },
        )
        run.state = RunState.FAILED

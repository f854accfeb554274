"""
Planner — asks the reasoning model for exactly one next step.

Builds a single request from the goal, the current page URL (best
effort), the full step history, a screenshot once any GOTO has happened,
and the result of the last extraction or observation. The model's answer
must validate against Step; anything else is a PlanningError.

Usage:
    from pilot.agent.planner import Planner

    planner = Planner(router=router, executor=executor)
    start = await planner.select_starting_url("find the price of item X")
    plan = await planner.plan_next(goal, history, last_result, session_id=sid)
    plan.step, plan.history
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from pilot.agent import prompts
from pilot.agent.models import StartingUrl, Step, Tool
from pilot.browser.executor import ActionExecutor, BrowserMethod
from pilot.llm.router import ModelRouter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanResult:
    """The planned step and the history extended by it."""

    step: Step
    history: list[Step]


class Planner:
    """Turns goal + history into the next Step via the reasoning model."""

    def __init__(self, router: ModelRouter, executor: ActionExecutor) -> None:
        self.router = router
        self.executor = executor

    async def select_starting_url(self, goal: str) -> StartingUrl:
        """Single-shot prompt: goal text in, starting URL and reasoning out."""
        return await self.router.generate_object(
            prompts.starting_url_prompt(goal),
            StartingUrl,
            stage="starting_url",
        )

    async def plan_next(
        self,
        goal: str,
        history: Sequence[Step],
        last_result: Any = None,
        *,
        session_id: str,
    ) -> PlanResult:
        """
        Plan one step.

        Raises:
            PlanningError: Model failure or schema violation.
            ActionExecutionError: The screenshot could not be captured.
        """
        current_url = await self.executor.current_url(session_id)

        images: Optional[list[dict[str, Any]]] = None
        if any(step.tool is Tool.GOTO for step in history):
            screenshot = await self.executor.execute(session_id, BrowserMethod.SCREENSHOT)
            images = [{"media_type": "image/png", "data": screenshot}]

        prompt = prompts.next_step_prompt(goal, history, current_url, last_result)
        step = await self.router.generate_object(
            prompt,
            Step,
            images=images,
            stage="next_step",
        )

        logger.debug(
            "step_proposed",
            extra={"session_id": session_id, "tool": step.tool.value},
        )
        return PlanResult(step=step, history=[*history, step])

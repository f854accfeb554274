"""
Tests for the Planner and its prompt rendering.
"""

from __future__ import annotations

import pytest

from pilot.agent import prompts
from pilot.agent.models import StartingUrl, Step, Tool
from pilot.agent.planner import Planner
from pilot.browser.executor import ActionExecutor
from pilot.exceptions import ActionExecutionError, PlanningError
from pilot.testing.fakes import FakeDriver, ScriptedRouter, make_settings

GOTO_STEP = Step(
    text="Navigating to https://shop.example",
    reasoning="known shop",
    tool=Tool.GOTO,
    instruction="https://shop.example",
)
ACT_STEP = Step(text="Search", reasoning="find item", tool=Tool.ACT, instruction="type 'X' in search")
EXTRACT = {"text": "Read price", "reasoning": "price visible", "tool": "EXTRACT", "instruction": "the price"}
CLOSE = {"text": "Done", "reasoning": "price found", "tool": "CLOSE", "instruction": ""}


def _planner(script, **driver_kwargs):
    driver = FakeDriver(**driver_kwargs)
    router = ScriptedRouter(script)
    executor = ActionExecutor(make_settings(), driver_factory=driver)
    return Planner(router, executor), router, driver


# ─── Prompts ─────────────────────────────────────────────────────────


class TestPrompts:

    def test_starting_url_prompt_contains_goal(self):
        prompt = prompts.starting_url_prompt("find the price of item X")
        assert 'Given the goal: "find the price of item X"' in prompt

    def test_empty_history_renders_nothing(self):
        assert prompts.render_history([]) == ""

    def test_history_in_execution_order(self):
        rendered = prompts.render_history([GOTO_STEP, ACT_STEP])
        assert rendered.startswith("Previous steps taken:\n")
        assert rendered.index("Step 1:") < rendered.index("Step 2:")
        assert "- Tool Used: GOTO" in rendered
        assert "- Instruction: type 'X' in search" in rendered

    def test_url_clause(self):
        with_url = prompts.next_step_prompt("g", [], current_url="https://a.example/")
        without = prompts.next_step_prompt("g", [])
        assert "(URL: https://a.example/)" in with_url
        assert "URL:" not in without.split("\n")[0]

    def test_atomic_action_rules_present(self):
        prompt = prompts.next_step_prompt("g", [])
        assert "use only one action at a time" in prompt
        assert "return a step with tool CLOSE" in prompt

    @pytest.mark.parametrize("result,expected", [
        (None, None),
        ("", None),
        ([], None),
        ("$19.99", "The result of the previous extraction is: $19.99."),
        ({"price": 19.99}, 'The result of the previous extraction is: {"price": 19.99}.'),
        (["#buy"], 'The result of the previous observation is: ["#buy"].'),
    ])
    def test_describe_last_result(self, result, expected):
        assert prompts.describe_last_result(result) == expected


# ─── select_starting_url() ───────────────────────────────────────────


class TestSelectStartingUrl:

    @pytest.mark.asyncio
    async def test_returns_validated_url(self):
        planner, router, _ = _planner([{"url": "https://www.google.com", "reasoning": "search"}])
        start = await planner.select_starting_url("find X")

        assert start == StartingUrl(url="https://www.google.com", reasoning="search")
        assert router.calls[0].stage == "starting_url"
        assert router.calls[0].schema == "StartingUrl"
        assert router.calls[0].images is None

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        planner, _, _ = _planner([{"url": "google", "reasoning": "?"}])
        with pytest.raises(PlanningError):
            await planner.select_starting_url("find X")


# ─── plan_next() ─────────────────────────────────────────────────────


class TestPlanNext:

    @pytest.mark.asyncio
    async def test_screenshot_attached_after_goto(self):
        planner, router, driver = _planner([EXTRACT])
        plan = await planner.plan_next("find X", [GOTO_STEP], session_id="sess-1")

        assert plan.step.tool is Tool.EXTRACT
        assert plan.history == [GOTO_STEP, plan.step]
        images = router.calls[0].images
        assert images and images[0]["media_type"] == "image/png"
        assert "screenshot" in driver.page.call_names

    @pytest.mark.asyncio
    async def test_no_screenshot_without_goto(self):
        planner, router, driver = _planner([EXTRACT])
        await planner.plan_next("find X", [ACT_STEP], session_id="sess-1")

        assert router.calls[0].images is None
        assert "screenshot" not in driver.page.call_names

    @pytest.mark.asyncio
    async def test_prompt_includes_url_history_and_last_result(self):
        planner, router, _ = _planner([CLOSE], url="https://shop.example/item")
        await planner.plan_next("find X", [GOTO_STEP], "$19.99", session_id="sess-1")

        prompt = router.calls[0].prompt
        assert "(URL: https://shop.example/item)" in prompt
        assert "Step 1:" in prompt
        assert "The result of the previous extraction is: $19.99." in prompt

    @pytest.mark.asyncio
    async def test_url_failure_is_omitted(self):
        planner, router, _ = _planner([CLOSE], init_error=RuntimeError("cannot attach"))
        plan = await planner.plan_next("find X", [ACT_STEP], session_id="sess-1")

        assert plan.step.is_terminal
        assert "URL:" not in router.calls[0].prompt

    @pytest.mark.asyncio
    async def test_screenshot_failure_propagates(self):
        planner, router, _ = _planner([CLOSE], errors={"screenshot": RuntimeError("crashed")})
        with pytest.raises(ActionExecutionError):
            await planner.plan_next("find X", [GOTO_STEP], session_id="sess-1")
        assert router.calls == []

    @pytest.mark.asyncio
    async def test_input_history_not_mutated(self):
        planner, _, _ = _planner([CLOSE])
        history = [ACT_STEP]
        plan = await planner.plan_next("find X", history, session_id="sess-1")
        assert history == [ACT_STEP]
        assert len(plan.history) == 2

    @pytest.mark.asyncio
    async def test_schema_violation(self):
        planner, _, _ = _planner([{"text": "x", "reasoning": "y", "tool": "FLY", "instruction": ""}])
        with pytest.raises(PlanningError):
            await planner.plan_next("find X", [], session_id="sess-1")

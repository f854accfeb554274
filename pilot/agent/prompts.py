"""Prompt templates for the reasoning model."""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from pilot.agent.models import Step

STARTING_URL_PROMPT = """\
Given the goal: "{goal}", determine the best URL to start from.
Choose from:
1. A relevant search engine (Google, Bing, etc.)
2. A direct URL if you're confident about the target website
3. Any other appropriate starting point

Return an absolute URL that would be most effective for achieving this goal, \
and explain your reasoning."""

NEXT_STEP_PROMPT = """\
Consider the following screenshot of a web page{url_clause}, with the goal being "{goal}".
{history}
Determine the immediate next step to take to achieve the goal.

Important guidelines:
1. Break down complex actions into individual atomic steps
2. For ACT commands, use only one action at a time, such as:
   - Single click on a specific element
   - Type into a single input field
   - Select a single option
3. Avoid combining multiple actions in one instruction
4. If multiple actions are needed, they should be separate steps
5. Your reasoning must justify why this action is the right next step

Tools: GOTO (instruction = URL), ACT (one action), EXTRACT (what to extract), \
OBSERVE (what to look for), WAIT (milliseconds), NAVBACK, CLOSE.

If the goal has been achieved, return a step with tool CLOSE."""

STEP_TEMPLATE = """\
Step {index}:
- Action: {text}
- Reasoning: {reasoning}
- Tool Used: {tool}
- Instruction: {instruction}
"""


def render_history(steps: Sequence[Step]) -> str:
    """Render prior steps in execution order; empty history renders nothing."""
    if not steps:
        return ""
    rendered = "\n".join(
        STEP_TEMPLATE.format(
            index=i,
            text=step.text,
            reasoning=step.reasoning,
            tool=step.tool.value,
            instruction=step.instruction,
        )
        for i, step in enumerate(steps, start=1)
    )
    return f"Previous steps taken:\n{rendered}"


def describe_last_result(result: Any) -> Optional[str]:
    """'The result of the previous observation|extraction is: ...' or None."""
    if result is None or result == "" or result == []:
        return None
    kind = "observation" if isinstance(result, list) else "extraction"
    text = result if isinstance(result, str) else json.dumps(result, default=str)
    return f"The result of the previous {kind} is: {text}."


def next_step_prompt(
    goal: str,
    steps: Sequence[Step],
    current_url: Optional[str] = None,
    last_result: Any = None,
) -> str:
    prompt = NEXT_STEP_PROMPT.format(
        url_clause=f" (URL: {current_url})" if current_url else "",
        goal=goal,
        history=render_history(steps),
    )
    result_text = describe_last_result(last_result)
    if result_text:
        prompt = f"{prompt}\n\n{result_text}"
    return prompt


def starting_url_prompt(goal: str) -> str:
    return STARTING_URL_PROMPT.format(goal=goal)

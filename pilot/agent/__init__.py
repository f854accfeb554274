"""Agent layer: step model, prompts, planner, and the run loop."""

from pilot.agent.loop import AgentLoop, AgentRun
from pilot.agent.models import AgentEvent, EventType, RunState, StartingUrl, Step, Tool
from pilot.agent.planner import PlanResult, Planner

__all__ = [
    "AgentEvent",
    "AgentLoop",
    "AgentRun",
    "EventType",
    "PlanResult",
    "Planner",
    "RunState",
    "StartingUrl",
    "Step",
    "Tool",
]

"""
Browser module for Pilot.

Remote browser sessions hosted on Browserbase and the primitive
operations performed on them.

Components:
- select_region: Timezone → hosting region heuristic
- SessionManager: Session/context lifecycle via the Browserbase REST API
- ActionExecutor: One browser operation per call, handle always released

Usage:
    from pilot.browser import ActionExecutor, SessionManager

    manager = SessionManager(settings)
    session = await manager.create(timezone="America/New_York")
    executor = ActionExecutor(settings)
    await executor.execute(session.session_id, "GOTO", "https://example.com")
"""

from pilot.browser.executor import ActionExecutor, BrowserMethod
from pilot.browser.region import Region, select_region
from pilot.browser.sessions import Session, SessionManager

__all__ = [
    "ActionExecutor",
    "BrowserMethod",
    "Region",
    "Session",
    "SessionManager",
    "select_region",
]

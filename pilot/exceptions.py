"""
Custom exception hierarchy for Pilot.

Structured error handling with clear categories:
- Configuration errors (missing credentials, caught before remote calls)
- Request errors (authentication, validation), answered synchronously
- Session lifecycle errors (provider-side failures, carry the stage)
- Browser action errors (carry the tool that failed)
- Planning errors (reasoning-model failure or schema violation)

Usage:
    from pilot.exceptions import SessionCreationError

    try:
        response = await client.post(url, json=payload)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise SessionCreationError("Failed to create context", stage="context") from e
"""

from __future__ import annotations

from typing import Optional


class PilotError(Exception):
    """
    Root of every error raised by this package.

    `details` carries structured context that the HTTP layer returns
    to callers alongside the message.
    """

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration & Request Errors ────────────────────────────────


class ConfigurationError(PilotError):
    """
    Raised when a required setting or credential is missing.

    Surfaced as a 500 before any remote call is made.
    """

    def __init__(
        self,
        message: str,
        *,
        setting: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.setting = setting


class AuthenticationError(PilotError):
    """Raised when the caller credential is missing or does not match."""


class ValidationError(PilotError):
    """
    Raised when a request is missing required input.

    Not to be confused with pydantic's ValidationError, which signals a
    schema violation and is wrapped into the domain errors below.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.field = field


# ── Session Lifecycle Errors ──────────────────────────────────────


class SessionError(PilotError):
    """Base class for hosting-provider session failures."""

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        session_id: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.stage = stage
        self.session_id = session_id
        self.status_code = status_code


class SessionCreationError(SessionError):
    """
    Raised when a session cannot be created.

    `stage` is one of "credentials", "context", "session", "debug_url".
    """


class SessionTerminationError(SessionError):
    """
    Raised when the provider refuses to release a session.

    Callers treat this as best-effort: log it and keep cleaning up.
    """

    def __init__(
        self,
        message: str,
        *,
        session_id: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(
            message,
            stage="release",
            session_id=session_id,
            status_code=status_code,
            details=details,
        )


# ── Browser Action Errors ─────────────────────────────────────────


class ActionExecutionError(PilotError):
    """Raised when a primitive browser operation fails."""

    def __init__(
        self,
        message: str,
        *,
        tool: Optional[str] = None,
        session_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.tool = tool
        self.session_id = session_id


class NavigationTimeoutError(ActionExecutionError):
    """Raised when a GOTO does not commit within the navigation timeout."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        session_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(
            message,
            tool="GOTO",
            session_id=session_id,
            details=details,
        )
        self.url = url
        self.timeout_ms = timeout_ms


# ── Planning Errors ───────────────────────────────────────────────


class PlanningError(PilotError):
    """
    Raised when the reasoning model fails or returns data that does not
    conform to the requested schema.

    Schema violations are never repaired locally.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.stage = stage


class StepLimitExceededError(PilotError):
    """Raised when a run plans more steps than its configured ceiling."""

    def __init__(
        self,
        message: str,
        *,
        max_steps: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.max_steps = max_steps

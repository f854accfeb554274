"""
HTTP interface for Pilot.

FastAPI application exposing the agent run stream and the session
lifecycle endpoints. All mutating routes are authenticated with the
`X-API-Key` header.

Usage:
    from pilot.server.api import create_app

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)

Endpoints:
    GET    /api/health   — Health check (no auth)
    GET    /api/agent    — Readiness check for the agent route
    POST   /api/agent    — Run an agent, streaming NDJSON events
    POST   /api/session  — Create a session
    DELETE /api/session  — Release a session
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Type, TypeVar

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaValidationError

from pilot import __version__
from pilot.agent.loop import AgentLoop, AgentRun
from pilot.agent.planner import Planner
from pilot.browser.executor import ActionExecutor
from pilot.browser.sessions import SessionManager
from pilot.config.settings import Settings, load_settings
from pilot.exceptions import (
    AuthenticationError,
    ConfigurationError,
    PilotError,
    SessionError,
    ValidationError,
)
from pilot.llm.router import ModelRouter
from pilot.server.auth import create_auth_dependency
from pilot.server.streaming import StreamEmitter

logger = logging.getLogger(__name__)


# ── Request Models ───────────────────────────────────────────


class AgentRequest(BaseModel):
    """Body of POST /api/agent."""
    model_config = ConfigDict(populate_by_name=True)

    goal: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    timezone: Optional[str] = None
    context_id: Optional[str] = Field(default=None, alias="contextId")


class SessionCreateRequest(BaseModel):
    """Body of POST /api/session."""
    model_config = ConfigDict(populate_by_name=True)

    timezone: Optional[str] = None
    context_id: Optional[str] = Field(default=None, alias="contextId")


class SessionDeleteRequest(BaseModel):
    """Body of DELETE /api/session."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(default=None, alias="sessionId")


BodyT = TypeVar("BodyT", bound=BaseModel)


async def read_body(request: Request, model: Type[BodyT]) -> BodyT:
    """
    Parse the JSON body into `model`; an empty body yields its defaults.

    Handlers call this after their auth dependency has run.

    Raises:
        ValidationError: Body is not JSON or does not fit `model` (→ 400).
    """
    raw = await request.body()
    if not raw.strip():
        return model()

    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ValidationError(
            "Invalid request body",
            details={"reason": f"Malformed JSON: {e}"},
        ) from e

    if data is None:
        return model()
    try:
        return model.model_validate(data)
    except SchemaValidationError as e:
        raise ValidationError(
            "Invalid request body",
            details={"errors": jsonable_encoder(e.errors(include_url=False))},
        ) from e


# ── Error Mapping ────────────────────────────────────────────

_STATUS_CODES: list[tuple[type[PilotError], int]] = [
    (ValidationError, 400),
    (AuthenticationError, 401),
    (ConfigurationError, 500),
]


def status_for(error: PilotError) -> int:
    for cls, status_code in _STATUS_CODES:
        if isinstance(error, cls):
            return status_code
    return 500


def error_body(error: str, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": error}
    if details:
        body["details"] = details
    return body


def get_health_response() -> dict[str, Any]:
    return {
        "status": "ok",
        "service": "pilot",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── App Factory ──────────────────────────────────────────────


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_manager: Optional[SessionManager] = None,
    executor: Optional[ActionExecutor] = None,
    router: Optional[ModelRouter] = None,
    agent_loop: Optional[AgentLoop] = None,
    cors_origins: Optional[list[str]] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Collaborators not passed in are built from settings; tests inject
    fakes here.

    Args:
        settings: Runtime settings (default: load_settings()).
        session_manager: Browserbase session client.
        executor: Browser operation executor.
        router: Structured-output model client.
        agent_loop: Fully assembled loop; overrides the three above for runs.
        cors_origins: Allowed CORS origins (default: CORS disabled).

    Returns:
        Configured FastAPI app.
    """
    settings = settings or load_settings()
    session_manager = session_manager or SessionManager(settings)
    if agent_loop is None:
        executor = executor or ActionExecutor(settings)
        router = router or ModelRouter(settings)
        agent_loop = AgentLoop(
            session_manager,
            executor,
            Planner(router, executor),
            max_steps=settings.max_steps,
        )

    app = FastAPI(
        title="Pilot API",
        description="Autonomous browser agent over remote Browserbase sessions.",
        version=__version__,
        docs_url="/api/docs",
        redoc_url=None,
    )

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=["GET", "POST", "DELETE"],
            allow_headers=["*"],
        )

    auth_dep = create_auth_dependency(settings.api_key)

    # ── Exception Handlers ───────────────────────────────

    @app.exception_handler(PilotError)
    async def pilot_error_handler(request: Request, exc: PilotError):
        return JSONResponse(
            status_code=status_for(exc),
            content=error_body(str(exc), exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=error_body("Invalid request body", jsonable_encoder(exc.errors())),
        )

    # ── Health ───────────────────────────────────────────

    @app.get("/api/health", tags=["Health"])
    async def health_check():
        """Health check endpoint (no authentication required)."""
        return get_health_response()

    # ── Agent ────────────────────────────────────────────

    @app.get("/api/agent", tags=["Agent"])
    async def agent_ready():
        return {"message": "Agent API endpoint ready"}

    @app.post("/api/agent", tags=["Agent"])
    async def run_agent(
        request: Request,
        _auth: None = Depends(auth_dep),
    ):
        """
        Run an agent toward `goal`, streaming one JSON event per line.

        The session is resolved before the stream opens, so a creation
        failure is an ordinary 500 response.
        """
        body = await read_body(request, AgentRequest)
        goal = (body.goal or "").strip()
        if not goal:
            raise ValidationError("Missing goal in request body", field="goal")

        run = AgentRun(
            goal=goal,
            session_id=body.session_id,
            timezone=body.timezone,
            context_id=body.context_id,
        )
        logger.info(
            "agent_request_received",
            extra={"run_id": run.run_id, "session_id": body.session_id},
        )

        try:
            await agent_loop.start(run)
        except PilotError as e:
            logger.error(
                "agent_session_unavailable",
                extra={"run_id": run.run_id, "error": str(e)},
            )
            return JSONResponse(
                status_code=500,
                content=error_body("Failed to create session", str(e)),
            )

        # Released here too when the client is gone before the first line.
        emitter = StreamEmitter(agent_loop.run(run))
        return emitter.response(on_close=lambda: agent_loop.cleanup(run))

    # ── Sessions ─────────────────────────────────────────

    @app.post("/api/session", tags=["Sessions"])
    async def create_session(
        request: Request,
        _auth: None = Depends(auth_dep),
    ):
        body = await read_body(request, SessionCreateRequest)
        try:
            session = await session_manager.create(
                timezone=body.timezone,
                context_id=body.context_id,
            )
        except SessionError as e:
            return JSONResponse(
                status_code=500,
                content=error_body("Failed to create session", str(e)),
            )
        return {"success": True, **session.to_dict()}

    @app.delete("/api/session", tags=["Sessions"])
    async def delete_session(
        request: Request,
        _auth: None = Depends(auth_dep),
    ):
        body = await read_body(request, SessionDeleteRequest)
        if not body.session_id:
            raise ValidationError("Missing sessionId in request body", field="sessionId")

        try:
            await session_manager.terminate(body.session_id)
        except SessionError as e:
            return JSONResponse(
                status_code=500,
                content=error_body("Failed to delete session", str(e)),
            )
        return {"success": True}

    return app

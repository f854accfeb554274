"""
Browserbase session lifecycle.

Creates, describes, and releases remote browser sessions through the
Browserbase REST API. A session is bound to a persisted context (cookies,
storage) so a caller can reuse the same browser profile across runs.

Architecture:
    SessionManager.create()
    +-- POST /contexts              (only when no context_id is supplied)
    +-- POST /sessions              (context, region, keepAlive)
    +-- GET  /sessions/{id}/debug   (live-view URL)

    SessionManager.terminate()
    +-- POST /sessions/{id}         (status=REQUEST_RELEASE)

Usage:
    from pilot.browser.sessions import SessionManager

    manager = SessionManager(settings)
    session = await manager.create(timezone="Europe/Berlin")
    ...
    await manager.terminate(session.session_id)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from pilot.browser.region import select_region
from pilot.config.settings import Settings
from pilot.exceptions import (
    ConfigurationError,
    SessionCreationError,
    SessionTerminationError,
)

logger = logging.getLogger(__name__)

INSPECTOR_URL_TEMPLATE = (
    "https://www.browserbase.com/devtools-fullscreen/inspector.html"
    "?wss=connect.browserbase.com/debug/{session_id}/devtools/page/1?debug=true"
)


@dataclass(frozen=True)
class Session:
    """A remote browser session as returned to callers."""

    session_id: str
    session_url: str
    context_id: Optional[str] = None
    region: Optional[str] = None
    connect_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "sessionUrl": self.session_url,
            "contextId": self.context_id,
        }


def fallback_session_url(session_id: str) -> str:
    """Inspector URL for a session whose debug info was not fetched."""
    return INSPECTOR_URL_TEMPLATE.format(session_id=session_id)


class SessionManager:
    """
    Client for the Browserbase session and context endpoints.

    Keeps no local state beyond its configuration; every call goes to the
    provider.

    Args:
        settings: Settings carrying Browserbase credentials and timeouts.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.base_url = settings.browserbase_api_url.rstrip("/")
        self._transport = transport

    # ─── Public API ──────────────────────────────────────────────────

    async def create(
        self,
        timezone: Optional[str] = None,
        context_id: Optional[str] = None,
    ) -> Session:
        """
        Create a keep-alive session, minting a context when none is given.

        Args:
            timezone: Client timezone hint used to pick the region.
            context_id: Existing persisted context to reuse.

        Returns:
            Session with id, live-view URL, and the context id to persist.

        Raises:
            SessionCreationError: With `stage` set to "credentials",
                "context", "session", or "debug_url".
        """
        try:
            api_key, project_id = self.settings.require_browserbase()
        except ConfigurationError as e:
            raise SessionCreationError(str(e), stage="credentials") from e

        region = select_region(timezone).value
        start = time.monotonic()

        async with self._client(api_key) as client:
            if not context_id:
                data = await self._request(
                    client, "POST", "/contexts",
                    stage="context",
                    json={"projectId": project_id},
                )
                context_id = data.get("id")
                if not context_id:
                    raise SessionCreationError(
                        "Failed to create context: response has no id",
                        stage="context",
                        details={"response": data},
                    )
                logger.info("browserbase_context_created", extra={"context_id": context_id})

            data = await self._request(
                client, "POST", "/sessions",
                stage="session",
                json={
                    "projectId": project_id,
                    "browserSettings": {
                        "context": {"id": context_id, "persist": True},
                    },
                    "keepAlive": True,
                    "region": region,
                },
            )
            session_id = data.get("id")
            if not session_id:
                raise SessionCreationError(
                    "Failed to create session: response has no id",
                    stage="session",
                    details={"response": data},
                )

            try:
                debug = await self._request(
                    client, "GET", f"/sessions/{session_id}/debug",
                    stage="debug_url",
                    session_id=session_id,
                )
                debug_url = debug.get("debuggerFullscreenUrl")
                if not debug_url:
                    raise SessionCreationError(
                        "Failed to get debug URL: response has no debuggerFullscreenUrl",
                        stage="debug_url",
                        session_id=session_id,
                        details={"response": debug},
                    )
            except Exception:
                # The keep-alive session exists but is never handed out.
                await self._abandon(client, project_id, session_id)
                raise

        logger.info(
            "browserbase_session_created",
            extra={
                "session_id": session_id,
                "context_id": context_id,
                "region": region,
                "duration_ms": int((time.monotonic() - start) * 1000),
            },
        )
        return Session(
            session_id=session_id,
            session_url=debug_url,
            context_id=context_id,
            region=region,
            connect_url=data.get("connectUrl"),
        )

    async def live_view_url(self, session_id: str) -> str:
        """
        Fetch the live-view (debugger) URL of an existing session.

        Raises:
            SessionCreationError: stage="debug_url" on provider failure.
        """
        try:
            api_key, _ = self.settings.require_browserbase()
        except ConfigurationError as e:
            raise SessionCreationError(str(e), stage="credentials") from e

        async with self._client(api_key) as client:
            debug = await self._request(
                client, "GET", f"/sessions/{session_id}/debug",
                stage="debug_url",
                session_id=session_id,
            )
        url = debug.get("debuggerFullscreenUrl")
        if not url:
            raise SessionCreationError(
                "Debug info has no debuggerFullscreenUrl",
                stage="debug_url",
                session_id=session_id,
            )
        return url

    async def terminate(self, session_id: str) -> None:
        """
        Ask the provider to release a session.

        Raises:
            SessionTerminationError: On missing credentials, transport
                failure, or a non-2xx response (including sessions that
                were already released).
        """
        try:
            api_key, project_id = self.settings.require_browserbase()
        except ConfigurationError as e:
            raise SessionTerminationError(str(e), session_id=session_id) from e

        async with self._client(api_key) as client:
            await self._release(client, project_id, session_id)

        logger.info("browserbase_session_released", extra={"session_id": session_id})

    # ─── Private Helpers ─────────────────────────────────────────────

    async def _release(
        self,
        client: httpx.AsyncClient,
        project_id: str,
        session_id: str,
    ) -> None:
        try:
            response = await client.post(
                f"/sessions/{session_id}",
                json={"projectId": project_id, "status": "REQUEST_RELEASE"},
            )
        except httpx.HTTPError as e:
            raise SessionTerminationError(
                f"Failed to end session: {e}",
                session_id=session_id,
            ) from e

        if response.is_error:
            raise SessionTerminationError(
                f"Failed to end session: {response.text[:200]}",
                session_id=session_id,
                status_code=response.status_code,
            )

    async def _abandon(
        self,
        client: httpx.AsyncClient,
        project_id: str,
        session_id: str,
    ) -> None:
        """Best-effort release of a session whose creation did not finish."""
        try:
            await self._release(client, project_id, session_id)
        except SessionTerminationError as e:
            logger.warning(
                "browserbase_session_abandoned",
                extra={"session_id": session_id, "error": str(e)},
            )
            return
        logger.info("browserbase_session_rolled_back", extra={"session_id": session_id})

    def _client(self, api_key: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Content-Type": "application/json",
                "X-BB-API-Key": api_key,
            },
            timeout=self.settings.request_timeout_s,
            transport=self._transport,
        )

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        *,
        stage: str,
        session_id: Optional[str] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Send one provider request, mapping every failure to its stage."""
        label = stage.replace("_", " ")
        try:
            response = await client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise SessionCreationError(
                f"Failed to {_STAGE_VERBS[stage]}: {e}",
                stage=stage,
                session_id=session_id,
            ) from e

        if response.is_error:
            logger.error(
                "browserbase_request_failed",
                extra={
                    "stage": stage,
                    "session_id": session_id,
                    "status_code": response.status_code,
                },
            )
            raise SessionCreationError(
                f"Failed to {_STAGE_VERBS[stage]}: {response.text[:200]}",
                stage=stage,
                session_id=session_id,
                status_code=response.status_code,
                details={"body": response.text[:1000]},
            )

        try:
            return response.json()
        except ValueError as e:
            raise SessionCreationError(
                f"Invalid JSON from Browserbase during {label}",
                stage=stage,
                session_id=session_id,
            ) from e


_STAGE_VERBS = {
    "context": "create context",
    "session": "create session",
    "debug_url": "get debug URL",
}

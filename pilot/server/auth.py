"""
API key authentication for the HTTP interface.

Every mutating route requires an `X-API-Key` header equal to the
server's configured key. Comparison is constant-time. A server started
without a key refuses all authenticated requests instead of letting
them through.

Usage:
    auth_dep = create_auth_dependency(settings.api_key)

    @app.post("/api/session")
    async def create_session(_auth: None = Depends(auth_dep)):
        ...
"""

from __future__ import annotations

import hmac
import logging
from typing import Callable, Optional

from fastapi import Request

from pilot.exceptions import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


def verify_api_key(provided: str, expected: str) -> bool:
    """Constant-time comparison of two API keys."""
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def create_auth_dependency(expected_key: Optional[str]) -> Callable:
    """
    Create a FastAPI dependency enforcing the `X-API-Key` header.

    Raises (from the dependency):
        ConfigurationError: No key configured server-side (→ 500).
        AuthenticationError: Header missing or wrong (→ 401).
    """

    async def authenticate(request: Request) -> None:
        if not expected_key:
            logger.error("api_key_not_configured", extra={"path": request.url.path})
            raise ConfigurationError(
                "Server misconfigured",
                setting="api_key",
                details={"reason": "API_KEY is not set"},
            )

        provided = request.headers.get(API_KEY_HEADER, "")
        if not provided:
            raise AuthenticationError(
                "Unauthorized",
                details={"reason": f"Missing {API_KEY_HEADER} header"},
            )

        if not verify_api_key(provided, expected_key):
            logger.warning("api_key_rejected", extra={"path": request.url.path})
            raise AuthenticationError(
                "Unauthorized",
                details={"reason": "Invalid API key"},
            )

    return authenticate

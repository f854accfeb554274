"""
Structured logging configuration for Pilot.

Modules log event names with structured fields and never format
messages themselves:

    logger = logging.getLogger(__name__)
    logger.info("browser_action_completed", extra={
        "session_id": "bb-123",
        "tool": "EXTRACT",
        "duration_ms": 812,
    })

configure_logging() decides how those records are rendered:
- production: one JSON object per line on stdout
- anything else: compact colored lines on stderr

Every record emitted while an agent run is active carries that run's
run_id, taken from a ContextVar so concurrent runs on one event loop
never mix their ids.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional

SERVICE_NAME = "pilot"

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "stagehand")

# ─── Run Context ──────────────────────────────────────────────────────

_run_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "pilot_run_id", default=None
)


def set_run_id(run_id: str) -> None:
    """Bind `run_id` to the current task's context."""
    _run_id.set(run_id)


def get_run_id() -> Optional[str]:
    return _run_id.get()


def clear_run_id() -> None:
    _run_id.set(None)


class ContextFilter(logging.Filter):
    """Stamps the active run_id onto records that don't name one."""

    def filter(self, record: logging.LogRecord) -> bool:
        run_id = get_run_id()
        if run_id and getattr(record, "run_id", None) is None:
            record.run_id = run_id  # type: ignore[attr-defined]
        return True


# ─── Formatters ───────────────────────────────────────────────────────

# Attribute names every LogRecord has; anything else came from `extra`.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """The `extra={...}` fields attached to a record, in insertion order."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Output format:
        {"ts": "...", "level": "info", "service": "pilot",
         "logger": "pilot.agent.loop", "event": "agent_run_completed",
         "run_id": "run-...", "steps": 4, "duration_ms": 9120}

    Values that JSON can't encode are rendered with str().
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "service": SERVICE_NAME,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(record_fields(record))

        if record.exc_info and record.exc_info[1] is not None:
            payload["exc_type"] = type(record.exc_info[1]).__name__
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class DevFormatter(logging.Formatter):
    """
    Readable single-line records for local runs.

    Format: HH:MM:SS LEVEL [run_id] logger event key=value ...

    Only the fields in SHOWN_FIELDS are printed, so the line stays short.
    """

    LEVEL_COLORS = {
        "DEBUG": "\033[2m",
        "INFO": "\033[34m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    SHOWN_FIELDS = (
        "session_id", "state", "tool", "stage", "region",
        "status_code", "duration_ms", "error",
    )

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        parts = [
            self.formatTime(record, "%H:%M:%S"),
            f"{color}{record.levelname[:4]}{self.RESET}",
        ]

        run_id = getattr(record, "run_id", None)
        if run_id:
            parts.append(f"[{run_id}]")

        parts.append(f"{record.name} {record.getMessage()}")

        for name in self.SHOWN_FIELDS:
            value = getattr(record, name, None)
            if value is None:
                continue
            parts.append(f"{name}={value}")

        line = " ".join(parts)
        if record.exc_info and record.exc_info[1] is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


# ─── Setup ────────────────────────────────────────────────────────────


def configure_logging(
    env: Optional[str] = None,
    level: int | str = logging.INFO,
) -> None:
    """
    Install a single handler on the root logger.

    Args:
        env: Deployment environment; defaults to PILOT_ENV, then
            "development". "production" selects JSON on stdout.
        level: Root level, as a number or a name such as "debug".

    Calling it again replaces the previous handler.
    """
    env = (env or os.environ.get("PILOT_ENV") or "development").strip().lower()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if env == "production":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(DevFormatter())
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

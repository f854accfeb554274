"""HTTP interface: app factory, API key auth, and NDJSON streaming."""

from pilot.server.api import create_app
from pilot.server.streaming import StreamEmitter

__all__ = ["StreamEmitter", "create_app"]

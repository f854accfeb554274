"""
StreamEmitter — NDJSON framing of agent events.

Pulls events from the loop one at a time and writes each as a single
`json.dumps(record) + "\\n"` line. The stream ends after the first
terminal event; the source iterator is always closed so the loop's
cleanup runs even when the client goes away mid-run.

A client can also be gone before the first line is pulled, in which
case the source never starts and its own cleanup never runs. The
response therefore accepts an `on_close` hook that always runs once the
ASGI exchange ends, however it ends.

Usage:
    from pilot.server.streaming import StreamEmitter

    emitter = StreamEmitter(agent_loop.run(run))
    return emitter.response(on_close=lambda: agent_loop.cleanup(run))
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from fastapi.responses import StreamingResponse

from pilot.agent.models import AgentEvent

logger = logging.getLogger(__name__)

STREAM_MEDIA_TYPE = "text/event-stream"
STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

CloseHook = Callable[[], Awaitable[Any]]


def encode_event(event: AgentEvent) -> str:
    """One event, one line."""
    return json.dumps(event.to_record(), default=str) + "\n"


class EventStreamResponse(StreamingResponse):
    """StreamingResponse that runs `on_close` after the exchange, even on failure."""

    def __init__(self, content: Any, *, on_close: Optional[CloseHook] = None, **kwargs: Any) -> None:
        super().__init__(content, **kwargs)
        self.on_close = on_close

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            if self.on_close is not None:
                await self.on_close()


class StreamEmitter:
    """Serializes an AgentEvent iterator as newline-delimited JSON."""

    def __init__(self, source: AsyncIterator[AgentEvent]) -> None:
        self.source = source
        self._closed = False

    async def lines(self) -> AsyncIterator[str]:
        """
        Yield encoded events until a terminal one has been written.

        If the producer raises, a synthetic `error` line is written so the
        client always sees a terminal record.
        """
        try:
            async for event in self.source:
                yield encode_event(event)
                if event.is_terminal:
                    break
        except Exception as e:
            logger.error("stream_producer_failed", extra={"error": str(e)})
            yield encode_event(AgentEvent.error(str(e)))
        finally:
            await self.close()

    async def close(self) -> None:
        """Close the source iterator once."""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self.source, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.warning("stream_source_close_failed", extra={"error": str(e)})

    def response(self, on_close: Optional[CloseHook] = None) -> StreamingResponse:
        """
        Wrap the lines in a streaming response.

        `on_close` runs after the response ends, including when sending
        fails before the first line.
        """

        async def finish() -> None:
            if on_close is not None:
                await on_close()
            await self.close()

        return EventStreamResponse(
            self.lines(),
            on_close=finish,
            media_type=STREAM_MEDIA_TYPE,
            headers=dict(STREAM_HEADERS),
        )

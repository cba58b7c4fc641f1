"""Translates conversation loop output into client-facing SSE events."""

import json
import time
from datetime import UTC, datetime
from enum import Enum
from typing import AsyncIterator

from dietify.core.loop import ConversationLoop
from dietify.core.messages import HumanMessage
from dietify.observability.logger import get_logger

log = get_logger("streaming")

GENERIC_ERROR = "An error occurred while processing your request"


class StreamPhase(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class StreamClosedError(RuntimeError):
    pass


class EventStream:
    """Open -> message* -> complete | error -> Closed."""

    def __init__(self):
        self.phase = StreamPhase.OPEN
        self._last_id = 0

    def _next_id(self) -> int:
        self._last_id = max(int(time.time() * 1000), self._last_id + 1)
        return self._last_id

    def _ensure_open(self):
        if self.phase is StreamPhase.CLOSED:
            raise StreamClosedError("No events may follow a terminal event")

    def message(self, content: str) -> dict:
        self._ensure_open()
        return {
            "id": self._next_id(),
            "type": "message",
            "content": content,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    def complete(self) -> dict:
        self._ensure_open()
        self.phase = StreamPhase.CLOSED
        return {"type": "complete"}

    def error(self, message: str = GENERIC_ERROR) -> dict:
        self._ensure_open()
        self.phase = StreamPhase.CLOSED
        return {"type": "error", "message": message}


def format_sse(event: dict) -> str:
    return f"data: {json.dumps(event)}\n\n"


async def stream_reply(
    loop: ConversationLoop, thread_id: str, user_id: str, message: HumanMessage
) -> AsyncIterator[dict]:
    """Run one turn and yield wire events, always ending in exactly one
    ``complete`` or ``error``."""
    events = EventStream()
    try:
        async for chunk in loop.run(thread_id, user_id, message):
            if chunk.tool_call_chunks:
                log.info("tool_call_chunk", thread_id=thread_id,
                         tools=[tc.name for tc in chunk.tool_call_chunks if tc.name])
                continue
            if chunk.content:
                yield events.message(chunk.content)
    except Exception as e:
        log.error("stream_failed", thread_id=thread_id, error=str(e), error_type=type(e).__name__)
        yield events.error()
        return
    yield events.complete()

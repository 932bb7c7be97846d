"""Server-side encoding of coach stream events as text/event-stream frames."""

import json

from app.coach.schemas.stream_events import CoachStreamEvent

SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
SSE_MEDIA_TYPE = "text/event-stream"

# Padding helps defeat proxy buffering so tool_result events render progressively.
SSE_PADDING_BYTES = 2048


def wants_event_stream(accept_header: str | None) -> bool:
    """Return True when the client asked for a streamed response."""
    return SSE_MEDIA_TYPE in (accept_header or "")


def encode_sse(event: CoachStreamEvent) -> str:
    """Encode one stream event as a frame named after its type."""
    payload = json.dumps(event.to_wire(), ensure_ascii=False)
    return f"event: {event.type}\ndata: {payload}\n\n"


def encode_sse_comment(content: str) -> str:
    """Encode a comment frame; clients ignore it."""
    return f":{content}\n\n"

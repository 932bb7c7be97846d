"""Client-side decoding of coach event streams.

Turns a raw byte stream into text/event-stream frames and then into validated
`CoachStreamEvent`s. A bad frame is skipped, never fatal: one malformed payload
must not cost the turn its remaining events.
"""

import codecs
import json
import re
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

from loguru import logger
from pydantic import ValidationError

from app.coach.schemas.stream_events import CoachStreamEvent, parse_stream_event

FRAME_BOUNDARY = "\n\n"
_LINE_SPLIT = re.compile(r"\r?\n")


@dataclass(frozen=True)
class SseFrame:
    """One blank-line-terminated unit of an event stream."""

    event: str
    data: str


def parse_frame(raw_frame: str) -> SseFrame:
    """Parse the text of one frame (without its terminating blank line)."""
    event_name = "message"
    data_lines: list[str] = []
    for line in _LINE_SPLIT.split(raw_frame):
        if line.startswith("event:"):
            event_name = line[len("event:") :].strip() or event_name
            continue
        if line.startswith("data:"):
            data_lines.append(line[len("data:") :].lstrip())
    return SseFrame(event=event_name, data="\n".join(data_lines))


async def read_sse_frames(chunks: AsyncIterable[bytes]) -> AsyncIterator[SseFrame]:
    """Yield complete frames from an async byte stream.

    Frames spanning several reads are buffered until their blank line arrives.
    UTF-8 is decoded incrementally so multi-byte characters may straddle chunk
    boundaries. A trailing partial frame at end of stream is dropped.

    The chunk source is closed on every exit path: normal completion, an early
    `break` by the consumer, or an exception.
    """
    decoder = codecs.getincrementaldecoder("utf-8")()
    buffer = ""
    try:
        async for chunk in chunks:
            buffer += decoder.decode(chunk)

            while True:
                boundary = buffer.find(FRAME_BOUNDARY)
                if boundary == -1:
                    break

                raw_frame = buffer[:boundary]
                buffer = buffer[boundary + len(FRAME_BOUNDARY) :]
                if not raw_frame.strip():
                    continue

                yield parse_frame(raw_frame)

        buffer += decoder.decode(b"", final=True)
        if buffer.strip():
            logger.debug("Dropping trailing partial SSE frame", buffered_chars=len(buffer))
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()


async def read_coach_stream_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[CoachStreamEvent]:
    """Yield validated stream events, skipping frames that fail to decode."""
    frames = read_sse_frames(chunks)
    try:
        async for frame in frames:
            if not frame.data:
                continue

            try:
                payload = json.loads(frame.data)
            except json.JSONDecodeError:
                logger.debug("Skipping SSE frame with malformed JSON", sse_event=frame.event)
                continue

            try:
                event = parse_stream_event(payload)
            except ValidationError as e:
                logger.debug(
                    "Skipping SSE frame that failed schema validation",
                    sse_event=frame.event,
                    error_count=e.error_count(),
                )
                continue

            yield event
    finally:
        await frames.aclose()

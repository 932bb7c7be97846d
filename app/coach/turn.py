"""Turn state machine for the coach client.

One `CoachSession` drives at most one turn at a time:

    IDLE -> SENDING -> STREAMING -> FINALIZED | FAILED -> IDLE

Stream events are applied strictly in arrival order. `tool_result` blocks
accumulate on the in-progress timeline entry; the `final` response is
authoritative and replaces them. Transport and protocol failures are turned
into visible blocks; `send_prompt` always returns a `TurnOutcome`.
"""

import json
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Literal, assert_never

import httpx
from loguru import logger
from pydantic import ValidationError

from app.coach.client_actions import apply_client_actions
from app.coach.conversation_window import Conversation, append_message
from app.coach.errors import CoachApiError, StreamProtocolError, error_detail
from app.coach.schemas.blocks import DEFAULT_COACH_SUGGESTIONS, StatusBlock, SuggestionsBlock
from app.coach.schemas.conversation import CoachMessage, CoachPreferences
from app.coach.schemas.stream_events import (
    CoachTurnResponse,
    ErrorEvent,
    FinalEvent,
    StartEvent,
    ToolResultEvent,
    ToolStartEvent,
    TurnTrace,
    parse_turn_response,
)
from app.coach.sse import SSE_MEDIA_TYPE
from app.coach.sse_client import read_coach_stream_events
from app.coach.timeline import Timeline, TimelineEntry
from app.coach.undo import HttpUndoTransport, UndoResult, UndoTransport, undo_action
from app.config.settings import settings

TURN_PATH = "/coach/turn"
FAILURE_TEXT = "I hit an error while planning this turn."
EMPTY_REPLY_TEXT = "Done."

TOOL_PROGRESS_LABELS: dict[str, str] = {
    "log_set": "Logging your set...",
    "delete_set": "Deleting set...",
    "get_today_summary": "Summarizing today...",
    "get_exercise_report": "Analyzing exercise history...",
    "get_focus_suggestions": "Building today's focus plan...",
    "get_history_overview": "Reviewing your history...",
    "get_analytics_overview": "Crunching your analytics...",
    "get_exercise_library": "Loading your exercises...",
    "manage_exercise": "Updating exercise...",
    "get_settings_overview": "Loading settings...",
    "update_preferences": "Updating preferences...",
    "set_weight_unit": "Updating settings...",
    "set_sound": "Updating settings...",
}
DEFAULT_PROGRESS_LABEL = "Working..."


def tool_progress_text(tool_name: str) -> str:
    """Human-readable progress label for a running tool."""
    return TOOL_PROGRESS_LABELS.get(tool_name, DEFAULT_PROGRESS_LABEL)


def local_timezone_offset_minutes() -> int:
    """Offset in minutes to add to local time to reach UTC (browser convention)."""
    offset = datetime.now().astimezone().utcoffset()
    if offset is None:
        return 0
    return -int(offset.total_seconds() // 60)


def create_coach_client() -> httpx.AsyncClient:
    """HTTP client with the configured request timeout."""
    return httpx.AsyncClient(timeout=settings.coach_request_timeout_seconds)


class TurnState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    FINALIZED = "finalized"
    FAILED = "failed"


@dataclass(frozen=True)
class TurnOutcome:
    """Result of one `send_prompt` call."""

    status: Literal["finalized", "failed", "rejected"]
    entry_id: str | None = None
    response: CoachTurnResponse | None = None
    error: str | None = None


class CoachSession:
    """Client-side state for one user's conversation with the coach.

    The conversation window is written only when a turn finalizes or fails.
    The timeline is written only by the running turn and by undo calls.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str | None = None,
        preferences: CoachPreferences | None = None,
        max_messages: int | None = None,
        undo_transport: UndoTransport | None = None,
        timezone_offset: Callable[[], int] = local_timezone_offset_minutes,
        on_turn_success: Callable[[CoachTurnResponse], None] | None = None,
        on_turn_failure: Callable[[str], None] | None = None,
    ):
        self._client = client
        self._base_url = (base_url or settings.coach_api_url).rstrip("/")
        self._max_messages = settings.coach_max_messages if max_messages is None else max_messages
        self._undo_transport = undo_transport or HttpUndoTransport(client, self._base_url)
        self._timezone_offset = timezone_offset
        self._on_turn_success = on_turn_success
        self._on_turn_failure = on_turn_failure

        self.preferences = preferences or CoachPreferences(unit=settings.coach_default_unit)
        self.conversation: Conversation = ()
        self.timeline = Timeline()
        self.state = TurnState.IDLE
        self.last_trace: TurnTrace | None = None
        self._in_flight = False
        self._applied_response: CoachTurnResponse | None = None

    @property
    def is_working(self) -> bool:
        return self._in_flight

    async def send_prompt(self, prompt: str) -> TurnOutcome:
        """Run one turn for `prompt`.

        Rejects empty prompts and prompts sent while another turn is in flight;
        neither touches the conversation or the timeline.
        """
        trimmed = prompt.strip()
        if not trimmed:
            logger.debug("Rejected empty coach prompt")
            return TurnOutcome(status="rejected", error="Prompt is empty.")

        if self._in_flight:
            logger.warning("Rejected coach prompt: a turn is already in flight", state=self.state.value)
            return TurnOutcome(status="rejected", error="A turn is already in progress.")

        try:
            user_message = CoachMessage(role="user", content=trimmed)
        except ValidationError as e:
            logger.warning("Rejected invalid coach prompt", error_count=e.error_count())
            return TurnOutcome(status="rejected", error="Prompt is too long.")

        self._in_flight = True
        self.state = TurnState.SENDING
        self._applied_response = None
        next_conversation = append_message(self.conversation, user_message, self._max_messages)
        self.timeline.append_user(trimmed)
        entry = self.timeline.start_assistant()

        logger.info(
            "Coach turn started",
            entry_id=entry.id,
            message_length=len(trimmed),
            turn_index=len(self.conversation),
        )

        try:
            response = await self._run_turn(entry, next_conversation)
        except Exception as e:
            if self.state is TurnState.FINALIZED and self._applied_response is not None:
                # Final response was already applied; a late error (e.g. on close) does not undo it.
                logger.warning("Error after coach turn finalized", entry_id=entry.id, error=str(e))
                response = self._applied_response
            else:
                message = str(e) or e.__class__.__name__
                self._fail(entry, next_conversation, message)
                self._notify_failure(message)
                return TurnOutcome(status="failed", entry_id=entry.id, error=message)
        finally:
            entry.seal()
            self._in_flight = False
            self.state = TurnState.IDLE

        self._notify_success(response)
        return TurnOutcome(status="finalized", entry_id=entry.id, response=response)

    async def undo_action(self, action_id: str, turn_id: str) -> UndoResult:
        """Reverse a previous agent action; see `app.coach.undo.undo_action`."""
        return await undo_action(self.timeline, self._undo_transport, action_id, turn_id)

    def _build_payload(self, conversation: Conversation) -> dict:
        preferences = self.preferences.model_copy(update={"timezone_offset_minutes": self._timezone_offset()})
        return {
            "messages": [message.to_wire() for message in conversation],
            "preferences": preferences.to_wire(),
        }

    async def _run_turn(self, entry: TimelineEntry, conversation: Conversation) -> CoachTurnResponse:
        async with self._client.stream(
            "POST",
            f"{self._base_url}{TURN_PATH}",
            json=self._build_payload(conversation),
            headers={"Content-Type": "application/json", "Accept": SSE_MEDIA_TYPE},
        ) as response:
            if response.is_error:
                await response.aread()
                raise CoachApiError(response.status_code, error_detail(response))

            self.state = TurnState.STREAMING
            content_type = response.headers.get("content-type", "")
            if SSE_MEDIA_TYPE in content_type:
                return await self._consume_stream(response, entry, conversation)

            logger.debug("Coach response is not streamed, parsing JSON body", content_type=content_type)
            body = await response.aread()
            turn_response = parse_turn_response(json.loads(body))
            self._apply_final(entry, turn_response, conversation)
            return turn_response

    async def _consume_stream(
        self,
        response: httpx.Response,
        entry: TimelineEntry,
        conversation: Conversation,
    ) -> CoachTurnResponse:
        streamed_error = False
        async with aclosing(read_coach_stream_events(response.aiter_bytes())) as events:
            async for event in events:
                if isinstance(event, StartEvent):
                    logger.debug("Coach stream started", model=event.model, entry_id=entry.id)
                elif isinstance(event, ToolStartEvent):
                    entry.set_text(tool_progress_text(event.tool_name))
                elif isinstance(event, ToolResultEvent):
                    self.preferences, blocks = apply_client_actions(event.blocks, self.preferences)
                    entry.append_blocks(blocks)
                elif isinstance(event, ErrorEvent):
                    if streamed_error:
                        logger.debug("Suppressed duplicate stream error", entry_id=entry.id)
                        continue
                    streamed_error = True
                    logger.warning("Coach stream reported an error", entry_id=entry.id, error=event.message)
                    entry.append_blocks(
                        [StatusBlock(tone="error", title="Stream error", description=event.message[:2000])]
                    )
                elif isinstance(event, FinalEvent):
                    self._apply_final(entry, event.response, conversation)
                    return event.response
                else:
                    assert_never(event)

        raise StreamProtocolError("Stream ended before the coach finished this turn.")

    def _apply_final(self, entry: TimelineEntry, response: CoachTurnResponse, conversation: Conversation) -> None:
        self.preferences, _ = apply_client_actions(response.blocks, self.preferences)
        entry.set_text(response.assistant_text)
        entry.replace_blocks(response.blocks)
        reply = CoachMessage(role="assistant", content=response.assistant_text.strip() or EMPTY_REPLY_TEXT)
        self.conversation = append_message(conversation, reply, self._max_messages)
        self.last_trace = response.trace
        self._applied_response = response
        self.state = TurnState.FINALIZED
        logger.info(
            "Coach turn finalized",
            entry_id=entry.id,
            blocks=len(response.blocks),
            tools_used=response.trace.tools_used,
            model=response.trace.model,
            fallback_used=response.trace.fallback_used,
        )

    def _fail(self, entry: TimelineEntry, conversation: Conversation, message: str) -> None:
        logger.warning("Coach turn failed", entry_id=entry.id, error=message)
        entry.set_text(FAILURE_TEXT)
        entry.append_blocks(
            [
                StatusBlock(tone="error", title="Planning failed", description=message[:2000]),
                SuggestionsBlock(prompts=list(DEFAULT_COACH_SUGGESTIONS)),
            ]
        )
        placeholder = CoachMessage(role="assistant", content=FAILURE_TEXT)
        self.conversation = append_message(conversation, placeholder, self._max_messages)
        self.state = TurnState.FAILED

    def _notify_success(self, response: CoachTurnResponse) -> None:
        if self._on_turn_success is None:
            return
        try:
            self._on_turn_success(response)
        except Exception:
            logger.exception("Coach turn success hook failed (non-fatal)")

    def _notify_failure(self, message: str) -> None:
        if self._on_turn_failure is None:
            return
        try:
            self._on_turn_failure(message)
        except Exception:
            logger.exception("Coach turn failure hook failed (non-fatal)")


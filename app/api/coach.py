"""Coach turn and undo endpoints.

`POST /coach/turn` streams text/event-stream frames when the client accepts
them and otherwise answers with one JSON turn response. Both modes end with
the same authoritative `CoachTurnResponse`.
"""

import asyncio
import json
import uuid
from collections.abc import AsyncIterator
from contextlib import suppress

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger
from pydantic import ValidationError

from app.coach.agent_actions import AgentActionStore
from app.coach.blocks import tool_error_blocks
from app.coach.planner import CoachPlanner, DeterministicFallbackPlanner, EmitEvent, TurnContext
from app.coach.sanitize_error import sanitize_error
from app.coach.schemas.conversation import CoachTurnRequest
from app.coach.schemas.stream_events import (
    CoachStreamEvent,
    CoachTurnResponse,
    ErrorEvent,
    FinalEvent,
    StartEvent,
)
from app.coach.sse import SSE_HEADERS, SSE_MEDIA_TYPE, SSE_PADDING_BYTES, encode_sse, encode_sse_comment, wants_event_stream
from app.config.settings import settings

router = APIRouter(prefix="/coach", tags=["coach"])

_fallback_planner = DeterministicFallbackPlanner()


def get_planner(request: Request) -> CoachPlanner:
    """Planner configured on the app, or the deterministic fallback."""
    return getattr(request.app.state, "coach_planner", None) or _fallback_planner


def get_action_store(request: Request) -> AgentActionStore:
    store = getattr(request.app.state, "agent_actions", None)
    if store is None:
        store = AgentActionStore()
        request.app.state.agent_actions = store
    return store


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def _run_planner(planner: CoachPlanner, context: TurnContext, emit: EmitEvent) -> CoachTurnResponse:
    """Run the planner under the turn budget, degrading to the fallback on failure.

    A failure is reported once through `emit` as an `error` event; the
    returned response still carries the error blocks so non-streaming clients
    see it too.
    """
    try:
        async with asyncio.timeout(settings.coach_turn_timeout_seconds):
            return await planner.run_turn(context, emit)
    except TimeoutError:
        message = "Turn timed out."
    except Exception as e:
        logger.exception("Coach planner failed", turn_id=context.turn_id, model=planner.model_id)
        message = sanitize_error(str(e))

    emit(ErrorEvent(message=message))
    fallback = await _fallback_planner.run_turn(context, emit)
    return CoachTurnResponse(
        assistant_text=fallback.assistant_text,
        blocks=[*tool_error_blocks(message), *fallback.blocks],
        trace=fallback.trace.model_copy(update={"model": f"{planner.model_id} (planner_failed)"}),
    )


@router.post("/turn")
async def coach_turn(
    request: Request,
    planner: CoachPlanner = Depends(get_planner),
    actions: AgentActionStore = Depends(get_action_store),
):
    """Run one coach turn."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(400, "Invalid JSON body")

    try:
        turn_request = CoachTurnRequest.model_validate(body)
    except ValidationError as e:
        logger.info("Rejected invalid coach turn request", error_count=e.error_count())
        return _error(400, "Invalid request body")

    latest_user = turn_request.latest_user_message()
    if latest_user is None:
        return _error(400, "Missing user message")

    context = TurnContext(
        turn_id=str(uuid.uuid4()),
        messages=turn_request.messages,
        preferences=turn_request.preferences,
        user_input=latest_user.content,
        actions=actions,
    )
    logger.info(
        "Coach turn received",
        turn_id=context.turn_id,
        message_count=len(turn_request.messages),
        model=planner.model_id,
    )

    if not wants_event_stream(request.headers.get("accept")):
        response = await _run_planner(planner, context, lambda _event: None)
        return JSONResponse(response.to_wire())

    return StreamingResponse(
        _stream_turn(planner, context),
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )


async def _stream_turn(planner: CoachPlanner, context: TurnContext) -> AsyncIterator[str]:
    """Encode planner events as SSE frames, ending with exactly one `final`."""
    queue: asyncio.Queue[str | None] = asyncio.Queue()
    error_sent = False

    def send(event: CoachStreamEvent) -> None:
        nonlocal error_sent
        if isinstance(event, FinalEvent):
            return
        if isinstance(event, ErrorEvent):
            error_sent = True
        queue.put_nowait(encode_sse(event))

    async def produce() -> None:
        try:
            send(StartEvent(model=planner.model_id))
            queue.put_nowait(encode_sse_comment(" " * SSE_PADDING_BYTES))
            response = await _run_planner(planner, context, send)
            queue.put_nowait(encode_sse(FinalEvent(response=response)))
            logger.info(
                "Coach turn streamed",
                turn_id=context.turn_id,
                tools_used=response.trace.tools_used,
                streamed_error=error_sent,
            )
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(produce())
    try:
        while True:
            frame = await queue.get()
            if frame is None:
                break
            yield frame
        await task
    finally:
        if not task.done():
            logger.info("Coach stream abandoned by client", turn_id=context.turn_id)
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task


@router.post("/actions/undo")
async def undo_agent_action(request: Request, actions: AgentActionStore = Depends(get_action_store)):
    """Reverse one agent action by id. Not retried; each call is one attempt."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(400, "Invalid JSON body")

    action_id = body.get("actionId") if isinstance(body, dict) else None
    if not isinstance(action_id, str) or not action_id.strip():
        return _error(400, "Missing actionId")

    outcome = await actions.undo(action_id.strip())
    return JSONResponse(outcome.to_wire())


@router.post("/turns/{turn_id}/undo")
async def undo_agent_turn(turn_id: str, actions: AgentActionStore = Depends(get_action_store)):
    """Reverse every committed action recorded for a turn."""
    outcome = await actions.undo_turn(turn_id)
    return JSONResponse(outcome.to_wire())

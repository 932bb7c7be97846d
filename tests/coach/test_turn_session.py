"""Coach turn state machine tests.

Each test drives a `CoachSession` against an in-memory transport and checks
the timeline, conversation window and preferences after the turn.
"""

import asyncio
import json

import httpx
import pytest

from app.coach.schemas.blocks import StatusBlock, SuggestionsBlock
from app.coach.turn import FAILURE_TEXT, TurnState, tool_progress_text
from tests.helpers import final_event, sse, status, stream_response


def _titles(entry) -> list[str]:
    return [block.title for block in entry.block_list if isinstance(block, StatusBlock)]


@pytest.mark.asyncio
async def test_request_carries_window_preferences_and_stream_accept(make_session):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return stream_response(final_event("Logged."))

    session = make_session(handler, timezone_offset=lambda: -120)
    outcome = await session.send_prompt("  10 pushups  ")

    assert outcome.status == "finalized"
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "http://coach.test/coach/turn"
    assert request.headers["accept"] == "text/event-stream"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {
        "messages": [{"role": "user", "content": "10 pushups"}],
        "preferences": {"unit": "lbs", "soundEnabled": True, "timezoneOffsetMinutes": -120},
    }


@pytest.mark.asyncio
async def test_second_turn_sends_previous_exchange(make_session):
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return stream_response(final_event(f"reply {len(bodies)}"))

    session = make_session(handler)
    await session.send_prompt("first")
    await session.send_prompt("second")

    assert bodies[1]["messages"] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "reply 1"},
        {"role": "user", "content": "second"},
    ]
    assert [m.role for m in session.conversation] == ["user", "assistant", "user", "assistant"]


@pytest.mark.asyncio
async def test_tool_results_accumulate_then_final_replaces(make_session):
    observed: dict = {}
    session = None

    async def body():
        yield sse({"type": "start", "model": "test-model"}).encode()
        yield sse({"type": "tool_start", "toolName": "log_set"}).encode()
        observed["text"] = session.timeline.last.text
        yield sse({"type": "tool_result", "toolName": "log_set", "blocks": [status("A")]}).encode()
        yield sse({"type": "tool_result", "toolName": "log_set", "blocks": [status("B")]}).encode()
        observed["titles"] = _titles(session.timeline.last)
        yield sse(final_event("All set.", blocks=[status("C")], tools=["log_set"])).encode()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

    session = make_session(handler)
    outcome = await session.send_prompt("log 10 pushups")

    entry = session.timeline.get(outcome.entry_id)
    assert observed == {"text": "Logging your set...", "titles": ["A", "B"]}
    assert entry.text == "All set."
    assert _titles(entry) == ["C"]
    assert entry.sealed is True
    assert session.last_trace.tools_used == ["log_set"]
    assert session.state is TurnState.IDLE
    assert session.is_working is False


def test_unknown_tool_uses_generic_progress_label():
    assert tool_progress_text("get_today_summary") == "Summarizing today..."
    assert tool_progress_text("brand_new_tool") == "Working..."


@pytest.mark.asyncio
async def test_client_action_updates_preferences_and_is_not_rendered(make_session):
    action = {"type": "client_action", "action": "set_weight_unit", "payload": {"unit": "kg"}}

    def handler(request: httpx.Request) -> httpx.Response:
        return stream_response(
            {"type": "tool_result", "toolName": "set_weight_unit", "blocks": [action]},
            final_event("Switched to kg.", blocks=[action, status("Units updated", "success")]),
        )

    session = make_session(handler)
    outcome = await session.send_prompt("use kg")

    entry = session.timeline.get(outcome.entry_id)
    assert session.preferences.unit == "kg"
    assert [block.type for block in entry.renderable_blocks] == ["status"]
    assert [unit.block.title for unit in entry.display_units()] == ["Units updated"]


@pytest.mark.asyncio
async def test_next_turn_sends_updated_preferences(make_session):
    bodies: list[dict] = []
    action = {"type": "client_action", "action": "set_sound", "payload": {"enabled": False}}

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return stream_response(final_event("ok", blocks=[action]))

    session = make_session(handler)
    await session.send_prompt("mute")
    await session.send_prompt("hello")

    assert bodies[0]["preferences"]["soundEnabled"] is True
    assert bodies[1]["preferences"]["soundEnabled"] is False


@pytest.mark.asyncio
async def test_only_first_stream_error_is_shown(make_session):
    def handler(request: httpx.Request) -> httpx.Response:
        return stream_response(
            {"type": "error", "message": "Tool failed"},
            {"type": "error", "message": "Tool failed again"},
        )

    session = make_session(handler)
    outcome = await session.send_prompt("log something")

    entry = session.timeline.get(outcome.entry_id)
    assert _titles(entry).count("Stream error") == 1
    assert entry.block_list[0] == StatusBlock(tone="error", title="Stream error", description="Tool failed")


@pytest.mark.asyncio
async def test_stream_without_final_fails_and_keeps_partial_blocks(make_session):
    def handler(request: httpx.Request) -> httpx.Response:
        return stream_response({"type": "tool_result", "blocks": [status("A")]})

    session = make_session(handler)
    outcome = await session.send_prompt("hi")

    entry = session.timeline.get(outcome.entry_id)
    assert outcome.status == "failed"
    assert entry.text == FAILURE_TEXT
    assert _titles(entry) == ["A", "Planning failed"]
    assert isinstance(entry.block_list[-1], SuggestionsBlock)


@pytest.mark.asyncio
async def test_json_fallback_matches_streamed_final(make_session):
    response = final_event("Here is today.", blocks=[status("Today", "info", "3 sets")])["response"]

    def json_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=response)

    def stream_handler(request: httpx.Request) -> httpx.Response:
        return stream_response({"type": "final", "response": response})

    json_session = make_session(json_handler)
    stream_session = make_session(stream_handler)
    json_outcome = await json_session.send_prompt("today")
    stream_outcome = await stream_session.send_prompt("today")

    json_entry = json_session.timeline.get(json_outcome.entry_id)
    stream_entry = stream_session.timeline.get(stream_outcome.entry_id)
    assert json_outcome.status == stream_outcome.status == "finalized"
    assert json_entry.text == stream_entry.text == "Here is today."
    assert json_entry.block_list == stream_entry.block_list
    assert json_session.conversation == stream_session.conversation


@pytest.mark.asyncio
async def test_error_status_surfaces_server_message(make_session):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": "Rate limit exceeded"})

    session = make_session(handler)
    outcome = await session.send_prompt("hi")

    entry = session.timeline.get(outcome.entry_id)
    assert outcome.status == "failed"
    assert outcome.error == "Coach API failed (429): Rate limit exceeded"
    assert entry.block_list[0] == StatusBlock(
        tone="error",
        title="Planning failed",
        description="Coach API failed (429): Rate limit exceeded",
    )
    assert [m.content for m in session.conversation] == ["hi", FAILURE_TEXT]


@pytest.mark.asyncio
async def test_error_status_without_body(make_session):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="Bad Gateway")

    session = make_session(handler)
    outcome = await session.send_prompt("hi")

    assert outcome.error == "Coach API failed (502)"


@pytest.mark.asyncio
async def test_network_failure_clears_guard_for_immediate_resend(make_session):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return stream_response(final_event("Back online."))

    session = make_session(handler)
    first = await session.send_prompt("hi")

    assert first.status == "failed"
    assert first.error == "connection refused"
    assert session.is_working is False
    assert session.state is TurnState.IDLE

    second = await session.send_prompt("hi again")
    assert second.status == "finalized"
    assert session.timeline.get(second.entry_id).text == "Back online."


@pytest.mark.asyncio
async def test_send_while_in_flight_is_rejected(make_session):
    gate = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        await gate.wait()
        return stream_response(final_event("done"))

    session = make_session(handler)
    first = asyncio.create_task(session.send_prompt("first"))
    while not session.is_working:
        await asyncio.sleep(0)

    second = await session.send_prompt("second")
    assert second.status == "rejected"
    assert second.error == "A turn is already in progress."
    assert len(session.timeline) == 2

    gate.set()
    outcome = await first
    assert outcome.status == "finalized"
    assert [m.content for m in session.conversation] == ["first", "done"]


@pytest.mark.asyncio
async def test_cancelled_turn_resets_guard_and_keeps_conversation(make_session):
    started = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        started.set()
        await asyncio.Event().wait()
        return stream_response(final_event())

    session = make_session(handler)
    task = asyncio.create_task(session.send_prompt("hi"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert session.is_working is False
    assert session.state is TurnState.IDLE
    assert session.conversation == ()
    assert session.timeline.last.sealed is True


@pytest.mark.asyncio
async def test_empty_prompt_is_rejected_without_side_effects(make_session):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    session = make_session(handler)
    outcome = await session.send_prompt("   ")

    assert outcome.status == "rejected"
    assert outcome.error == "Prompt is empty."
    assert len(session.timeline) == 0
    assert session.conversation == ()


@pytest.mark.asyncio
async def test_over_long_prompt_is_rejected(make_session):
    session = make_session(lambda request: stream_response(final_event()))

    outcome = await session.send_prompt("x" * 4001)

    assert outcome.status == "rejected"
    assert len(session.timeline) == 0


@pytest.mark.asyncio
async def test_empty_assistant_text_stored_as_placeholder(make_session):
    session = make_session(lambda request: stream_response(final_event("")))

    await session.send_prompt("hi")

    assert session.conversation[-1].content == "Done."


@pytest.mark.asyncio
async def test_hooks_called_and_hook_errors_swallowed(make_session):
    successes: list = []

    def on_failure(message: str) -> None:
        raise RuntimeError("hook broke")

    responses = iter(
        [
            stream_response(final_event("ok")),
            httpx.Response(500, json={"error": "boom"}),
        ]
    )
    session = make_session(
        lambda request: next(responses),
        on_turn_success=successes.append,
        on_turn_failure=on_failure,
    )

    ok = await session.send_prompt("one")
    failed = await session.send_prompt("two")

    assert ok.status == "finalized"
    assert [response.assistant_text for response in successes] == ["ok"]
    assert failed.status == "failed"
    assert session.is_working is False


@pytest.mark.asyncio
async def test_window_trimmed_to_configured_size(make_session):
    counter = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal counter
        counter += 1
        return stream_response(final_event(f"reply {counter}"))

    session = make_session(handler, max_messages=4)
    for i in range(5):
        await session.send_prompt(f"prompt {i}")

    assert len(session.conversation) == 4
    assert session.conversation[0].role == "user"
    assert session.conversation[-1].content == "reply 5"


@pytest.mark.asyncio
async def test_frames_after_final_are_ignored(make_session):
    def handler(request: httpx.Request) -> httpx.Response:
        return stream_response(
            final_event("Done for today.", blocks=[status("C")]),
            {"type": "tool_result", "blocks": [status("LATE")]},
            {"type": "error", "message": "too late"},
        )

    session = make_session(handler)
    outcome = await session.send_prompt("wrap up")

    entry = session.timeline.get(outcome.entry_id)
    assert outcome.status == "finalized"
    assert entry.text == "Done for today."
    assert _titles(entry) == ["C"]


@pytest.mark.asyncio
async def test_read_error_mid_stream_fails_turn(make_session):
    async def body():
        yield sse({"type": "tool_result", "toolName": "log_set", "blocks": [status("A")]}).encode()
        raise httpx.ReadError("connection reset by peer")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

    session = make_session(handler)
    outcome = await session.send_prompt("log bench")

    entry = session.timeline.get(outcome.entry_id)
    assert outcome.status == "failed"
    assert outcome.error == "connection reset by peer"
    assert _titles(entry) == ["A", "Planning failed"]
    assert session.is_working is False
    assert session.state is TurnState.IDLE


class _FailingCloseStream(httpx.AsyncByteStream):
    """Body that delivers its frames, then fails when the response is closed."""

    def __init__(self, body: bytes):
        self._body = body

    async def __aiter__(self):
        yield self._body

    async def aclose(self) -> None:
        raise httpx.ReadError("connection dropped on close")


@pytest.mark.asyncio
async def test_error_on_close_after_final_keeps_response_and_calls_hook(make_session):
    successes: list = []
    failures: list = []
    body = sse(final_event("Logged.", blocks=[status("Set logged", "success")])).encode()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            stream=_FailingCloseStream(body),
        )

    session = make_session(handler, on_turn_success=successes.append, on_turn_failure=failures.append)
    outcome = await session.send_prompt("10 pushups")

    assert outcome.status == "finalized"
    assert outcome.response is not None
    assert outcome.response.assistant_text == "Logged."
    assert [response.assistant_text for response in successes] == ["Logged."]
    assert failures == []
    assert session.timeline.get(outcome.entry_id).text == "Logged."
    assert session.is_working is False

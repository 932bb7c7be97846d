"""Builders for coach event streams used across test modules."""

import json

import httpx


def sse(event: dict) -> str:
    """Encode one event dict as an SSE frame."""
    return f"event: {event.get('type', 'message')}\ndata: {json.dumps(event, ensure_ascii=False)}\n\n"


def final_event(assistant_text: str = "Done.", blocks: list[dict] | None = None, tools: list[str] | None = None) -> dict:
    return {
        "type": "final",
        "response": {
            "assistantText": assistant_text,
            "blocks": blocks if blocks is not None else [],
            "trace": {"model": "test-model", "toolsUsed": tools or [], "fallbackUsed": False},
        },
    }


def status(title: str, tone: str = "info", description: str = "") -> dict:
    return {"type": "status", "tone": tone, "title": title, "description": description}


def stream_response(*events: dict | str) -> httpx.Response:
    """Build a text/event-stream response; strings are sent as raw frames."""
    body = "".join(event if isinstance(event, str) else sse(event) for event in events)
    return httpx.Response(200, headers={"content-type": "text/event-stream; charset=utf-8"}, content=body.encode())

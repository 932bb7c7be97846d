"""Turn response and stream event schemas.

A streamed turn is a sequence of `CoachStreamEvent`s: any number of
`tool_start` / `tool_result` / `error` events followed by exactly one `final`
event. `start` is informational and carries the planner model id.
"""

from typing import Annotated, Literal

from pydantic import Field, TypeAdapter

from app.coach.schemas.blocks import CoachBlock, WireModel


class TurnTrace(WireModel):
    model: str
    tools_used: list[str] = Field(default_factory=list)
    fallback_used: bool = False


class CoachTurnResponse(WireModel):
    """Authoritative, non-streaming result of a turn."""

    assistant_text: str = Field(..., max_length=4000)
    blocks: list[CoachBlock]
    trace: TurnTrace


class StartEvent(WireModel):
    type: Literal["start"] = "start"
    model: str


class ToolStartEvent(WireModel):
    type: Literal["tool_start"] = "tool_start"
    tool_name: str


class ToolResultEvent(WireModel):
    type: Literal["tool_result"] = "tool_result"
    tool_name: str | None = None
    blocks: list[CoachBlock]


class FinalEvent(WireModel):
    type: Literal["final"] = "final"
    response: CoachTurnResponse


class ErrorEvent(WireModel):
    type: Literal["error"] = "error"
    message: str


CoachStreamEvent = Annotated[
    StartEvent | ToolStartEvent | ToolResultEvent | FinalEvent | ErrorEvent,
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[CoachStreamEvent] = TypeAdapter(CoachStreamEvent)


def parse_stream_event(data: object) -> CoachStreamEvent:
    """Validate a decoded frame payload as a stream event.

    Raises:
        pydantic.ValidationError: If the payload is not a known, well-formed event
    """
    return _event_adapter.validate_python(data)


def parse_turn_response(data: object) -> CoachTurnResponse:
    """Validate a JSON body as a turn response (non-streaming fallback)."""
    return CoachTurnResponse.model_validate(data)

"""Typed result blocks produced by a coach turn.

A block is one fragment of a turn's result. The set of variants is closed and
discriminated by the `type` field; every consumer must handle all of them.
`client_action` is the only variant with a local effect and is never rendered.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel

WeightUnit = Literal["lbs", "kg"]


class WireModel(BaseModel):
    """Base for protocol models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict:
        """Serialize to the JSON shape sent over the wire."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StatusBlock(WireModel):
    type: Literal["status"] = "status"
    tone: Literal["success", "error", "info"]
    title: str = Field(..., max_length=200)
    description: str = Field(..., max_length=2000)


class UndoBlock(WireModel):
    type: Literal["undo"] = "undo"
    action_id: str
    turn_id: str
    title: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=2000)


class MetricItem(WireModel):
    label: str = Field(..., max_length=100)
    value: str = Field(..., max_length=100)


class MetricsBlock(WireModel):
    type: Literal["metrics"] = "metrics"
    title: str = Field(..., max_length=200)
    metrics: list[MetricItem]


class TrendPoint(WireModel):
    date: str = Field(..., max_length=32)
    label: str = Field(..., max_length=32)
    value: float


class TrendBlock(WireModel):
    type: Literal["trend"] = "trend"
    title: str = Field(..., max_length=200)
    subtitle: str = Field(..., max_length=200)
    metric: Literal["reps", "duration"]
    points: list[TrendPoint] = Field(..., max_length=90)
    total: float
    best_day: float


class TableRow(WireModel):
    label: str = Field(..., max_length=120)
    value: str = Field(..., max_length=120)
    meta: str | None = Field(default=None, max_length=200)


class TableBlock(WireModel):
    type: Literal["table"] = "table"
    title: str = Field(..., max_length=200)
    rows: list[TableRow] = Field(..., max_length=50)


class EntityListItem(WireModel):
    id: str | None = None
    title: str = Field(..., max_length=200)
    subtitle: str | None = Field(default=None, max_length=200)
    meta: str | None = Field(default=None, max_length=200)
    tags: list[str] | None = None
    prompt: str | None = Field(default=None, max_length=200)


class EntityListBlock(WireModel):
    type: Literal["entity_list"] = "entity_list"
    title: str = Field(..., max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    items: list[EntityListItem]
    empty_label: str | None = Field(default=None, max_length=200)


class DetailField(WireModel):
    label: str = Field(..., max_length=120)
    value: str = Field(..., max_length=500)
    emphasis: bool | None = None


class DetailPanelBlock(WireModel):
    type: Literal["detail_panel"] = "detail_panel"
    title: str = Field(..., max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    fields: list[DetailField]
    prompts: list[str] | None = Field(default=None, max_length=8)


class ConfirmationBlock(WireModel):
    type: Literal["confirmation"] = "confirmation"
    title: str = Field(..., max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    confirm_label: str | None = Field(default=None, max_length=60)
    cancel_label: str | None = Field(default=None, max_length=60)
    confirm_prompt: str = Field(..., max_length=200)
    cancel_prompt: str | None = Field(default=None, max_length=200)


class QuickLogFormBlock(WireModel):
    type: Literal["quick_log_form"] = "quick_log_form"
    title: str = Field(..., max_length=200)
    exercise_name: str | None = Field(default=None, max_length=200)
    default_unit: WeightUnit | None = None


class BillingPanelBlock(WireModel):
    type: Literal["billing_panel"] = "billing_panel"
    title: str = Field(..., max_length=200)
    subtitle: str | None = Field(default=None, max_length=200)
    status: Literal["trial", "active", "past_due", "canceled", "expired"]
    trial_days_remaining: int | None = None
    period_end: str | None = Field(default=None, max_length=32)
    cta_label: str | None = Field(default=None, max_length=60)
    cta_action: Literal["open_checkout", "open_billing_portal"] | None = None


class SuggestionsBlock(WireModel):
    type: Literal["suggestions"] = "suggestions"
    prompts: list[Annotated[str, Field(max_length=200)]] = Field(..., max_length=8)


class WeightUnitPayload(WireModel):
    model_config = ConfigDict(extra="forbid")

    unit: WeightUnit


class SoundPayload(WireModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool


class ClientActionBlock(WireModel):
    """Local preference mutation requested by a tool. Never rendered."""

    type: Literal["client_action"] = "client_action"
    action: Literal["set_weight_unit", "set_sound"]
    payload: WeightUnitPayload | SoundPayload

    @model_validator(mode="after")
    def validate_payload_matches_action(self) -> "ClientActionBlock":
        """Ensure the payload shape belongs to the declared action."""
        if self.action == "set_weight_unit" and not isinstance(self.payload, WeightUnitPayload):
            raise ValueError("set_weight_unit payload must be { unit }.")
        if self.action == "set_sound" and not isinstance(self.payload, SoundPayload):
            raise ValueError("set_sound payload must be { enabled }.")
        return self


CoachBlock = Annotated[
    StatusBlock
    | UndoBlock
    | MetricsBlock
    | TrendBlock
    | TableBlock
    | EntityListBlock
    | DetailPanelBlock
    | ConfirmationBlock
    | QuickLogFormBlock
    | BillingPanelBlock
    | SuggestionsBlock
    | ClientActionBlock,
    Field(discriminator="type"),
]

_block_adapter: TypeAdapter[CoachBlock] = TypeAdapter(CoachBlock)
_block_list_adapter: TypeAdapter[list[CoachBlock]] = TypeAdapter(list[CoachBlock])


def parse_block(data: object) -> CoachBlock:
    """Validate one raw JSON object as a block.

    Raises:
        pydantic.ValidationError: If the object is not a known, well-formed block
    """
    return _block_adapter.validate_python(data)


def parse_blocks(data: object) -> list[CoachBlock]:
    """Validate a raw JSON array as a list of blocks."""
    return _block_list_adapter.validate_python(data)


DEFAULT_COACH_SUGGESTIONS: list[str] = [
    "10 pushups",
    "show today's summary",
    "what should I work on today?",
    "show trend for squats",
]

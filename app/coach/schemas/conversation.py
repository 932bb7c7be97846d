"""Conversation and request schemas for the coach turn protocol."""

from typing import Literal

from pydantic import Field, field_validator, model_validator

from app.coach.schemas.blocks import WeightUnit, WireModel
from app.config.settings import settings

MAX_MESSAGE_CHARS = 4000
MAX_TOTAL_MESSAGE_CHARS = 50_000


class CoachMessage(WireModel):
    """One message of the conversation window. Immutable once created."""

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=MAX_MESSAGE_CHARS)

    @field_validator("content", mode="before")
    @classmethod
    def validate_content(cls, v: object) -> object:
        """Ensure content is trimmed before length checks."""
        if isinstance(v, str):
            return v.strip()
        return v


class CoachPreferences(WireModel):
    """Client-held preferences sent with every turn.

    `timezone_offset_minutes` follows the browser convention: the number of
    minutes to add to local time to reach UTC (UTC+2 is -120).
    """

    unit: WeightUnit = "lbs"
    sound_enabled: bool = True
    timezone_offset_minutes: int = Field(default=0, ge=-840, le=840)


class CoachTurnRequest(WireModel):
    """Body of `POST /coach/turn`."""

    messages: list[CoachMessage] = Field(..., min_length=1)
    preferences: CoachPreferences

    @model_validator(mode="after")
    def validate_conversation_size(self) -> "CoachTurnRequest":
        """Reject conversations longer than the window or too large overall."""
        if len(self.messages) > max(settings.coach_max_messages, 1):
            raise ValueError(f"Too many messages (max {settings.coach_max_messages}).")
        total = sum(len(message.content) for message in self.messages)
        if total > MAX_TOTAL_MESSAGE_CHARS:
            raise ValueError(f"Conversation too large (max {MAX_TOTAL_MESSAGE_CHARS} characters).")
        return self

    def latest_user_message(self) -> CoachMessage | None:
        """Return the most recent user message, if any."""
        for message in reversed(self.messages):
            if message.role == "user":
                return message
        return None

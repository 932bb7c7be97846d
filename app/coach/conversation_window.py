"""Conversation window policy.

The window is the bounded history sent to the planner on every turn. It is
trimmed on every append and never starts on an assistant message that has
lost its user prompt.
"""

from collections.abc import Sequence

from app.coach.schemas.conversation import CoachMessage
from app.config.settings import settings

Conversation = tuple[CoachMessage, ...]


def trim_conversation(messages: Sequence[CoachMessage], max_messages: int) -> Conversation:
    """Apply the window trim rule.

    Keeps the newest `max_messages` messages. If that cut leaves an assistant
    message first, it is dropped as well. Windows already within the limit are
    returned unchanged.
    """
    if len(messages) <= max_messages:
        return tuple(messages)

    kept = tuple(messages[len(messages) - max_messages :]) if max_messages > 0 else ()
    if kept and kept[0].role == "assistant":
        kept = kept[1:]
    return kept


def append_message(
    window: Sequence[CoachMessage],
    message: CoachMessage,
    max_messages: int | None = None,
) -> Conversation:
    """Return a new window with `message` appended and the trim rule applied.

    Pure function of its arguments; `window` is not modified.
    """
    limit = settings.coach_max_messages if max_messages is None else max_messages
    return trim_conversation([*window, message], limit)

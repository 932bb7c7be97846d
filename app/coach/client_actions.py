"""Dispatcher for `client_action` blocks.

Client actions mutate preferences held by the client (weight unit, sound).
They are processed here and filtered out before anything is rendered.
"""

from collections.abc import Callable, Iterable

from loguru import logger

from app.coach.schemas.blocks import ClientActionBlock, CoachBlock, SoundPayload, WeightUnitPayload
from app.coach.schemas.conversation import CoachPreferences


def _set_weight_unit(preferences: CoachPreferences, block: ClientActionBlock) -> CoachPreferences:
    if not isinstance(block.payload, WeightUnitPayload):
        return preferences
    return preferences.model_copy(update={"unit": block.payload.unit})


def _set_sound(preferences: CoachPreferences, block: ClientActionBlock) -> CoachPreferences:
    if not isinstance(block.payload, SoundPayload):
        return preferences
    return preferences.model_copy(update={"sound_enabled": block.payload.enabled})


CLIENT_ACTION_HANDLERS: dict[str, Callable[[CoachPreferences, ClientActionBlock], CoachPreferences]] = {
    "set_weight_unit": _set_weight_unit,
    "set_sound": _set_sound,
}


def apply_client_actions(
    blocks: Iterable[CoachBlock],
    preferences: CoachPreferences,
) -> tuple[CoachPreferences, list[CoachBlock]]:
    """Apply every client action in order and split them from the rest.

    Args:
        blocks: Blocks from a `tool_result` or `final` event
        preferences: Current client preferences

    Returns:
        Tuple of (updated preferences, blocks that are not client actions)
    """
    remaining: list[CoachBlock] = []
    for block in blocks:
        if not isinstance(block, ClientActionBlock):
            remaining.append(block)
            continue

        handler = CLIENT_ACTION_HANDLERS.get(block.action)
        if handler is None:
            logger.warning("No handler for client action", action=block.action)
            continue

        preferences = handler(preferences, block)
        logger.debug(
            "Applied client action",
            action=block.action,
            unit=preferences.unit,
            sound_enabled=preferences.sound_enabled,
        )

    return preferences, remaining

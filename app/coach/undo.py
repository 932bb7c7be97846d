"""Action reversal (undo) protocol, client side.

An undo is keyed solely by an opaque `actionId` issued by the server when a
tool performed a reversible side effect. Each attempt is terminal: failures
are shown to the user and never retried automatically.
"""

from typing import Protocol

import httpx
from loguru import logger

from app.coach.errors import CoachApiError, error_detail
from app.coach.schemas.blocks import StatusBlock, WireModel
from app.coach.timeline import Timeline
from app.config.settings import settings

UNDO_PATH = "/coach/actions/undo"


class UndoResult(WireModel):
    """Outcome of a reversal: `{ok: true}` or `{ok: false, message}`."""

    ok: bool
    message: str | None = None


class UndoTransport(Protocol):
    """Reversal capability. Implementations must not retry."""

    async def undo(self, action_id: str) -> UndoResult: ...


class HttpUndoTransport:
    """Submits reversals to the coach server over HTTP."""

    def __init__(self, client: httpx.AsyncClient, base_url: str | None = None):
        self._client = client
        self._base_url = (base_url or settings.coach_api_url).rstrip("/")

    async def undo(self, action_id: str) -> UndoResult:
        """POST the action id and parse `{ok, message?}`.

        Raises:
            CoachApiError: On a non-2xx status
            httpx.HTTPError: On network failure
        """
        response = await self._client.post(f"{self._base_url}{UNDO_PATH}", json={"actionId": action_id})
        if response.is_error:
            raise CoachApiError(response.status_code, error_detail(response))
        return UndoResult.model_validate(response.json())


def parse_action_id(action_id: str | None) -> str | None:
    """Return the trimmed id, or None when it is structurally invalid."""
    if not isinstance(action_id, str):
        return None
    trimmed = action_id.strip()
    return trimmed or None


async def undo_action(
    timeline: Timeline,
    transport: UndoTransport,
    action_id: str,
    turn_id: str,
) -> UndoResult:
    """Attempt to reverse one agent action and record the outcome.

    Args:
        timeline: Timeline receiving the outcome entry
        transport: Reversal capability
        action_id: Opaque id of the action to reverse
        turn_id: Turn that produced the action; passed through for correlation only

    Returns:
        The reversal result. Never raises for invalid ids, server-reported
        failures or transport errors.
    """
    parsed_action_id = parse_action_id(action_id)
    if parsed_action_id is None:
        logger.warning("Undo rejected locally: invalid action id", turn_id=turn_id)
        message = "Invalid undo reference."
        timeline.append_assistant(
            "Undo failed.",
            [StatusBlock(tone="error", title="Undo failed", description=message)],
        )
        return UndoResult(ok=False, message=message)

    logger.info("Submitting undo", action_id=parsed_action_id, turn_id=turn_id)
    try:
        result = await transport.undo(parsed_action_id)
    except Exception as e:
        message = (str(e) or "Unknown error")[:2000]
        logger.warning("Undo transport failed", action_id=parsed_action_id, turn_id=turn_id, error=message)
        timeline.append_assistant(
            "Undo failed.",
            [StatusBlock(tone="error", title="Undo failed", description=message)],
        )
        return UndoResult(ok=False, message=message)

    if result.ok:
        logger.info("Undo applied", action_id=parsed_action_id, turn_id=turn_id)
        timeline.append_assistant(
            "Undo complete.",
            [
                StatusBlock(
                    tone="success",
                    title="Action undone",
                    description="The coach change was reverted successfully.",
                )
            ],
        )
        return result

    message = (result.message or "Undo could not be applied.")[:2000]
    logger.info("Undo blocked by server", action_id=parsed_action_id, turn_id=turn_id, reason=message)
    timeline.append_assistant(
        "Undo couldn't be applied.",
        [StatusBlock(tone="error", title="Undo blocked", description=message)],
    )
    return UndoResult(ok=False, message=message)

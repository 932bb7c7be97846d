"""Server-side registry of reversible agent actions.

When a tool performs a side effect it records an agent action together with a
compensating callable. The action id goes back to the client inside an `undo`
block; reversing it later is keyed solely by that id. How the effect is undone
is owned by the compensator, not by this registry.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from loguru import logger

from app.coach.sanitize_error import sanitize_error
from app.coach.schemas.blocks import WireModel

Compensator = Callable[[], Awaitable[None]]


class UndoRejectedError(Exception):
    """Raised by a compensator that refuses to reverse its action.

    Typical case: the affected record changed after the coach action, so
    undoing it would clobber the user's newer data.
    """

    def __init__(self, reason: str, message: str):
        self.reason = reason
        self.message = message
        super().__init__(self.message)


@dataclass
class AgentAction:
    turn_id: str
    action: str
    compensate: Compensator | None = field(default=None, repr=False)
    action_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: Literal["committed", "undone"] = "committed"
    performed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    undone_at: datetime | None = None


class UndoOutcome(WireModel):
    """Reversal response: `{ok, message?}` plus diagnostic fields."""

    ok: bool
    message: str | None = None
    reason: str | None = None
    action_id: str | None = None
    turn_id: str | None = None
    undone_count: int | None = None


class AgentActionStore:
    """In-memory action registry. One instance per server process."""

    def __init__(self):
        self._actions: dict[str, AgentAction] = {}
        self._lock = asyncio.Lock()

    def record(self, turn_id: str, action: str, compensate: Compensator | None = None) -> AgentAction:
        """Record a committed action and return it (its id is globally unique)."""
        agent_action = AgentAction(turn_id=turn_id, action=action, compensate=compensate)
        self._actions[agent_action.action_id] = agent_action
        logger.debug(
            "Recorded agent action",
            action_id=agent_action.action_id,
            turn_id=turn_id,
            action=action,
        )
        return agent_action

    def get(self, action_id: str) -> AgentAction | None:
        return self._actions.get(action_id)

    def list_for_turn(self, turn_id: str) -> list[AgentAction]:
        """Actions of one turn, newest first."""
        actions = [action for action in self._actions.values() if action.turn_id == turn_id]
        return sorted(actions, key=lambda action: action.performed_at, reverse=True)

    async def undo(self, action_id: str) -> UndoOutcome:
        """Reverse one action.

        Reversing an action twice is an explicit failure (`already_undone`),
        never a silent success.
        """
        async with self._lock:
            action = self._actions.get(action_id)
            if action is None:
                return UndoOutcome(ok=False, reason="not_found", message="Action not found.")

            outcome = await self._reverse(action)
            if outcome is not None:
                return outcome

            return UndoOutcome(ok=True, action_id=action.action_id, turn_id=action.turn_id)

    async def undo_turn(self, turn_id: str) -> UndoOutcome:
        """Reverse every committed action of a turn, newest first.

        Stops at the first action that cannot be reversed; actions reversed
        before it stay reversed.
        """
        async with self._lock:
            committed = [action for action in self.list_for_turn(turn_id) if action.status == "committed"]
            for action in committed:
                if action.compensate is None:
                    return _unsupported(action)

            undone_count = 0
            for action in committed:
                outcome = await self._reverse(action)
                if outcome is not None:
                    return outcome
                undone_count += 1

            return UndoOutcome(ok=True, turn_id=turn_id, undone_count=undone_count)

    async def _reverse(self, action: AgentAction) -> UndoOutcome | None:
        """Run the compensator; returns a failure outcome or None on success."""
        if action.status == "undone":
            return UndoOutcome(
                ok=False,
                reason="already_undone",
                message="That action was already undone.",
                action_id=action.action_id,
            )
        if action.compensate is None:
            return _unsupported(action)

        try:
            await action.compensate()
        except UndoRejectedError as e:
            logger.info(
                "Agent action reversal rejected",
                action_id=action.action_id,
                reason=e.reason,
                message=e.message,
            )
            return UndoOutcome(ok=False, reason=e.reason, message=e.message, action_id=action.action_id)
        except Exception as e:
            logger.exception("Agent action compensation failed", action_id=action.action_id, action=action.action)
            return UndoOutcome(
                ok=False,
                reason="compensation_failed",
                message=sanitize_error(str(e)),
                action_id=action.action_id,
            )

        action.status = "undone"
        action.undone_at = datetime.now(timezone.utc)
        logger.info("Agent action reversed", action_id=action.action_id, turn_id=action.turn_id, action=action.action)
        return None


def _unsupported(action: AgentAction) -> UndoOutcome:
    return UndoOutcome(
        ok=False,
        reason="unsupported_action",
        message=f"Undo is not implemented for {action.action}.",
        action_id=action.action_id,
    )

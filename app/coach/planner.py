"""Planner interface used by the coach turn endpoint.

The planner is an opaque collaborator: it receives the conversation and
preferences, may emit `tool_start` / `tool_result` / `error` events while it
works, and returns the authoritative turn response. How it reasons and which
model it uses are outside this package.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from app.coach.agent_actions import AgentActionStore
from app.coach.blocks import build_turn_response
from app.coach.schemas.blocks import DEFAULT_COACH_SUGGESTIONS, StatusBlock, SuggestionsBlock
from app.coach.schemas.conversation import CoachMessage, CoachPreferences
from app.coach.schemas.stream_events import CoachStreamEvent, CoachTurnResponse

EmitEvent = Callable[[CoachStreamEvent], None]

FALLBACK_MODEL_ID = "fallback-deterministic"


@dataclass(frozen=True)
class TurnContext:
    turn_id: str
    messages: list[CoachMessage]
    preferences: CoachPreferences
    user_input: str
    actions: AgentActionStore


class CoachPlanner(Protocol):
    model_id: str

    async def run_turn(self, context: TurnContext, emit: EmitEvent) -> CoachTurnResponse: ...


class DeterministicFallbackPlanner:
    """Planner used when no model runtime is configured.

    Invokes no tools; answers with an explanation and the default suggestions.
    """

    model_id = FALLBACK_MODEL_ID

    async def run_turn(self, context: TurnContext, emit: EmitEvent) -> CoachTurnResponse:
        return build_turn_response(
            assistant_text="I can help with logging, summaries, reports, and focus suggestions.",
            blocks=[
                StatusBlock(
                    tone="info",
                    title="Planner unavailable",
                    description="The coach model is not configured, so no tools were run for this turn.",
                ),
                SuggestionsBlock(prompts=list(DEFAULT_COACH_SUGGESTIONS)),
            ],
            tools_used=[],
            model=self.model_id,
            fallback_used=True,
        )

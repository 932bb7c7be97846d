"""Block helpers: presentation grouping and server-side response builders."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import assert_never

from app.coach.schemas.blocks import (
    DEFAULT_COACH_SUGGESTIONS,
    BillingPanelBlock,
    ClientActionBlock,
    CoachBlock,
    ConfirmationBlock,
    DetailPanelBlock,
    EntityListBlock,
    MetricsBlock,
    QuickLogFormBlock,
    StatusBlock,
    SuggestionsBlock,
    TableBlock,
    TrendBlock,
    UndoBlock,
)
from app.coach.schemas.stream_events import CoachTurnResponse, TurnTrace

DEFAULT_ASSISTANT_TEXT = "Done. I used your workout data and generated updates below."


@dataclass(frozen=True)
class SingleBlock:
    """A block rendered on its own."""

    block: CoachBlock


@dataclass(frozen=True)
class LogConfirmation:
    """A success status immediately followed by its undo affordance."""

    status: StatusBlock
    undo: UndoBlock


DisplayUnit = SingleBlock | LogConfirmation


def is_renderable(block: CoachBlock) -> bool:
    """Return False for blocks that only carry a local side effect."""
    if isinstance(block, ClientActionBlock):
        return False
    if isinstance(
        block,
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
        | SuggestionsBlock,
    ):
        return True
    assert_never(block)


def group_blocks(blocks: Iterable[CoachBlock]) -> list[DisplayUnit]:
    """Merge `status(success)` + `undo` pairs into log confirmations.

    Single pass, order preserving, one element of lookbehind. Client actions
    are dropped since they are never displayed, but they still sit between a
    status and an undo: the pair only merges when the undo comes immediately
    after the status in the original list.
    """
    units: list[DisplayUnit] = []
    pending_success: StatusBlock | None = None

    for block in blocks:
        if not is_renderable(block):
            if pending_success is not None:
                units.append(SingleBlock(pending_success))
                pending_success = None
            continue

        if pending_success is not None:
            if isinstance(block, UndoBlock):
                units.append(LogConfirmation(status=pending_success, undo=block))
                pending_success = None
                continue
            units.append(SingleBlock(pending_success))
            pending_success = None

        if isinstance(block, StatusBlock) and block.tone == "success":
            pending_success = block
            continue

        units.append(SingleBlock(block))

    if pending_success is not None:
        units.append(SingleBlock(pending_success))

    return units


def tool_error_blocks(message: str) -> list[CoachBlock]:
    """Blocks shown when a tool or the planner fails mid-turn."""
    return [
        StatusBlock(tone="error", title="Tool execution failed", description=message[:2000]),
        SuggestionsBlock(prompts=list(DEFAULT_COACH_SUGGESTIONS)),
    ]


def build_turn_response(
    *,
    assistant_text: str,
    blocks: Sequence[CoachBlock],
    tools_used: Sequence[str],
    model: str,
    fallback_used: bool,
) -> CoachTurnResponse:
    """Assemble a final response, filling in defaults for empty output."""
    final_text = assistant_text.strip() or DEFAULT_ASSISTANT_TEXT
    final_blocks: list[CoachBlock] = list(blocks) or [SuggestionsBlock(prompts=list(DEFAULT_COACH_SUGGESTIONS))]

    return CoachTurnResponse(
        assistant_text=final_text,
        blocks=final_blocks,
        trace=TurnTrace(model=model, tools_used=list(tools_used), fallback_used=fallback_used),
    )

"""Terminal rendering of coach timeline entries with rich."""

from typing import assert_never

from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from app.coach.blocks import DisplayUnit, LogConfirmation, SingleBlock
from app.coach.schemas.blocks import (
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
from app.coach.timeline import TimelineEntry

TONE_STYLES = {"success": "green", "error": "red", "info": "cyan"}


def _key_value_table(rows: list[tuple[str, str]]) -> Table:
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column(style="dim")
    table.add_column()
    for label, value in rows:
        table.add_row(label, value)
    return table


def _undo_hint(block: UndoBlock) -> Text:
    return Text(f"/undo {block.action_id} {block.turn_id}", style="dim")


def render_block(block: CoachBlock) -> RenderableType | None:
    """Render one block. Client actions have no visual form."""
    if isinstance(block, ClientActionBlock):
        return None
    if isinstance(block, StatusBlock):
        style = TONE_STYLES[block.tone]
        return Panel(Text(block.description), title=block.title, border_style=style)
    if isinstance(block, UndoBlock):
        return Panel(_undo_hint(block), title=block.title or "Undo available", border_style="yellow")
    if isinstance(block, MetricsBlock):
        return Panel(_key_value_table([(m.label, m.value) for m in block.metrics]), title=block.title)
    if isinstance(block, TrendBlock):
        rows = [(point.label, f"{point.value:g}") for point in block.points]
        rows.append(("Total", f"{block.total:g}"))
        rows.append(("Best day", f"{block.best_day:g}"))
        return Panel(_key_value_table(rows), title=block.title, subtitle=f"{block.subtitle} ({block.metric})")
    if isinstance(block, TableBlock):
        table = Table(title=block.title)
        table.add_column("Item")
        table.add_column("Value")
        table.add_column("Notes", style="dim")
        for row in block.rows:
            table.add_row(row.label, row.value, row.meta or "")
        return table
    if isinstance(block, EntityListBlock):
        if not block.items:
            return Panel(Text(block.empty_label or "No items yet.", style="dim"), title=block.title)
        lines = []
        for item in block.items:
            line = Text(item.title, style="bold")
            if item.subtitle:
                line.append(f"  {item.subtitle}", style="dim")
            if item.tags:
                line.append(f"  [{', '.join(item.tags)}]", style="magenta")
            lines.append(line)
        return Panel(Group(*lines), title=block.title, subtitle=block.description)
    if isinstance(block, DetailPanelBlock):
        table = _key_value_table([(f.label, f"[bold]{f.value}[/bold]" if f.emphasis else f.value) for f in block.fields])
        return Panel(table, title=block.title, subtitle=block.description)
    if isinstance(block, ConfirmationBlock):
        options = f"{block.confirm_label or 'Confirm'}: {block.confirm_prompt!r}"
        if block.cancel_prompt:
            options += f"   {block.cancel_label or 'Cancel'}: {block.cancel_prompt!r}"
        return Panel(Text(options), title=block.title, subtitle=block.description, border_style="yellow")
    if isinstance(block, QuickLogFormBlock):
        hint = f"Type e.g. '8 {block.exercise_name or 'Bench Press'} @ 135 {block.default_unit or 'lbs'}'"
        return Panel(Text(hint, style="dim"), title=block.title)
    if isinstance(block, BillingPanelBlock):
        rows = [("Status", block.status)]
        if block.trial_days_remaining is not None:
            rows.append(("Trial days left", str(block.trial_days_remaining)))
        if block.period_end:
            rows.append(("Period end", block.period_end))
        return Panel(_key_value_table(rows), title=block.title, subtitle=block.subtitle)
    if isinstance(block, SuggestionsBlock):
        return Text("Try: " + " | ".join(block.prompts), style="dim italic")
    assert_never(block)


def render_unit(unit: DisplayUnit) -> RenderableType | None:
    if isinstance(unit, LogConfirmation):
        body = Group(Text(unit.status.description), _undo_hint(unit.undo))
        return Panel(body, title=unit.status.title, border_style="green")
    if isinstance(unit, SingleBlock):
        return render_block(unit.block)
    assert_never(unit)


def print_entry(console: Console, entry: TimelineEntry) -> None:
    """Print an assistant entry: its text followed by its display units."""
    console.print(Text(entry.text, style="bold cyan" if entry.role == "assistant" else "bold"))
    for unit in entry.display_units():
        renderable = render_unit(unit)
        if renderable is not None:
            console.print(renderable)

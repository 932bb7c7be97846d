"""Developer CLI for the coach turn protocol.

Runs the coach API locally and talks to any coach server through the same
client session code the app uses: streaming turns, client actions and undo.
"""

import asyncio
import os
import sys
from datetime import UTC, datetime
from pathlib import Path

import typer
import uvicorn
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from app.coach.schemas.conversation import CoachPreferences
from app.coach.turn import CoachSession, TurnOutcome, create_coach_client
from app.config.settings import settings
from cli.render import print_entry

console = Console()

app = typer.Typer(
    name="coach-cli",
    help="Coach turn protocol CLI - local server and interactive client",
    add_completion=False,
)

DEFAULT_HOST = os.getenv("SERVER_HOST", "127.0.0.1")
EXIT_COMMANDS = {"/quit", "/exit"}


def _setup_logging(debug: bool = False) -> None:
    """Set up logging with console and file output.

    Args:
        debug: Enable debug logging level
    """
    logger.remove()

    log_level = "DEBUG" if debug else "WARNING"

    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{file.name}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level=log_level,
        colorize=True,
    )

    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)

    timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"coach_cli_{timestamp}.log"

    logger.add(
        log_file,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {file.name}:{line} - {message} {extra}",
        level="DEBUG",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        encoding="utf-8",
    )


def _print_outcome(session: CoachSession, outcome: TurnOutcome) -> None:
    if outcome.status == "rejected":
        console.print(f"[yellow]Not sent:[/yellow] {outcome.error}")
        return

    entry = session.timeline.get(outcome.entry_id) if outcome.entry_id else None
    if entry is not None:
        print_entry(console, entry)
    if session.last_trace is not None and outcome.status == "finalized":
        trace = session.last_trace
        tools = ", ".join(trace.tools_used) or "none"
        console.print(f"[dim]model={trace.model} tools={tools} fallback={trace.fallback_used}[/dim]")


async def _handle_undo(session: CoachSession, args: list[str]) -> None:
    if not args:
        console.print("[yellow]Usage:[/yellow] /undo <actionId> [turnId]")
        return
    action_id = args[0]
    turn_id = args[1] if len(args) > 1 else ""
    await session.undo_action(action_id, turn_id)
    if session.timeline.last is not None:
        print_entry(console, session.timeline.last)


async def _chat_loop(base_url: str, unit: str, sound: bool) -> None:
    async with create_coach_client() as client:
        session = CoachSession(
            client,
            base_url=base_url,
            preferences=CoachPreferences(unit=unit, sound_enabled=sound),
        )
        console.print(
            Panel(
                Text("Coach chat", style="bold green"),
                subtitle=f"{base_url}  (/undo <actionId> <turnId>, /prefs, /quit)",
                border_style="green",
            )
        )

        while True:
            try:
                prompt = await asyncio.to_thread(console.input, "[bold]> [/bold]")
            except (EOFError, KeyboardInterrupt):
                break

            command, *args = prompt.strip().split() or [""]
            if command in EXIT_COMMANDS:
                break
            if command == "/undo":
                await _handle_undo(session, args)
                continue
            if command == "/prefs":
                console.print(session.preferences.to_wire())
                continue

            with console.status(session.state.value):
                outcome = await session.send_prompt(prompt)
            _print_outcome(session, outcome)


@app.command()
def chat(
    url: str = typer.Option(settings.coach_api_url, "--url", "-u", help="Coach server base URL"),
    unit: str = typer.Option(settings.coach_default_unit, "--unit", help="Weight unit (lbs or kg)"),
    sound: bool = typer.Option(True, "--sound/--no-sound", help="Sound preference sent with each turn"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Interactive multi-turn chat with a coach server."""
    _setup_logging(debug)
    if unit not in {"lbs", "kg"}:
        console.print(f"[red]Error:[/red] unit must be 'lbs' or 'kg', got {unit!r}", style="bold red")
        raise typer.Exit(1)
    asyncio.run(_chat_loop(url, unit, sound))


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Prompt to send"),
    url: str = typer.Option(settings.coach_api_url, "--url", "-u", help="Coach server base URL"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Send a single prompt and print the rendered turn."""
    _setup_logging(debug)

    async def _run() -> TurnOutcome:
        async with create_coach_client() as client:
            session = CoachSession(client, base_url=url)
            outcome = await session.send_prompt(prompt)
            _print_outcome(session, outcome)
            return outcome

    outcome = asyncio.run(_run())
    if outcome.status != "finalized":
        raise typer.Exit(1)


@app.command()
def server(
    host: str = typer.Option(DEFAULT_HOST, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Run the coach API server.

    Serves `app.main:app` with uvicorn. Without a configured planner every
    turn is answered by the deterministic fallback.
    """
    logger.info(f"Starting coach API server on {host}:{port} (reload={reload})")
    uvicorn.run("app.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()

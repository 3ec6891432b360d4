"""
Recital: terminal front-end for the scheduling engine.

Commands:
- recital load    - Register items from a JSON file
- recital study   - Run an interactive study session
- recital due     - Preview upcoming items
- recital stats   - Show learning statistics

Item content lives outside the engine, so study prompts show item IDs.
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from config import get_settings
from recital.core.errors import RecitalError
from recital.core.models import Item, SessionType, StudySession
from recital.delivery.engine import StudyEngine

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="recital",
    help="Recital: spaced-repetition study for memorizing literature",
    no_args_is_help=True,
)
console = Console()


STYLES = {
    "correct": "bold green",
    "incorrect": "bold red",
    "info": "bold cyan",
    "due": "yellow",
    "new": "green",
    "mastery": {
        "new": "dim",
        "learning": "yellow",
        "mastered": "green",
    },
}


def _engine(db: Optional[str]) -> StudyEngine:
    """Build an engine, optionally pointing at another database."""
    settings = get_settings()
    if db:
        settings = settings.model_copy(update={"database_url": db})
    return StudyEngine.from_settings(settings)


def _fail(error: RecitalError) -> None:
    console.print(f"[red]Error:[/red] {error}")
    raise typer.Exit(1)


def _parse_items(path: Path) -> list[Item]:
    """
    Read items from JSON.

    Accepts a list of IDs (sequence = list position) or a list of
    {"id": ..., "sequence": ...} objects.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"Invalid JSON: {e}", param_hint="ITEMS_FILE") from e
    if not isinstance(data, list):
        raise typer.BadParameter("Expected a JSON list of items", param_hint="ITEMS_FILE")

    items = []
    for position, entry in enumerate(data):
        if isinstance(entry, str):
            items.append(Item(item_id=entry, sequence=position))
        elif isinstance(entry, dict) and "id" in entry:
            try:
                sequence = int(entry.get("sequence", position))
            except (TypeError, ValueError) as e:
                raise typer.BadParameter(
                    f"Invalid sequence at position {position}: {entry.get('sequence')!r}"
                ) from e
            items.append(Item(item_id=str(entry["id"]), sequence=sequence))
        else:
            raise typer.BadParameter(f"Invalid item at position {position}: {entry!r}")
    return items


# =============================================================================
# Commands
# =============================================================================

@app.command()
def load(
    items_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON list of items"),
    db: Optional[str] = typer.Option(None, "--db", help="Database URL override"),
) -> None:
    """Register items so they can be picked as new material."""
    items = _parse_items(items_file)
    try:
        count = _engine(db).register_items(items)
    except RecitalError as e:
        _fail(e)
    console.print(f"[green]Registered {count} items from {items_file.name}[/green]")


@app.command()
def study(
    learner: str = typer.Option(..., "--learner", "-u", help="Learner ID"),
    session_type: SessionType = typer.Option(
        SessionType.MIXED, "--type", "-t", help="Session type", case_sensitive=False
    ),
    due_limit: Optional[int] = typer.Option(None, "--due", help="Maximum due items"),
    new_limit: Optional[int] = typer.Option(None, "--new", "-n", help="Maximum new items"),
    focus: Optional[list[str]] = typer.Option(
        None, "--focus", "-f", help="Item ID for a focused session (repeatable)"
    ),
    auto_rate: bool = typer.Option(
        False, "--auto-rate", help="Infer difficulty from answer speed instead of asking"
    ),
    db: Optional[str] = typer.Option(None, "--db", help="Database URL override"),
) -> None:
    """
    Start an interactive study session.

    Shows each item, asks whether you recalled it and how hard it felt,
    then reschedules it.
    """
    engine = _engine(db)
    expected_seconds = get_settings().expected_response_seconds

    try:
        session_id = engine.start_session(
            learner,
            session_type,
            due_limit=due_limit,
            new_limit=new_limit,
            focus_items=focus,
        )
    except RecitalError as e:
        _fail(e)

    total = engine.sessions.remaining_items(session_id)
    if total == 0:
        console.print("\n[green]Nothing to study right now.[/green]")
        engine.end_session(session_id)
        raise typer.Exit(0)

    console.print(f"\n[bold]Session: {total} items[/bold] ({session_type.value})\n")

    index = 0
    try:
        while (item_id := engine.get_next_item(session_id)) is not None:
            index += 1
            console.print(Panel(item_id, title=f"Item {index}/{total}", border_style="cyan"))

            start_time = time.monotonic()
            Prompt.ask("[dim]Recite, then press Enter[/dim]", default="", show_default=False)
            response_seconds = time.monotonic() - start_time

            was_correct = Confirm.ask("Did you recall it correctly?", default=True)
            if auto_rate:
                rating = engine.scheduler.infer_difficulty_rating(
                    was_correct, response_seconds, expected_seconds
                )
            else:
                rating = IntPrompt.ask(
                    "How easy was it? (1 = very hard, 5 = very easy)",
                    choices=["1", "2", "3", "4", "5"],
                )

            state = engine.submit_result(session_id, item_id, was_correct, rating, response_seconds)
            style = STYLES["correct"] if was_correct else STYLES["incorrect"]
            console.print(
                f"[{style}]{'Correct' if was_correct else 'Missed'}[/{style}] "
                f"- next review in {state.interval_days}d\n"
            )
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Session interrupted.[/yellow]")
    except RecitalError as e:
        engine.end_session(session_id)
        _fail(e)

    _display_session_summary(engine.end_session(session_id))


def _display_session_summary(session: StudySession) -> None:
    """Display end-of-session summary."""
    avg = session.average_response_seconds
    console.print(Panel(
        f"[bold]Session Complete![/bold]\n\n"
        f"Items studied: {session.items_studied}\n"
        f"Accuracy: {session.accuracy * 100:.1f}%\n"
        f"Avg response: {f'{avg:.1f}s' if avg is not None else '-'}",
        title="Summary",
        border_style="green",
    ))


@app.command()
def due(
    learner: str = typer.Option(..., "--learner", "-u", help="Learner ID"),
    limit: int = typer.Option(10, "--limit", "-l", help="Number of items to preview"),
    db: Optional[str] = typer.Option(None, "--db", help="Database URL override"),
) -> None:
    """Preview upcoming study items."""
    try:
        preview_list = _engine(db).preview(learner, limit=limit)
    except RecitalError as e:
        _fail(e)

    if not preview_list:
        console.print("[green]Nothing due and no new items.[/green]")
        return

    table = Table(title="Upcoming Items")
    table.add_column("Item")
    table.add_column("Status")
    for item_id, status in preview_list:
        color = STYLES["due"] if status == "due" else STYLES["new"]
        table.add_row(item_id, f"[{color}]{status}[/{color}]")
    console.print(table)


@app.command()
def stats(
    learner: str = typer.Option(..., "--learner", "-u", help="Learner ID"),
    days: int = typer.Option(7, "--days", "-d", help="Window size in days"),
    db: Optional[str] = typer.Option(None, "--db", help="Database URL override"),
) -> None:
    """Show learning statistics and progress."""
    try:
        analytics = _engine(db).get_stats(learner, window_days=days)
    except RecitalError as e:
        _fail(e)

    console.print(f"\n[bold cyan]Learning Statistics[/bold cyan] ({analytics.window_start} to {analytics.window_end})")

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")

    avg = analytics.average_response_seconds
    table.add_row("Study streak", f"{analytics.study_streak_days} days")
    table.add_row("Sessions completed", str(analytics.sessions_completed))
    table.add_row("Items studied", str(analytics.items_studied))
    table.add_row("Success rate", f"{analytics.success_rate * 100:.1f}%")
    table.add_row("Avg response", f"{avg:.1f}s" if avg is not None else "-")
    table.add_row("Items due now", str(analytics.items_due))
    console.print(table)

    mastery = Table(title="Mastery")
    mastery.add_column("Level")
    mastery.add_column("Items", justify="right")
    for level in ("new", "learning", "mastered"):
        color = STYLES["mastery"][level]
        mastery.add_row(f"[{color}]{level}[/{color}]", str(getattr(analytics.mastery, level)))
    console.print(mastery)

    if analytics.hardest_items:
        hardest = Table(title="Hardest Items")
        hardest.add_column("Item")
        hardest.add_column("Reviews", justify="right")
        hardest.add_column("Success", justify="right")
        hardest.add_column("Avg rating", justify="right")
        for d in analytics.hardest_items:
            hardest.add_row(
                d.item_id,
                str(d.review_count),
                f"{d.success_rate * 100:.0f}%",
                f"{d.avg_difficulty_rating:.1f}",
            )
        console.print(hardest)


# =============================================================================
# Entry Point
# =============================================================================

def configure_logging() -> None:
    """Route loguru output according to settings."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", retention=5)


def main() -> None:
    """CLI entry point."""
    configure_logging()
    app()


if __name__ == "__main__":
    main()

"""
CLI entry point for flashsched.
"""

# Standard library imports
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

# Third-party imports
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

# Local application imports
from flashsched.burying import unbury_cards
from flashsched.card_utils import format_interval
from flashsched.config import EngineSettings
from flashsched.memory_model import FSRSMemoryModel, validate_desired_retention
from flashsched.models import Deck, MemoryState, Rating
from flashsched.queue_builder import CardQueueBuilder, QueueEntryKind
from flashsched.session_manager import StudySessionManager
from flashsched.cli.review_ui import print_review_logs, start_study_flow


console = Console()

app = typer.Typer(
    name="flashsched",
    help="Flashsched: spaced-repetition scheduling engine.",
    add_completion=False,
    rich_markup_mode="markdown",
)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level. Falls back to FLASHSCHED_LOG_LEVEL.",
    ),
):
    """Configure logging for every command."""
    settings = EngineSettings()
    _configure_logging(log_level or settings.log_level)


def _load_deck(path: Path) -> Deck:
    """Read a deck from a JSON file. Exits on unreadable or invalid input."""
    try:
        return Deck.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as e:
        console.print(f"[bold red]Error: could not read {path}: {e}[/bold red]")
        raise typer.Exit(code=1) from e
    except ValidationError as e:
        console.print(f"[bold red]Error: {path} is not a valid deck:[/bold red]\n{e}")
        raise typer.Exit(code=1) from e


def _parse_now(now: Optional[str]) -> Optional[datetime]:
    if now is None:
        return None
    try:
        return datetime.fromisoformat(now)
    except ValueError as e:
        console.print(f"[bold red]Error: invalid --now timestamp '{now}'.[/bold red]")
        raise typer.Exit(code=1) from e


_deck_argument = typer.Argument(  # noqa: B008
    ...,
    exists=True,
    file_okay=True,
    dir_okay=False,
    readable=True,
    help="Path to a deck JSON file.",
)

_now_option = typer.Option(  # noqa: B008
    None,
    "--now",
    help="ISO timestamp to use as the current time.",
)


# ---------------------------------------------------------------------------
# Intervals
# ---------------------------------------------------------------------------


@app.command()
def intervals(
    stability: Optional[float] = typer.Option(
        None, "--stability", help="Current stability in days; omit for a new card."
    ),
    difficulty: float = typer.Option(5.0, "--difficulty", help="Current difficulty (1-10)."),
    retention: float = typer.Option(0.9, "--retention", help="Desired retention."),
    elapsed: float = typer.Option(0.0, "--elapsed", help="Days since the last review."),
):
    """Show the interval and memory state each rating would produce."""
    if not validate_desired_retention(retention):
        console.print("[bold red]Error: --retention must be between 0 and 1.[/bold red]")
        raise typer.Exit(code=1)
    if stability is not None and stability <= 0:
        console.print("[bold red]Error: --stability must be positive.[/bold red]")
        raise typer.Exit(code=1)

    memory = None
    if stability is not None:
        memory = MemoryState(stability=stability, difficulty=difficulty)
    states = FSRSMemoryModel().next_states(memory, retention, elapsed)

    table = Table(title="Next Intervals")
    table.add_column("Rating", style="cyan")
    table.add_column("Interval", style="magenta")
    table.add_column("Stability", style="yellow")
    table.add_column("Difficulty", style="yellow")
    for rating in Rating:
        item = states.for_rating(rating)
        table.add_row(
            rating.name,
            format_interval(item.interval),
            f"{item.memory.stability:.2f}",
            f"{item.memory.difficulty:.2f}",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


@app.command()
def queue(
    deck_path: Path = _deck_argument,
    now: Optional[str] = _now_option,
):
    """Print the study queue that would be built for a deck."""
    deck = _load_deck(deck_path)
    settings = EngineSettings()
    queues = CardQueueBuilder(
        deck,
        learn_ahead_secs=settings.learn_ahead_secs,
        day_rollover_hour=settings.day_rollover_hour,
    ).build(_parse_now(now))

    table = Table(title=f"Queue: {deck.name}")
    table.add_column("#", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Card", style="magenta")
    table.add_column("Due", style="yellow")
    table.add_column("Interval")
    position = 0
    for entry in queues.intraday_now():
        position += 1
        table.add_row(str(position), "learning", str(entry.card.id), str(entry.due), "-")
    for entry in queues.main_queue:
        position += 1
        table.add_row(
            str(position),
            entry.kind.value,
            str(entry.card.id),
            str(entry.card.due),
            format_interval(entry.card.interval),
        )
    for entry in queues.intraday_ahead():
        position += 1
        table.add_row(str(position), "learning (ahead)", str(entry.card.id), str(entry.due), "-")
    console.print(table)

    new = sum(1 for e in queues.main_queue if e.kind == QueueEntryKind.New)
    review = sum(1 for e in queues.main_queue if e.kind == QueueEntryKind.Review)
    learning = (
        len(queues.main_queue) - new - review
        + len(queues.intraday_now())
        + len(queues.intraday_ahead())
    )
    console.print(
        f"New: [bold]{new}[/bold]  Learning: [bold]{learning}[/bold]  "
        f"Review: [bold]{review}[/bold]"
    )


# ---------------------------------------------------------------------------
# Study
# ---------------------------------------------------------------------------


@app.command()
def study(deck_path: Path = _deck_argument):
    """
    Run an interactive practice session over a deck.

    The deck file is only read; the review log is printed when the session
    ends.
    """
    deck = _load_deck(deck_path)
    manager = StudySessionManager(settings=EngineSettings())
    logs = start_study_flow(manager, deck)
    if logs:
        print_review_logs(logs)


# ---------------------------------------------------------------------------
# Unbury
# ---------------------------------------------------------------------------


@app.command()
def unbury(
    deck_path: Path = _deck_argument,
    keep_user_buried: bool = typer.Option(
        False,
        "--keep-user-buried",
        help="Only restore cards buried by the scheduler.",
    ),
):
    """Restore buried cards to their queues and rewrite the deck file."""
    deck = _load_deck(deck_path)
    restored = {
        card.id: card
        for card in unbury_cards(deck.cards, include_user_buried=not keep_user_buried)
    }
    if not restored:
        console.print("No buried cards.")
        return

    cards = [restored.get(card.id, card) for card in deck.cards]
    updated = deck.model_copy(update={"cards": cards})
    try:
        deck_path.write_text(updated.model_dump_json(), encoding="utf-8")
    except OSError as e:
        console.print(f"[bold red]Error: could not write {deck_path}: {e}[/bold red]")
        raise typer.Exit(code=1) from e
    console.print(f"[green]Restored {len(restored)} buried cards in {deck.name}.[/green]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """
    Run the CLI application, exiting with status 1 on an unexpected error.
    """
    try:
        app()
    except Exception as e:
        console.print(f"[bold red]UNEXPECTED ERROR: {e}[/bold red]")
        raise SystemExit(1)


if __name__ == "__main__":
    main()

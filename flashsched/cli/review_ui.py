"""
Command-line interface for studying a deck.
"""

import logging
import time
from typing import Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from flashsched.card_utils import format_interval
from flashsched.exceptions import SchedulerError
from flashsched.models import Card, Deck, Rating, ReviewLog
from flashsched.session_manager import StudySessionManager

logger = logging.getLogger(__name__)
console = Console()


def _get_user_rating() -> int:
    """
    Prompt the user to enter a rating (1-4) until a valid one is given.
    """
    while True:
        try:
            rating_str = console.input(
                "[bold]Rating (1:Again, 2:Hard, 3:Good, 4:Easy): [/bold]"
            )
            rating = int(rating_str)
            if 1 <= rating <= 4:
                return rating
            console.print(
                "[bold red]Invalid rating. Please enter a number between 1 and 4.[/bold red]"
            )
        except (ValueError, TypeError):
            console.print(
                "[bold red]Invalid input. Please enter a number.[/bold red]"
            )


def _display_card(card: Card, labels: Dict[Rating, str]) -> None:
    """
    Show a card's front, wait for Enter, then reveal the back and the
    interval each answer button would give.
    """
    console.print(Panel(card.front or f"Card {card.id}", title="Front", border_style="green"))
    console.input("[italic]Press Enter to see the back...[/italic]")
    console.print(Panel(card.back, title="Back", border_style="blue"))
    console.print(
        "  ".join(
            f"[bold]{int(rating)}[/bold] {rating.name} ({label})"
            for rating, label in labels.items()
        )
    )


def print_review_logs(logs: List[ReviewLog]) -> None:
    table = Table(title="Review Log")
    table.add_column("Card", style="cyan")
    table.add_column("Rating", style="magenta")
    table.add_column("Kind")
    table.add_column("Interval", style="yellow")
    for log in logs:
        table.add_row(
            str(log.card_id),
            log.rating.name,
            log.review_kind.name,
            f"{format_interval(log.last_interval)} -> {format_interval(log.new_interval)}",
        )
    console.print(table)


def start_study_flow(manager: StudySessionManager, deck: Deck) -> List[ReviewLog]:
    """
    Runs an interactive study session over ``deck``.

    Returns:
        The review logs produced, in answer order.
    """
    console.print(f"[bold cyan]Starting study session for '{deck.name}'...[/bold cyan]")
    if manager.start_session(deck) is None:
        console.print("[bold yellow]No cards are due for study.[/bold yellow]")
        return []

    logs: List[ReviewLog] = []
    while (card := manager.get_next_card()) is not None:
        counts = manager.remaining_counts()
        console.rule(
            f"[bold]New {counts.new} · Learning {counts.learning} · Review {counts.review}[/bold]"
        )
        labels = manager.review_processor.state_machine.button_intervals(
            card, manager.config
        )
        _display_card(card, labels)

        start_time = time.time()
        rating = _get_user_rating()
        time_taken = int((time.time() - start_time) * 1000)

        try:
            result = manager.answer_card(card, rating, time_taken=time_taken)
        except SchedulerError as e:
            logger.error(f"Failed to answer card {card.id}: {e}")
            console.print("[bold red]Error recording answer.[/bold red]")
            continue

        logs.append(result.log)
        if result.leeched:
            console.print("[bold yellow]This card is a leech.[/bold yellow]")
        console.print(
            f"[green]Answered.[/green] Next due in "
            f"[bold]{labels[Rating(rating)]}[/bold]"
        )
        console.print("")

    summary = manager.end_session()
    reviewed = summary["reviewed"] if summary else len(logs)
    console.print(f"[bold cyan]Study session finished: {reviewed} cards. Well done![/bold cyan]")
    return logs

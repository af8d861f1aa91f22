"""
Command-line interface for reviewing cards.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from rich.console import Console
from rich.panel import Panel

from recallcore.constants import MAX_RATING, MIN_RATING
from recallcore.exceptions import ReviewError
from recallcore.models import Card, RatingConvention
from recallcore.review_session import ReviewSession

logger = logging.getLogger(__name__)
console = Console()

_RATING_PROMPTS = {
    RatingConvention.RECALL: "Rating (1:Blackout, 2:Wrong, 3:Hard, 4:Good, 5:Perfect): ",
    RatingConvention.DIFFICULTY: "Difficulty (1:Very easy ... 5:Very hard): ",
}


def _get_user_rating(convention: RatingConvention) -> int:
    """
    Prompt until the user enters an integer rating between 1 and 5.
    """
    while True:
        try:
            rating = int(console.input(f"[bold]{_RATING_PROMPTS[convention]}[/bold]"))
            if MIN_RATING <= rating <= MAX_RATING:
                return rating
            console.print(
                "[bold red]Invalid rating. Please enter a number between 1 and 5.[/bold red]"
            )
        except (ValueError, TypeError):
            console.print("[bold red]Invalid input. Please enter a number.[/bold red]")


def _display_card(card: Card) -> None:
    """Show a card's front, wait for Enter, then reveal the back."""
    console.print(Panel(card.front, title="Front", border_style="green"))
    console.input("[italic]Press Enter to see the back...[/italic]")
    console.print(Panel(card.back, title="Back", border_style="blue"))


def start_review_flow(
    session: ReviewSession,
    convention: RatingConvention = RatingConvention.RECALL,
    limit: Optional[int] = None,
) -> None:
    """
    Manages the command-line review session flow.

    Args:
        session: An instance of ReviewSession.
        convention: How the prompted ratings are read.
        limit: Maximum number of cards; the recommended batch size if None.
    """
    console.print("[bold cyan]Starting review session...[/bold cyan]")
    session.initialize_session(limit=limit)

    due_cards_count = len(session.review_queue)
    if due_cards_count == 0:
        console.print("[bold yellow]No cards are due for review.[/bold yellow]")
        console.print("[bold cyan]Review session finished.[/bold cyan]")
        return

    position = 0
    while (card := session.get_next_card()) is not None:
        position += 1
        console.rule(f"[bold]Card {position} of {due_cards_count}[/bold]")

        _display_card(card)
        rating = _get_user_rating(convention)

        try:
            updated_card = session.submit_review(card_id=card.id, rating=rating)
        except ReviewError as e:
            logger.error(f"Failed to submit review for {card.id}: {e}")
            console.print(
                "[bold red]Error submitting review. Ending the session; "
                "the card stays due.[/bold red]"
            )
            break

        days_until_due = round(
            (updated_card.next_review_at - datetime.now(timezone.utc))
            / timedelta(days=1)
        )
        due_date_str = updated_card.next_review_at.strftime("%Y-%m-%d")
        console.print(
            f"[green]Reviewed.[/green] Next review in [bold]{days_until_due} days[/bold] on {due_date_str}."
        )
        console.print("")

    if session.pending_log_writes:
        remaining = session.retry_pending_log_writes()
        if remaining:
            console.print(
                f"[yellow]{remaining} reviews could not be written to the history log.[/yellow]"
            )

    stats = session.get_session_stats()
    console.print(
        f"[bold cyan]Review session finished. Reviewed {stats['reviewed_cards']} "
        f"of {stats['total_cards']} cards, remembered {stats['remembered_cards']}.[/bold cyan]"
    )

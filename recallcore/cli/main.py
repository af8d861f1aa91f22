"""
CLI entry point for recallcore.
"""

# Standard library imports
import logging
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Set
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Third-party imports
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

# Local application imports
from recallcore.cli.review_ui import start_review_flow
from recallcore.config import get_settings
from recallcore.db.database import StudyDatabase
from recallcore.due_selector import DueSetSelector
from recallcore.exceptions import DatabaseError, InvalidConfigurationError
from recallcore.models import Card, LearningStats, RetentionReport, StudyPlanRequest
from recallcore.review_session import ReviewSession
from recallcore.scoring import SM2Scheduler
from recallcore.session_scheduler import SessionScheduler
from recallcore.stats import StatsAggregator


console = Console()

app = typer.Typer(
    name="recallcore",
    help="recallcore: spaced-repetition scheduling for study cards.",
    add_completion=False,
    rich_markup_mode="markdown",
)

_WEEKDAY_NAMES = {
    "mon": 0,
    "tue": 1,
    "wed": 2,
    "thu": 3,
    "fri": 4,
    "sat": 5,
    "sun": 6,
}


# ---------------------------------------------------------------------------
# Helpers for resolving the --db path and --owner
# ---------------------------------------------------------------------------


def _resolve_db_path(db: Optional[Path]) -> Path:
    """Resolve the db path from the CLI flag, falling back to settings."""
    if db is not None:
        return db
    return get_settings().db_path


def _resolve_owner(owner: Optional[str]) -> str:
    return owner or get_settings().owner_id


def _resolve_tz(tz_name: Optional[str]):
    if not tz_name:
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise typer.BadParameter(f"Unknown timezone: {tz_name}") from e


def _parse_weekdays(value: str) -> Set[int]:
    """
    Parse a comma-separated weekday list such as ``mon,wed`` or ``0,2``.

    An empty string yields an empty set.
    """
    weekdays: Set[int] = set()
    for raw in value.split(","):
        token = raw.strip().lower()
        if not token:
            continue
        if token[:3] in _WEEKDAY_NAMES:
            weekdays.add(_WEEKDAY_NAMES[token[:3]])
        elif token.isdigit() and 0 <= int(token) <= 6:
            weekdays.add(int(token))
        else:
            raise typer.BadParameter(
                f"Invalid weekday '{raw.strip()}'. Use mon..sun or 0..6."
            )
    return weekdays


def _short_id(card: Card) -> str:
    return str(card.id)[:8]


def _fmt_ts(ts: Optional[datetime]) -> str:
    return ts.strftime("%Y-%m-%d %H:%M") if ts else "-"


# Common typer options reused across commands
_db_option = typer.Option(  # noqa: B008
    None,
    "--db",
    help="Path to the DuckDB database file. "
    "Falls back to RECALLCORE_DB env var, then the configured default.",
    envvar="RECALLCORE_DB",
)

_owner_option = typer.Option(  # noqa: B008
    None,
    "--owner",
    help="Learner whose cards are used. Falls back to RECALLCORE_OWNER.",
    envvar="RECALLCORE_OWNER",
)

_topic_option = typer.Option(  # noqa: B008
    None,
    "--topic",
    help="Restrict to cards of one topic.",
)

_tz_option = typer.Option(  # noqa: B008
    None,
    "--tz",
    help="IANA timezone for calendar days (default UTC).",
)


# ---------------------------------------------------------------------------
# Init
# ---------------------------------------------------------------------------


@app.command()
def init(
    db: Optional[Path] = _db_option,
):
    """Create the database and its tables if they do not exist yet."""
    db_path = _resolve_db_path(db)
    try:
        with StudyDatabase(db_path=db_path) as db_inst:
            db_inst.initialize_schema()
        console.print(
            f"[bold green]Database ready at[/bold green] [cyan]{db_path}[/cyan]"
        )
    except DatabaseError as e:
        console.print(f"[bold]A database error occurred: {e}[/bold]")
        raise typer.Exit(code=1) from e


# ---------------------------------------------------------------------------
# Due
# ---------------------------------------------------------------------------


def _display_due_cards(cons: Console, cards: List[Card], due_total: int):
    table = Table(title=f"Due Cards ({len(cards)} of {due_total})")
    table.add_column("ID", style="dim")
    table.add_column("Topic", style="cyan")
    table.add_column("Front")
    table.add_column("Next Review", style="yellow")
    table.add_column("EF", style="magenta")
    table.add_column("Retention", style="green")
    for card in cards:
        table.add_row(
            _short_id(card),
            card.topic_id or "-",
            card.front,
            _fmt_ts(card.next_review_at),
            f"{card.easiness_factor:.2f}",
            f"{card.last_retention:.0%}" if card.last_retention is not None else "new",
        )
    cons.print(table)


@app.command()
def due(
    db: Optional[Path] = _db_option,
    owner: Optional[str] = _owner_option,
    topic: Optional[str] = _topic_option,
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        "-l",
        min=0,
        help="Maximum number of cards (default from RECALLCORE_DUE_LIMIT).",
    ),
    priority: bool = typer.Option(
        False,
        "--priority",
        help="Weakest retention first instead of most overdue first.",
    ),
):
    """List the cards that are due for review."""
    db_path = _resolve_db_path(db)
    owner_id = _resolve_owner(owner)
    limit = get_settings().due_limit if limit is None else limit
    try:
        with StudyDatabase(db_path=db_path) as db_inst:
            selector = DueSetSelector(db_inst)
            due_total = selector.get_due_count(owner_id, topic_id=topic)
            if priority:
                cards = selector.get_priority_cards(owner_id, topic_id=topic, limit=limit)
            else:
                cards = selector.get_due_cards(owner_id, topic_id=topic, limit=limit)
    except DatabaseError as e:
        console.print(f"[bold]A database error occurred: {e}[/bold]")
        raise typer.Exit(code=1) from e

    if not cards:
        console.print("[yellow]No cards are due for review.[/yellow]")
        return
    _display_due_cards(console, cards, due_total)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


@app.command()
def review(
    db: Optional[Path] = _db_option,
    owner: Optional[str] = _owner_option,
    topic: Optional[str] = _topic_option,
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        "-l",
        min=1,
        help="Maximum number of cards (default: recommended batch size).",
    ),
):
    """Starts an interactive review session over the due cards."""
    db_path = _resolve_db_path(db)
    owner_id = _resolve_owner(owner)
    convention = get_settings().rating_convention
    try:
        with StudyDatabase(db_path=db_path) as db_inst:
            session = ReviewSession(
                db_inst,
                owner_id,
                topic_id=topic,
                scheduler=SM2Scheduler(convention),
            )
            start_review_flow(session, convention=convention, limit=limit)
    except DatabaseError as e:
        console.print(f"[bold]A database error occurred: {e}[/bold]")
        raise typer.Exit(code=1) from e


# ---------------------------------------------------------------------------
# Stats helpers & command
# ---------------------------------------------------------------------------


def _display_learning_stats(cons: Console, stats_data: LearningStats):
    overall_table = Table(title="Learning Stats", show_header=False)
    overall_table.add_column("Metric", style="cyan")
    overall_table.add_column("Value", style="magenta")
    overall_table.add_row("Total Cards", str(stats_data.total_cards))
    overall_table.add_row("Mastered", str(stats_data.mastered_cards))
    overall_table.add_row("Learning", str(stats_data.learning_cards))
    overall_table.add_row("New", str(stats_data.new_cards))
    overall_table.add_row("Struggling", str(stats_data.struggling_cards))
    overall_table.add_row("Due Now", str(stats_data.due_cards))
    overall_table.add_row("Average Difficulty", f"{stats_data.average_difficulty:.2f}")
    overall_table.add_row("Average Easiness", f"{stats_data.average_easiness_factor:.2f}")
    overall_table.add_row("Average Retention", f"{stats_data.average_retention:.0%}")
    overall_table.add_row("Recommended Batch", str(stats_data.recommended_batch_size))
    cons.print(overall_table)


def _display_activity(cons: Console, stats_data: LearningStats, today: date):
    activity_table = Table(title="Review Activity")
    activity_table.add_column("Day", style="cyan")
    activity_table.add_column("Reviews", style="magenta")
    for offset, count in zip(range(6, -1, -1), stats_data.reviews_last_7_days):
        day = today - timedelta(days=offset)
        activity_table.add_row(day.strftime("%a %Y-%m-%d"), str(count))
    cons.print(activity_table)
    cons.print(
        f"Today: [bold]{stats_data.reviews_today}[/bold], "
        f"yesterday: [bold]{stats_data.reviews_yesterday}[/bold], "
        f"streak: [bold]{stats_data.streak_days}[/bold] days"
    )


@app.command()
def stats(
    db: Optional[Path] = _db_option,
    owner: Optional[str] = _owner_option,
):
    """Display learning statistics for a learner."""
    db_path = _resolve_db_path(db)
    owner_id = _resolve_owner(owner)
    now = datetime.now().astimezone()
    try:
        with StudyDatabase(db_path=db_path) as db_inst:
            stats_data = StatsAggregator(db_inst, db_inst).get_stats(owner_id, now=now)
    except DatabaseError as e:
        console.print(f"[bold]A database error occurred: {e}[/bold]")
        raise typer.Exit(code=1) from e

    _display_learning_stats(console, stats_data)
    if not stats_data.total_cards:
        console.print("[yellow]No cards found for this learner.[/yellow]")
        return
    _display_activity(console, stats_data, now.date())


def _display_retention(cons: Console, report: RetentionReport):
    cons.print(
        f"Overall retention: [bold]{report.overall_retention:.0%}[/bold] "
        f"({report.remembered_reviews} of {report.total_reviews} reviews remembered)"
    )
    day_table = Table(title="Retention by Day")
    day_table.add_column("Day", style="cyan")
    day_table.add_column("Reviews", style="magenta")
    day_table.add_column("Remembered", style="green")
    day_table.add_column("Rate", style="yellow")
    for day, bucket in report.per_day_retention.items():
        day_table.add_row(
            day.isoformat(),
            str(bucket.total),
            str(bucket.remembered),
            f"{bucket.rate:.0%}",
        )
    cons.print(day_table)
    if report.per_topic_retention:
        topic_table = Table(title="Retention by Topic")
        topic_table.add_column("Topic", style="cyan")
        topic_table.add_column("Reviews", style="magenta")
        topic_table.add_column("Rate", style="yellow")
        for name, bucket in report.per_topic_retention.items():
            topic_table.add_row(name, str(bucket.total), f"{bucket.rate:.0%}")
        cons.print(topic_table)


@app.command()
def retention(
    db: Optional[Path] = _db_option,
    owner: Optional[str] = _owner_option,
    topic: Optional[str] = _topic_option,
    tz: Optional[str] = _tz_option,
):
    """Show observed retention over the review history."""
    db_path = _resolve_db_path(db)
    owner_id = _resolve_owner(owner)
    zone = _resolve_tz(tz)
    try:
        with StudyDatabase(db_path=db_path) as db_inst:
            report = StatsAggregator(db_inst, db_inst).get_retention(
                owner_id, tz=zone, topic_id=topic
            )
    except DatabaseError as e:
        console.print(f"[bold]A database error occurred: {e}[/bold]")
        raise typer.Exit(code=1) from e

    if not report.total_reviews:
        console.print("[yellow]No reviews recorded yet.[/yellow]")
        return
    _display_retention(console, report)


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


@app.command()
def plan(
    db: Optional[Path] = _db_option,
    owner: Optional[str] = _owner_option,
    start: Optional[datetime] = typer.Option(  # noqa: B008
        None, "--start", formats=["%Y-%m-%d"], help="First day (default today)."
    ),
    end: Optional[datetime] = typer.Option(  # noqa: B008
        None, "--end", formats=["%Y-%m-%d"], help="Last day (default start + 6 days)."
    ),
    budget: Optional[int] = typer.Option(
        None, "--budget", help="Daily study budget in minutes."
    ),
    minutes_per_card: Optional[int] = typer.Option(
        None, "--minutes-per-card", help="Minutes allotted to each card."
    ),
    weekdays: str = typer.Option(
        "mon,tue,wed,thu,fri,sat,sun",
        "--weekdays",
        help="Comma-separated days that may hold sessions, e.g. mon,wed,fri.",
    ),
    tz: Optional[str] = _tz_option,
):
    """Plan study sessions for the coming days."""
    db_path = _resolve_db_path(db)
    owner_id = _resolve_owner(owner)
    zone = _resolve_tz(tz)
    settings = get_settings()
    start_date = start.date() if start else datetime.now(zone).date()
    end_date = end.date() if end else start_date + timedelta(days=6)

    try:
        request = StudyPlanRequest(
            start_date=start_date,
            end_date=end_date,
            daily_budget_minutes=settings.daily_budget_minutes if budget is None else budget,
            available_weekdays=_parse_weekdays(weekdays),
            minutes_per_card=settings.minutes_per_card if minutes_per_card is None else minutes_per_card,
        )
        with StudyDatabase(db_path=db_path) as db_inst:
            study_plan = SessionScheduler(db_inst).plan(owner_id, request, tz=zone)
    except InvalidConfigurationError as e:
        console.print(f"[bold red]Invalid plan settings:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    except DatabaseError as e:
        console.print(f"[bold]A database error occurred: {e}[/bold]")
        raise typer.Exit(code=1) from e

    if not study_plan.days:
        console.print("[yellow]No study days in the requested range.[/yellow]")
        return

    table = Table(title=f"Study Plan {start_date} to {end_date}")
    table.add_column("Day", style="cyan")
    table.add_column("Due", style="magenta")
    table.add_column("Backlog", style="yellow")
    table.add_column("Minutes", style="green")
    for day in study_plan.days:
        due_count = sum(1 for item in day.items if item.source == "due")
        minutes = f"{day.total_minutes}/{day.budget_minutes}"
        if day.over_budget:
            minutes += " [red](over budget)[/red]"
        table.add_row(
            day.date.strftime("%a %Y-%m-%d"),
            str(due_count),
            str(len(day.items) - due_count),
            minutes,
        )
    console.print(table)
    if study_plan.carried_over:
        console.print(
            f"[yellow]{len(study_plan.carried_over)} cards do not fit and "
            f"carry over past {end_date}.[/yellow]"
        )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def main():
    """
    Run the CLI application.

    If an unexpected exception occurs, print a bold red error message to the console and exit the process with status code 1.
    """
    _configure_logging()
    try:
        app()
    except Exception as e:
        console.print(f"[bold red]UNEXPECTED ERROR: {e}[/bold red]")
        raise SystemExit(1)


if __name__ == "__main__":
    main()

"""
Practice CLI - spaced repetition practice from the terminal.

Usage:
    practice queue               # Today's interleaved review queue
    practice record ITEM --correct --time 42
    practice stats               # Due counts and queue breakdown
    practice forecast --days 7   # Upcoming review workload
    practice recommend           # Best item to practice next
    practice targets             # Difficulty range per unit
    practice topic TOPIC         # Topic mastery report
    practice session start       # Time a practice session
    practice session end ID

Global options (--db, --catalog) default to PRACTICE_* environment
settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from practice_scheduler.config import get_settings
from practice_scheduler.core.errors import PracticeSchedulerError
from practice_scheduler.core.models import AttemptEvent, DifficultyTier
from practice_scheduler.logging_setup import configure_logging
from practice_scheduler.scheduling.difficulty import RecommendationFilters
from practice_scheduler.scheduling.review_queue import ReviewQueueBuilder
from practice_scheduler.service import PracticeService
from practice_scheduler.store.item_catalog import ItemCatalog
from practice_scheduler.store.progress_store import ProgressStore

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="practice",
    help="Spaced repetition practice scheduler",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()


@dataclass
class CliState:
    db_path: Path
    catalog_path: Path
    service: PracticeService | None = None

    def get_service(self) -> PracticeService:
        """Open the store and load the catalog on first use."""
        if self.service is None:
            settings = get_settings()
            catalog = ItemCatalog(self.catalog_path)
            catalog.load()
            self.service = PracticeService(
                store=ProgressStore(self.db_path),
                catalog=catalog,
                queue_builder=ReviewQueueBuilder(config=settings.get_queue_config()),
            )
        return self.service


def _service(ctx: typer.Context) -> PracticeService:
    try:
        return ctx.obj.get_service()
    except (PracticeSchedulerError, OSError) as e:
        _fail(e)


def _fail(error: Exception) -> NoReturn:
    console.print(f"[red]Error:[/] {error}")
    raise typer.Exit(1)


# =============================================================================
# Queue Commands
# =============================================================================


@app.command("queue")
def show_queue(
    ctx: typer.Context,
    limit: Annotated[
        int | None, typer.Option("--limit", "-n", help="Queue size (adaptive if omitted)")
    ] = None,
) -> None:
    """
    Show today's practice queue.

    Examples:
        practice queue          # Adaptive size
        practice queue -n 10    # At most 10 items
    """
    service = _service(ctx)
    try:
        queue = service.daily_queue(target=limit)
    except PracticeSchedulerError as e:
        _fail(e)

    if not queue:
        console.print("[green]No reviews due. Nice work![/]")
        return

    table = Table(title=f"Practice Queue ({len(queue)} items)")
    table.add_column("#", style="dim", width=3)
    table.add_column("Item", style="white")
    table.add_column("Unit", style="cyan")
    table.add_column("Topic", style="yellow")
    table.add_column("Tier", style="magenta")

    for i, item in enumerate(service.catalog.get_by_ids(queue)):
        table.add_row(str(i + 1), item.item_id, item.unit, item.topic, item.difficulty.value)

    console.print(table)


@app.command("record")
def record(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Practice item id")],
    correct: Annotated[
        bool, typer.Option("--correct/--incorrect", help="Whether the answer was correct")
    ] = True,
    time_spent: Annotated[
        float, typer.Option("--time", "-t", help="Seconds spent on the attempt")
    ] = 60.0,
    expected: Annotated[
        float | None,
        typer.Option("--expected", "-e", help="Expected seconds (item estimate if omitted)"),
    ] = None,
    hints: Annotated[int, typer.Option("--hints", help="Hints used")] = 0,
) -> None:
    """Record a practice attempt and reschedule the item."""
    service = _service(ctx)
    item = service.catalog.get(item_id)
    if expected is None:
        expected = item.estimated_time_seconds if item is not None else 60.0

    try:
        result = service.record_attempt(
            AttemptEvent(
                item_id=item_id,
                correct=correct,
                time_spent_seconds=time_spent,
                expected_time_seconds=expected,
                hints_used=hints,
            )
        )
    except PracticeSchedulerError as e:
        _fail(e)

    card = result.card
    console.print(Panel(
        f"Quality: [bold]{result.quality}[/]\n"
        f"Interval: {card.interval}d ({result.interval_changed:+d})\n"
        f"Ease: {card.ease_factor:.2f} ({result.ease_factor_changed:+.2f})\n"
        f"Next review: {card.next_review:%Y-%m-%d %H:%M} UTC",
        title=f"{'✓' if result.was_correct else '✗'} {item_id}",
        border_style="green" if result.was_correct else "red",
    ))


# =============================================================================
# Session Commands
# =============================================================================

session_app = typer.Typer(help="Practice session tracking")
app.add_typer(session_app, name="session")


@session_app.command("start")
def session_start(ctx: typer.Context) -> None:
    """Start a timed practice session."""
    try:
        session_id = _service(ctx).start_session()
    except PracticeSchedulerError as e:
        _fail(e)

    console.print(f"[green]Session {session_id} started.[/]")
    console.print(f"[dim]Run 'practice session end {session_id}' when you finish.[/]")


@session_app.command("end")
def session_end(
    ctx: typer.Context,
    session_id: Annotated[int, typer.Argument(help="Id printed by 'session start'")],
) -> None:
    """
    Close a session.

    Attempts recorded since the session started are attached to it, and
    its length feeds the adaptive queue size.
    """
    try:
        session = _service(ctx).end_session(session_id)
    except PracticeSchedulerError as e:
        _fail(e)

    correct = sum(1 for r in session.results if r)
    console.print(Panel(
        f"Items: {len(session.item_ids)}\n"
        f"Correct: {correct}\n"
        f"Duration: {session.duration_seconds / 60:.1f} min",
        title=f"Session {session_id}",
        border_style="green",
    ))


# =============================================================================
# Report Commands
# =============================================================================


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show due counts and a breakdown of the review backlog."""
    service = _service(ctx)
    try:
        summary = service.store.get_stats()
        queue_stats = service.queue_stats()
    except PracticeSchedulerError as e:
        _fail(e)

    table = Table(title="Practice Stats")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Cards tracked", str(summary["total_cards"]))
    table.add_row("Due now", str(queue_stats.total))
    table.add_row("Overdue", str(queue_stats.overdue))
    table.add_row("Weak", str(queue_stats.weak))
    table.add_row("Tool required / free", f"{queue_stats.tool_required} / {queue_stats.tool_free}")
    table.add_row("Estimated time", f"{queue_stats.estimated_time_minutes} min")
    table.add_row("Attempts logged", str(summary["total_attempts"]))
    table.add_row("Recent accuracy", f"{summary['accuracy_recent_percent']}%")
    table.add_row("Sessions completed", str(summary["sessions_completed"]))
    console.print(table)

    if queue_stats.by_unit:
        units = Table(title="Due by Unit")
        units.add_column("Unit", style="cyan")
        units.add_column("Due", style="green")
        for unit, count in sorted(queue_stats.by_unit.items()):
            units.add_row(unit, str(count))
        console.print(units)


@app.command()
def forecast(
    ctx: typer.Context,
    days: Annotated[
        int | None, typer.Option("--days", "-d", help="Days to forecast")
    ] = None,
) -> None:
    """Show the review workload for the coming days."""
    days = days or get_settings().forecast_days
    if days < 1:
        _fail(ValueError("--days must be at least 1"))

    try:
        schedule = _service(ctx).forecast(days)
    except PracticeSchedulerError as e:
        _fail(e)

    table = Table(title=f"Review Forecast {schedule.start_date} to {schedule.end_date}")
    table.add_column("Date", style="cyan")
    table.add_column("Reviews", style="green")
    table.add_column("Overdue", style="red")
    table.add_column("Weak", style="yellow")
    table.add_column("Minutes", style="dim")

    for day in schedule.daily_schedules:
        table.add_row(
            day.date,
            str(day.total_count),
            str(day.difficulty_distribution["overdue"]),
            str(day.difficulty_distribution["weak"]),
            str(day.estimated_time_minutes),
        )

    console.print(table)
    console.print(
        f"Total: {schedule.total_reviews}  "
        f"Average/day: {schedule.average_per_day:.1f}  "
        f"Peak: {schedule.peak_day}  Lightest: {schedule.lightest_day}"
    )


@app.command()
def recommend(
    ctx: typer.Context,
    unit: Annotated[str | None, typer.Option("--unit", "-u", help="Restrict to a unit")] = None,
    topic: Annotated[str | None, typer.Option("--topic", help="Restrict to a topic")] = None,
    max_difficulty: Annotated[
        DifficultyTier | None, typer.Option("--max-difficulty", help="Hardest tier allowed")
    ] = None,
) -> None:
    """Suggest the next item to practice."""
    filters = RecommendationFilters(unit=unit, topic=topic, max_difficulty=max_difficulty)
    try:
        item = _service(ctx).next_problem(filters)
    except PracticeSchedulerError as e:
        _fail(e)

    if item is None:
        console.print("[yellow]No matching items.[/]")
        return

    console.print(Panel(
        f"[bold]{item.item_id}[/]\n"
        f"Unit: {item.unit}\n"
        f"Topic: {item.topic}\n"
        f"Tier: {item.difficulty.value}\n"
        f"Practiced: {item.practice_count}x ({item.success_rate:.0%} correct)",
        title="Next Problem",
        border_style="cyan",
    ))


@app.command()
def targets(ctx: typer.Context) -> None:
    """Show the difficulty range to practice in each unit."""
    try:
        ranges = _service(ctx).difficulty_targets()
    except PracticeSchedulerError as e:
        _fail(e)

    if not ranges:
        console.print("[yellow]No unit progress recorded yet.[/]")
        return

    table = Table(title="Difficulty Targets")
    table.add_column("Unit", style="cyan")
    table.add_column("Min", style="green")
    table.add_column("Max", style="magenta")
    for unit, target in sorted(ranges.items()):
        table.add_row(unit, target.min.value, target.max.value)
    console.print(table)


@app.command()
def topic(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Topic name")],
) -> None:
    """Show accuracy, mastery and weak/strong items for a topic."""
    try:
        report = _service(ctx).topic_report(name)
    except PracticeSchedulerError as e:
        _fail(e)

    if not report.topic:
        console.print(f"[yellow]No items for topic {name!r}.[/]")
        return

    console.print(Panel(
        f"Attempts: {report.total_attempts}\n"
        f"Accuracy: {report.accuracy:.0%}\n"
        f"Average time: {report.average_time:.0f}s\n"
        f"Mastery: {report.mastery_level:.0%}\n"
        f"Weak: {', '.join(report.weak_points) or '-'}\n"
        f"Strong: {', '.join(report.strong_points) or '-'}",
        title=f"Topic: {report.topic}",
        border_style="cyan",
    ))


# =============================================================================
# Entry Point
# =============================================================================


@app.callback()
def main(
    ctx: typer.Context,
    db: Annotated[
        Path | None, typer.Option("--db", help="SQLite progress database")
    ] = None,
    catalog: Annotated[
        Path | None, typer.Option("--catalog", help="Item catalog JSON file or directory")
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,
) -> None:
    """
    Spaced repetition practice scheduler.

    \b
    Quick Start:
      practice --catalog items.json queue
      practice record unit1-q3 --correct --time 42
      practice forecast --days 14
    """
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)
    ctx.obj = CliState(
        db_path=db or settings.db_path,
        catalog_path=catalog or settings.catalog_path,
    )


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()

"""
cardwise: terminal interface for spaced repetition review.

Commands:
- cardwise due       - Show due / new card counts
- cardwise stats     - Show retention, maturity and study statistics
- cardwise forecast  - Show how many cards fall due each day
- cardwise study     - Run an interactive review session
- cardwise review    - Rate a single card outside a session
- cardwise reset     - Clear review state for a user
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional, TypeVar

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from cardwise.config import Settings, get_settings
from cardwise.core.errors import CardwiseError
from cardwise.db.database import Database
from cardwise.db.sql_store import SqlCardStore
from cardwise.delivery.content import CardDeck
from cardwise.delivery.queue_builder import SessionOptions
from cardwise.fsrs.memory import CardState, Rating, SessionSummary, utcnow
from cardwise.log import configure_logging
from cardwise.service import CardwiseService

T = TypeVar("T")

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="cardwise",
    help="cardwise: FSRS spaced repetition review",
    no_args_is_help=True,
)
console = Console()

RATING_STYLES = {
    Rating.AGAIN: "bold red",
    Rating.HARD: "bold yellow",
    Rating.GOOD: "bold green",
    Rating.EASY: "bold cyan",
}

STATE_STYLES = {
    CardState.NEW: "blue",
    CardState.LEARNING: "yellow",
    CardState.REVIEW: "green",
    CardState.RELEARNING: "red",
}


@dataclass
class CliContext:
    """Options shared by every command."""

    settings: Settings
    user_id: str
    deck_path: Path | None


@app.callback()
def main_options(
    ctx: typer.Context,
    user: Optional[str] = typer.Option(
        None,
        "--user", "-u",
        help="User id (default from CARDWISE_DEFAULT_USER_ID)",
    ),
    deck: Optional[Path] = typer.Option(
        None,
        "--deck", "-d",
        help="JSON deck file with card ids, tags and structures",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show INFO-level log output",
    ),
) -> None:
    """cardwise: FSRS spaced repetition review."""
    settings = get_settings()
    configure_logging("INFO" if verbose else "WARNING", settings.log_file)
    deck_path = deck or (Path(settings.deck_path) if settings.deck_path else None)
    ctx.obj = CliContext(
        settings=settings,
        user_id=user or settings.default_user_id,
        deck_path=deck_path,
    )


# =============================================================================
# Helpers
# =============================================================================


def _load_deck(deck_path: Path | None) -> CardDeck:
    if deck_path is None:
        return CardDeck()
    return CardDeck.load(deck_path)


@asynccontextmanager
async def _service(cli: CliContext) -> AsyncIterator[CardwiseService]:
    """Open the database, yield a wired service, and dispose the engine."""
    database = Database.from_settings(cli.settings)
    try:
        await database.init_db()
        store = SqlCardStore(database)
        yield CardwiseService.from_settings(cli.settings, store, _load_deck(cli.deck_path))
    finally:
        await database.dispose()


def _run(ctx: typer.Context, work: Callable[[CardwiseService], Awaitable[T]]) -> T:
    """Run an async command body, turning domain errors into exit code 1."""
    cli: CliContext = ctx.obj

    async def runner() -> T:
        async with _service(cli) as service:
            return await work(service)

    try:
        return asyncio.run(runner())
    except CardwiseError as e:
        logger.debug("Command failed: {!r}", e)
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def format_interval(delta: timedelta) -> str:
    """Compact human interval: 10m, 3h, 4d, 2mo, 1.2y."""
    seconds = max(0, int(delta.total_seconds()))
    if seconds < 3600:
        return f"{max(1, seconds // 60)}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    days = seconds / 86400
    if days < 30:
        return f"{round(days)}d"
    if days < 365:
        return f"{round(days / 30)}mo"
    return f"{days / 365:.1f}y"


def _style_state(state: CardState) -> str:
    color = STATE_STYLES[state]
    return f"[{color}]{state.value}[/{color}]"


# =============================================================================
# Commands
# =============================================================================


@app.command()
def due(ctx: typer.Context) -> None:
    """Show how many cards are due and new."""
    cli: CliContext = ctx.obj
    counts = _run(ctx, lambda service: service.get_due_counts(cli.user_id))

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Due", str(counts.due))
    table.add_row("New", str(counts.new))
    table.add_row("Total", str(counts.total))

    console.print(f"\n[bold cyan]Cards for {cli.user_id}[/bold cyan]")
    console.print(table)


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show learning statistics and progress."""
    cli: CliContext = ctx.obj
    user_stats = _run(ctx, lambda service: service.get_stats(cli.user_id))

    console.print("\n[bold cyan]Learning Statistics[/bold cyan]")
    console.print("=" * 40)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Retention rate", f"{user_stats.retention_rate * 100:.1f}%")
    table.add_row("Reviews today", str(user_stats.reviews_today))
    table.add_row("Correct today", str(user_stats.correct_today))
    table.add_row("Study streak", f"{user_stats.streak_days} days")
    table.add_row("Study time today", f"{user_stats.study_time.today_seconds // 60} min")
    table.add_row("Study time this week", f"{user_stats.study_time.week_seconds // 60} min")
    table.add_row("Sessions completed", str(user_stats.study_time.sessions))
    console.print(table)

    maturity = user_stats.maturity
    maturity_table = Table(title="Maturity")
    for column in ("New", "Learning", "Young", "Mature", "Relearning", "Total"):
        maturity_table.add_column(column, justify="right")
    maturity_table.add_row(
        str(maturity.new),
        str(maturity.learning),
        str(maturity.young),
        str(maturity.mature),
        str(maturity.relearning),
        str(maturity.total),
    )
    console.print(maturity_table)

    forecast = user_stats.due_forecast
    forecast_table = Table(title="Due")
    for column in ("Overdue", "Today", "This week", "Later"):
        forecast_table.add_column(column, justify="right")
    forecast_table.add_row(
        str(forecast.overdue),
        str(forecast.today),
        str(forecast.this_week),
        str(forecast.beyond),
    )
    console.print(forecast_table)

    accuracy_table = Table(title="Accuracy by difficulty")
    accuracy_table.add_column("Difficulty")
    accuracy_table.add_column("Reviews", justify="right")
    accuracy_table.add_column("Accuracy", justify="right")
    for name, bucket in user_stats.accuracy_by_difficulty.items():
        accuracy_table.add_row(name, str(bucket.reviews), f"{bucket.rate * 100:.0f}%")
    console.print(accuracy_table)


@app.command()
def forecast(
    ctx: typer.Context,
    days: int = typer.Option(7, "--days", "-n", min=1, max=365, help="Days to forecast"),
) -> None:
    """Show how many cards fall due on each of the next days."""
    cli: CliContext = ctx.obj
    rows = _run(ctx, lambda service: service.forecast(cli.user_id, days))

    table = Table(title=f"Forecast for {cli.user_id}")
    table.add_column("Date")
    table.add_column("Due", justify="right")
    for row in rows:
        table.add_row(row.day.isoformat(), str(row.count))
    console.print(table)


@app.command()
def review(
    ctx: typer.Context,
    card_id: str = typer.Argument(..., help="Card to rate"),
    rating: str = typer.Argument(..., help="again/hard/good/easy or 1-4"),
) -> None:
    """Rate a single card outside a session."""
    cli: CliContext = ctx.obj
    state = _run(ctx, lambda service: service.review_single(card_id, cli.user_id, rating))

    console.print(
        f"[green]{card_id}[/green] -> {_style_state(state.state)}, "
        f"next in {format_interval(state.due - state.last_review)} "
        f"(stability {state.stability:.2f}, difficulty {state.difficulty:.2f})"
    )


@app.command()
def reset(
    ctx: typer.Context,
    confirm: bool = typer.Option(
        False,
        "--yes", "-y",
        help="Skip confirmation",
    ),
) -> None:
    """Clear review state for a fresh start."""
    cli: CliContext = ctx.obj
    if not confirm and not Confirm.ask(
        f"Reset ALL review state for {cli.user_id}? This cannot be undone!", default=False
    ):
        raise typer.Exit(0)

    count = _run(ctx, lambda service: service.reset(cli.user_id))
    console.print(f"[green]Reset {count} cards for {cli.user_id}[/green]")


@app.command()
def study(
    ctx: typer.Context,
    new_limit: Optional[int] = typer.Option(
        None,
        "--new", "-n",
        help="Maximum new cards per session",
    ),
    review_limit: Optional[int] = typer.Option(
        None,
        "--reviews", "-r",
        help="Maximum due reviews per session",
    ),
    tag: Optional[list[str]] = typer.Option(
        None,
        "--tag", "-t",
        help="Only cards with this tag (repeatable)",
    ),
    structure: Optional[list[str]] = typer.Option(
        None,
        "--structure", "-s",
        help="Only cards for this structure id (repeatable)",
    ),
) -> None:
    """
    Start an interactive review session.

    Shows each card, asks for a rating, and saves progress after every
    rating. Ctrl+C ends the session early; completed ratings are kept.
    """
    cli: CliContext = ctx.obj
    # One loop for the whole session; prompts run between store calls
    loop = asyncio.new_event_loop()
    database = Database.from_settings(cli.settings)
    try:
        options = SessionOptions(
            user_id=cli.user_id,
            new_cards_limit=cli.settings.new_cards_limit if new_limit is None else new_limit,
            review_limit=cli.settings.review_limit if review_limit is None else review_limit,
            tags=list(tag or []),
            structure_ids=list(structure or []),
            interleave=cli.settings.interleave_queue,
        )
        loop.run_until_complete(database.init_db())
        service = CardwiseService.from_settings(
            cli.settings, SqlCardStore(database), _load_deck(cli.deck_path)
        )
        summary = _study(loop, service, options)
    except CardwiseError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    finally:
        loop.run_until_complete(database.dispose())
        loop.close()

    if summary is None:
        return

    console.print(Panel(
        f"[bold]Session Complete![/bold]\n\n"
        f"Duration: {summary.duration_seconds / 60:.1f} minutes\n"
        f"Cards reviewed: {summary.cards_reviewed}\n"
        f"Accuracy: {summary.accuracy * 100:.1f}%",
        title="Summary",
        border_style="green",
    ))


def _study(
    loop: asyncio.AbstractEventLoop,
    service: CardwiseService,
    options: SessionOptions,
) -> SessionSummary | None:
    session = loop.run_until_complete(service.start_session(options))
    if session.is_empty:
        loop.run_until_complete(service.end_session())
        console.print("\n[green]Nothing due for review![/green]")
        console.print("All caught up. Check back tomorrow.")
        return None

    console.print(f"\n[bold]Session: {session.total_cards} cards[/bold]")
    console.print(f"  Due reviews: {session.due_count}")
    console.print(f"  New cards: {session.new_count}")
    console.print(f"  Estimated time: ~{session.estimated_minutes} min\n")

    try:
        while (card_id := service.sessions.current_card()) is not None:
            _show_card(service, card_id, session.current_index + 1, session.total_cards)
            now = utcnow()
            outcomes = loop.run_until_complete(service.preview(card_id, options.user_id, now))
            for rating, state in outcomes.items():
                style = RATING_STYLES[rating]
                label = format_interval(state.due - now)
                console.print(f"  [{style}]{int(rating)}[/{style}] {rating.name.title()} ({label})")
            choice = IntPrompt.ask("Rating", choices=[str(int(r)) for r in Rating])
            loop.run_until_complete(service.review_card(card_id, choice))
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Session interrupted.[/yellow]")
    except CardwiseError:
        # Save what was reviewed before the failure, then report the failure
        _end_after_failure(loop, service)
        raise

    return loop.run_until_complete(service.end_session())


def _end_after_failure(loop: asyncio.AbstractEventLoop, service: CardwiseService) -> None:
    try:
        summary = loop.run_until_complete(service.end_session())
    except CardwiseError as e:
        logger.warning("Could not save the interrupted session: {}", e)
        console.print(f"[yellow]Session summary not saved: {e}[/yellow]")
        return
    console.print(
        f"[yellow]Session stopped after {summary.cards_reviewed} cards; progress saved.[/yellow]"
    )


def _show_card(service: CardwiseService, card_id: str, position: int, total: int) -> None:
    meta = service.content.metadata(card_id)
    front = meta.front if meta and meta.front else card_id
    console.print(Panel(front, title=f"Card {position}/{total}", border_style="cyan"))
    Prompt.ask("[dim]Press Enter to reveal[/dim]", default="", show_default=False)
    if meta and meta.back:
        console.print(Panel(meta.back, title="Answer", border_style="green"))


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

"""Interactive CLI application."""
import logging
import time
from collections import Counter
from datetime import datetime

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from adaptive_srs.config import SrsConfig, load_config
from adaptive_srs.dashboard import get_deck_stats, get_retention_color
from adaptive_srs.db import init_db
from adaptive_srs.errors import InvalidSettingError, SchedulerError
from adaptive_srs.models import Rating, StudySession
from adaptive_srs.reviews import (
    calibrate_user, get_due_cards, record_review, record_session, update_profile_settings,
)
from adaptive_srs.store import add_card, add_deck, get_deck_by_name, get_profile, list_decks

console = Console()
logger = logging.getLogger(__name__)

DEFAULT_USER = "local"
EXIT_WORDS = ("q", "quit", "menu")
RATING_KEYS = {"1": Rating.AGAIN, "2": Rating.HARD, "3": Rating.GOOD, "4": Rating.EASY}


class SessionExitRequested(Exception):
    """Raised when the learner leaves a study session early."""


def session_prompt(prompt: str, **kwargs) -> str:
    answer = Prompt.ask(prompt, **kwargs)
    if answer.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


def rating_prompt() -> Rating:
    answer = session_prompt(
        "Rate yourself ([red]1[/red]=again, [yellow]2[/yellow]=hard, "
        "[green]3[/green]=good, [cyan]4[/cyan]=easy, q=stop)",
        choices=["1", "2", "3", "4", "q"],
    )
    return RATING_KEYS[answer]


def show_welcome():
    console.print(Panel(
        "[bold]Adaptive Flashcards[/bold]\n[dim]Spaced repetition tuned to how you learn[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("study", "Review due cards"),
        ("add", "Add a card to a deck"),
        ("decks", "List decks"),
        ("stats", "Deck statistics"),
        ("profile", "Your learning profile"),
        ("calibrate", "Recalibrate your profile"),
        ("settings", "Change study preferences"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def choose_deck(db_path: str) -> dict | None:
    decks = list_decks(db_path)
    if not decks:
        console.print("[yellow]No decks yet. Use 'add' to create one.[/yellow]")
        return None
    for d in decks:
        console.print(f"  [cyan]{d['id']}[/cyan]) {d['name']} [dim]({d['card_count']} cards)[/dim]")
    deck_id = int(Prompt.ask("Select deck", choices=[str(d["id"]) for d in decks]))
    return next(d for d in decks if d["id"] == deck_id)


def run_review_session(db_path: str, user_id: str, deck: dict, cards: list,
                       config: SrsConfig, counts: Counter | None = None) -> Counter:
    """Drill the given cards, tallying ratings and total response time into counts."""
    counts = Counter() if counts is None else counts
    if not cards:
        console.print("[yellow]No cards due right now![/yellow]")
        return counts
    console.print(f"\n[bold]{deck['name']}[/bold]: {len(cards)} cards\n")
    for i, card in enumerate(cards, 1):
        console.print(Panel(card["front"], title=f"Card {i}/{len(cards)}", border_style="cyan"))
        started = time.monotonic()
        session_prompt("[dim]Press Enter to reveal answer (q to stop)[/dim]", default="")
        response_ms = (time.monotonic() - started) * 1000
        console.print(Panel(card["back"], border_style="green"))
        rating = rating_prompt()
        try:
            state = record_review(
                db_path, user_id, card["id"], rating, response_ms, config=config,
            )
        except SchedulerError as e:
            logger.error("Review of card %s failed: %s", card["id"], e)
            console.print("[red]Could not save review. Please try again.[/red]")
            continue
        counts[rating] += 1
        counts["response_ms"] += response_ms
        if state.next_review_at:
            console.print(f"[dim]Next review {state.next_review_at:%Y-%m-%d %H:%M}[/dim]\n")
    return counts


def cmd_study(db_path: str, user_id: str, config: SrsConfig):
    deck = choose_deck(db_path)
    if deck is None:
        return
    profile = get_profile(db_path, user_id)
    sizes = [str(s) for s in config.session_sizes]
    default = str(profile.optimal_session_length)
    if default not in sizes:
        sizes.append(default)
    limit = int(Prompt.ask("Session size", choices=sizes, default=default))
    try:
        cards = get_due_cards(db_path, user_id, deck["id"], limit, config=config)
    except SchedulerError as e:
        logger.error("Loading due cards failed: %s", e)
        console.print("[red]Could not load due cards. Please try again.[/red]")
        return

    started = datetime.now()
    completed = True
    counts: Counter = Counter()
    try:
        run_review_session(db_path, user_id, deck, cards, config, counts)
    except SessionExitRequested:
        completed = False
        console.print("[dim]Session stopped.[/dim]")
    finally:
        response_ms = counts.pop("response_ms", 0)
        if counts:
            session = StudySession.from_counts(
                user_id, deck["id"], started, datetime.now(), counts,
                total_response_time_ms=response_ms, was_completed=completed,
            )
            record_session(db_path, session, config=config)
            color = get_retention_color(session.average_accuracy)
            console.print(
                f"[bold]Reviewed {session.cards_reviewed}[/bold]  |  "
                f"Accuracy [{color}]{session.average_accuracy:.0f}%[/{color}]  |  "
                f"Quality {session.session_quality:.0f}"
            )


def cmd_add(db_path: str):
    name = Prompt.ask("Deck name").strip()
    deck = get_deck_by_name(db_path, name)
    deck_id = deck["id"] if deck else add_deck(db_path, name)
    front = Prompt.ask("Front")
    back = Prompt.ask("Back")
    add_card(db_path, deck_id, front, back)
    console.print(f"[green]Added card to {name}.[/green]")


def cmd_decks(db_path: str):
    table = Table(title="Decks")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Cards", justify="right")
    for d in list_decks(db_path):
        table.add_row(str(d["id"]), d["name"], str(d["card_count"]))
    console.print(table)


def cmd_stats(db_path: str, user_id: str, config: SrsConfig):
    deck = choose_deck(db_path)
    if deck is None:
        return
    stats = get_deck_stats(db_path, user_id, deck["id"], config)
    color = get_retention_color(stats["retention"])
    console.print(Panel(
        f"Retention [{color}]{stats['retention']}% {stats['label']}[/{color}]\n"
        f"Cards {stats['total_cards']}  |  Due now {stats['due_now']}  |  "
        f"Reviewed {stats['reviewed_cards']}  |  Reviews {stats['reviews']}  |  "
        f"Lapses {stats['lapses']}  |  At risk {stats['at_risk']}",
        title=deck["name"], border_style="blue",
    ))
    mastery = Table(title="Mastery")
    for bucket in stats["mastery"]:
        mastery.add_column(bucket.title(), justify="right")
    mastery.add_row(*(str(n) for n in stats["mastery"].values()))
    console.print(mastery)
    forecast = Table(title="Due Forecast")
    forecast.add_column("Date")
    forecast.add_column("Due", justify="right")
    forecast.add_column("Minutes", justify="right")
    for day in stats["forecast"]:
        forecast.add_row(day["date"].isoformat(), str(day["due_cards"]), str(day["estimated_minutes"]))
    console.print(forecast)


def cmd_profile(db_path: str, user_id: str):
    p = get_profile(db_path, user_id)
    m = p.personal_multipliers
    table = Table(title="Learning Profile", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Learning speed", p.learning_speed.value)
    table.add_row("Calibrated", "yes" if p.is_calibrated else "no")
    table.add_row("Reviews since calibration", str(p.calibration_reviews))
    table.add_row("Multipliers", f"again {m.again}  hard {m.hard}  good {m.good}  easy {m.easy}")
    table.add_row("Session length", str(p.optimal_session_length))
    table.add_row("Daily goal", str(p.daily_review_goal))
    table.add_row("Difficulty preference", p.difficulty_preference.value)
    table.add_row("Streak", f"{p.current_streak} (best {p.longest_streak})")
    table.add_row("Study time", f"{p.total_study_minutes:.0f} min")
    console.print(table)


def cmd_calibrate(db_path: str, user_id: str, config: SrsConfig):
    result = calibrate_user(db_path, user_id, config=config)
    if result.needs_more_data:
        console.print(
            f"[yellow]Keep studying! Calibration needs {config.calibration_min_cards} "
            f"reviewed cards ({result.reviewed_cards} so far).[/yellow]"
        )
        return
    console.print(
        f"[green]Learning speed: {result.learning_speed.value}[/green] "
        f"[dim](confidence {result.confidence_level:.0%}, accuracy {result.accuracy:.0f}%)[/dim]\n"
        f"Recommended session length: {result.optimal_session_length} cards"
    )


def cmd_settings(db_path: str, user_id: str):
    profile = get_profile(db_path, user_id)
    preference = Prompt.ask(
        "Difficulty preference", choices=["challenge", "balanced", "confidence"],
        default=profile.difficulty_preference.value,
    )
    goal = Prompt.ask("Daily review goal", default=str(profile.daily_review_goal))
    length = Prompt.ask("Session length", default=str(profile.optimal_session_length))
    try:
        update_profile_settings(
            db_path, user_id,
            difficulty_preference=preference,
            daily_review_goal=int(goal),
            optimal_session_length=int(length),
        )
    except (InvalidSettingError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        return
    console.print("[green]Settings saved.[/green]")


def main():
    config = load_config()
    logging.basicConfig(
        level=logging.WARNING, format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    db_path = config.db_path
    user_id = DEFAULT_USER
    init_db(db_path)
    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="study").strip().lower()
        try:
            if choice == "study":
                cmd_study(db_path, user_id, config)
            elif choice == "add":
                cmd_add(db_path)
            elif choice == "decks":
                cmd_decks(db_path)
            elif choice == "stats":
                cmd_stats(db_path, user_id, config)
            elif choice == "profile":
                cmd_profile(db_path, user_id)
            elif choice == "calibrate":
                cmd_calibrate(db_path, user_id, config)
            elif choice == "settings":
                cmd_settings(db_path, user_id)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]See you at your next review![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except Exception as e:
            logger.exception("Command %s failed", choice)
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()

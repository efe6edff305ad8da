"""
Onboarding - CLI Entry Point.

Usage:
    onboarding run flow.yaml        Walk through a flow in the terminal
    onboarding check flow.yaml      Validate a flow file and list its slides
    onboarding status               Show stored completion flag and answers
    onboarding reset                Wipe stored progress
    onboarding serve flow.yaml      Serve the flow over HTTP
    onboarding --help               Show help
"""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import USER_DATA_KEY, get_settings
from .errors import FlowDefinitionError, StorageWriteError
from .loader import FlowDefinition, load_flow
from .models import AnswerValue, Question, QuestionType
from .selection import ensure_array
from .session import OnboardingSession
from .slides import filter_slides
from .state import FlowStatus
from .storage import JsonFileStorage, KeyValueStorage, create_storage
from .store import AnswerStore

app = typer.Typer(
    name="onboarding",
    help="Onboarding flow engine - run, inspect and serve onboarding interviews.",
    add_completion=False,
)
console = Console()

BACK_COMMANDS = (":b", ":back")
SKIP_COMMANDS = (":s", ":skip")
QUIT_COMMANDS = (":q", ":quit", "exit", "quit")


@app.callback()
def main() -> None:
    """Configure logging from settings."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# =============================================================================
# Helpers
# =============================================================================


def _open_storage(storage_path: Path | None, profile: str) -> KeyValueStorage:
    if storage_path is not None:
        return JsonFileStorage(storage_path, namespace=profile)
    return create_storage(get_settings(), namespace=profile)


def _load_or_exit(flow_file: Path) -> FlowDefinition:
    try:
        return load_flow(flow_file)
    except FlowDefinitionError as e:
        console.print(f"[red]Invalid flow:[/red] {e}")
        raise typer.Exit(1)


def _parse_answer(question: Question, raw: str) -> AnswerValue:
    """
    Turn terminal input into an answer for the question type.

    Choice questions accept option numbers (1-based) or option ids;
    multiple choice takes a comma-separated list.
    """
    raw = raw.strip()
    if raw == "":
        return None

    if question.type == QuestionType.RATING:
        try:
            number = float(raw)
        except ValueError:
            return raw
        return int(number) if number.is_integer() else number

    if question.type in (QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE):
        ids = question.option_ids()
        picked = []
        for token in (t.strip() for t in raw.split(",")):
            if token.isdigit() and 1 <= int(token) <= len(ids):
                picked.append(ids[int(token) - 1])
            elif token:
                picked.append(token)
        if question.type == QuestionType.SINGLE_CHOICE:
            return picked[0] if picked else None
        return picked

    return raw


def _render(session: OnboardingSession) -> None:
    view = session.view
    slide = view.current_slide
    if slide is None:
        return

    body = []
    if slide.description:
        body.append(escape(slide.description))
    if slide.question is not None:
        q = slide.question
        body.append(f"\n[bold]{escape(q.question or q.id)}[/bold]")
        if q.subtitle:
            body.append(f"[dim]{escape(q.subtitle)}[/dim]")
        for i, option in enumerate(q.options, start=1):
            marker = "x" if option.id in ensure_array(view.current_answer) else " "
            body.append(f"  {i}. \\[{marker}] {escape(option.label)}")
        if view.current_answer is not None:
            body.append(f"[dim]Current answer: {escape(str(view.current_answer))}[/dim]")

    footer = f"Step {view.current_index + 1} of {view.total_count}"
    console.print(
        Panel(
            "\n".join(body) or " ",
            title=slide.title or slide.id,
            subtitle=footer if view.show_progress_bar else None,
            border_style="cyan",
        )
    )


def _hint(session: OnboardingSession) -> str:
    view = session.view
    parts = [f"Enter = {view.next_button_label}"]
    if view.show_back_button:
        parts.append(":b back")
    if view.show_skip_button:
        parts.append(f":s {view.skip_button_label.lower()}")
    parts.append(":q quit")
    return " | ".join(parts)


# =============================================================================
# Commands
# =============================================================================


@app.command()
def run(
    flow_file: Path = typer.Argument(..., help="Flow definition (YAML)"),
    profile: str = typer.Option("default", "--profile", "-p", help="Storage namespace for this user/device"),
    storage_path: Path | None = typer.Option(None, "--storage-path", help="JSON store file (overrides settings)"),
    restart: bool = typer.Option(False, "--restart", help="Reset stored progress before starting"),
) -> None:
    """Walk through an onboarding flow interactively."""
    flow = _load_or_exit(flow_file)
    options = flow.build_options(
        on_complete=lambda: console.print("\n[bold green]Onboarding complete![/bold green]"),
        on_skip=lambda: console.print("\n[yellow]Onboarding skipped.[/yellow]"),
    )
    session = OnboardingSession(flow.slides, _open_storage(storage_path, profile), options)

    try:
        if restart:
            asyncio.run(session.reset())
        asyncio.run(session.start())
    except StorageWriteError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if session.store.is_onboarding_complete:
        console.print("[green]Onboarding already completed.[/green] Use --restart to go through it again.")
        return

    if not session.visible_slides:
        console.print("[yellow]No slides to show.[/yellow]")
        return

    while session.status == FlowStatus.ACTIVE:
        _render(session)
        try:
            raw = console.input(f"[dim]{_hint(session)}[/dim]\n> ")
        except (KeyboardInterrupt, EOFError):
            console.print("\n[dim]Progress saved. Bye![/dim]")
            return

        command = raw.strip().lower()
        if command in QUIT_COMMANDS:
            console.print("[dim]Progress saved. Bye![/dim]")
            return
        if command in BACK_COMMANDS:
            session.back()
            continue

        try:
            if command in SKIP_COMMANDS:
                asyncio.run(session.skip())
                continue

            question = session.current_slide.question
            if question is not None and raw.strip():
                answer = _parse_answer(question, raw)
                if question.type == QuestionType.MULTIPLE_CHOICE:
                    session.set_answer([])
                    for option_id in answer:
                        session.toggle_option(option_id)
                else:
                    session.set_answer(answer)

            if not session.is_answer_valid:
                console.print("[yellow]That answer doesn't meet this question's requirements.[/yellow]")
                continue

            asyncio.run(session.next())
        except StorageWriteError as e:
            console.print(f"[red]Error: {session.error or e}[/red]")


@app.command()
def check(flow_file: Path = typer.Argument(..., help="Flow definition (YAML)")) -> None:
    """Validate a flow file and list its slides."""
    flow = _load_or_exit(flow_file)

    table = Table(title=f"{flow_file.name}: {len(flow.slides)} slides")
    table.add_column("#", justify="right")
    table.add_column("Slide")
    table.add_column("Type")
    table.add_column("Question")
    table.add_column("Stored as")
    table.add_column("Conditional")

    for i, slide in enumerate(flow.slides, start=1):
        q = slide.question
        conditional = slide.skip_if is not None or (q is not None and q.skip_if is not None)
        table.add_row(
            str(i),
            slide.id,
            slide.type.value,
            q.type.value if q else "-",
            q.storage_key if q else "-",
            "yes" if conditional else "",
        )
    console.print(table)

    initially_visible = filter_slides(flow.slides, {})
    console.print(f"[green]OK[/green] {len(initially_visible)} visible with no answers")


@app.command()
def status(
    profile: str = typer.Option("default", "--profile", "-p", help="Storage namespace"),
    storage_path: Path | None = typer.Option(None, "--storage-path", help="JSON store file (overrides settings)"),
    storage_key: str | None = typer.Option(None, "--storage-key", help="Completion flag key"),
) -> None:
    """Show stored completion flag and answers."""
    store = AnswerStore(_open_storage(storage_path, profile), completion_key=storage_key or get_settings().completion_key)
    snapshot = asyncio.run(store.initialize())

    console.print(f"\n[bold]Onboarding status[/bold] ({profile})\n")
    console.print(f"Complete: {'[green]yes[/green]' if snapshot.is_complete else 'no'}")
    if snapshot.user_data.completed_at:
        label = "Skipped" if snapshot.user_data.skipped else "Completed"
        console.print(f"{label} at: {snapshot.user_data.completed_at}")

    if not snapshot.user_data.answers:
        console.print("[dim]No answers stored.[/dim]")
        return

    table = Table(title=f"Answers ({USER_DATA_KEY})")
    table.add_column("Key")
    table.add_column("Answer")
    for key, value in snapshot.user_data.answers.items():
        table.add_row(key, ", ".join(value) if isinstance(value, list) else str(value))
    console.print(table)


@app.command()
def reset(
    profile: str = typer.Option("default", "--profile", "-p", help="Storage namespace"),
    storage_path: Path | None = typer.Option(None, "--storage-path", help="JSON store file (overrides settings)"),
    storage_key: str | None = typer.Option(None, "--storage-key", help="Completion flag key"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
) -> None:
    """Wipe stored onboarding progress."""
    if not yes and not typer.confirm(f"Reset onboarding progress for '{profile}'?"):
        raise typer.Abort()

    store = AnswerStore(_open_storage(storage_path, profile), completion_key=storage_key or get_settings().completion_key)
    try:
        asyncio.run(store.reset())
    except StorageWriteError as e:
        console.print(f"[red]Reset failed: {e}[/red]")
        raise typer.Exit(1)
    console.print("[green]Onboarding progress reset.[/green]")


@app.command()
def serve(
    flow_file: Path = typer.Argument(..., help="Flow definition (YAML)"),
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
) -> None:
    """Serve a flow over HTTP (one session per X-User-Id)."""
    import uvicorn

    from .api import create_app

    flow = _load_or_exit(flow_file)
    settings = get_settings()
    api = create_app(flow, lambda user_id: create_storage(settings, namespace=user_id))

    console.print(f"\n[bold green]Onboarding API[/bold green] ({len(flow.slides)} slides)")
    console.print(f"Starting server on http://{host}:{port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    uvicorn.run(api, host=host, port=port)


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"onboarding-flow version {__version__}")


if __name__ == "__main__":
    app()

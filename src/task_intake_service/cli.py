"""CLI for inspecting the trust boundary offline."""

import json
from datetime import date
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import settings
from .services.prompt_builder import build_task_parsing_prompt
from .services.sanitizer import process_user_input, sanitize_user_input
from .services.task_store import SQLiteTaskStore
from .services.validator import gate_task_output

app = typer.Typer(help="Task intake service CLI")
console = Console()


@app.command()
def sanitize(text: str):
    """Show what the sanitizer does to a piece of text."""
    cleaned = process_user_input(text)
    sanitized = sanitize_user_input(cleaned)

    console.print(f"[bold]Input:[/bold]     {escape(repr(text))}")
    console.print(f"[bold]Sanitized:[/bold] {escape(repr(sanitized))}")
    neutralized = sanitized.count(settings.sanitizer_sentinel)
    if neutralized:
        console.print(f"[yellow]{neutralized} pattern(s) neutralized[/yellow]")
    else:
        console.print("[green]Nothing neutralized[/green]")


@app.command()
def prompt(
    text: str,
    current_date: str = typer.Option(None, "--date", help="Today's date (YYYY-MM-DD)"),
):
    """Print the task parsing prompt built for a transcript."""
    console.print(
        build_task_parsing_prompt(process_user_input(text), current_date or date.today().isoformat()),
        markup=False,
        highlight=False,
    )


@app.command()
def validate(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with model output"),
    original: str = typer.Option("", "--original", "-o", help="Original request used for the fallback"),
):
    """Run model output through the schema gate."""
    try:
        candidate = json.loads(file.read_text())
    except json.JSONDecodeError as e:
        console.print(f"[red]Not valid JSON: {e}[/red]")
        raise typer.Exit(1)

    outcome = gate_task_output(candidate, original, request_id="cli", user_id=None)

    if outcome.used_fallback:
        console.print("[red]Rejected[/red] - safe fallback would be used")
    else:
        console.print("[green]Accepted[/green]")

    if outcome.issues:
        table = Table(title=f"Issues ({len(outcome.issues)})")
        table.add_column("Field", style="cyan")
        table.add_column("Code", style="yellow")
        table.add_column("Message")
        for issue in outcome.issues:
            table.add_row(issue.field, issue.code, issue.message)
        console.print(table)

    intent = outcome.intent
    table = Table(title="Resulting intent")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("intent", intent.intent)
    table.add_row("task_name", intent.task_name)
    table.add_row("due_date", intent.due_date or "-")
    table.add_row("is_completed", str(intent.is_completed))
    table.add_row("task_id", intent.task_id or "-")
    console.print(table)

    if outcome.used_fallback:
        raise typer.Exit(1)


@app.command("init-db")
def init_db(db_path: Path = typer.Option(None, "--db", help="Database path")):
    """Initialize the task database."""
    path = db_path or settings.db_path
    SQLiteTaskStore(path).init_db()
    console.print(f"[green]Initialized database at {path}[/green]")


if __name__ == "__main__":
    app()

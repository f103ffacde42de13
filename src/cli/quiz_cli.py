"""
Quiz Session CLI - inspect exercises and replay sessions from the terminal.

Usage:
    quizsession types                               # Supported exercise types
    quizsession check exercise.json -q 0 -a '[1]'   # Validate and price one answer
    quizsession max-score 10                        # Score ceiling for 10 questions
    quizsession simulate exercise.json -a answers.json
    quizsession show-state <exercise-id>            # Print a stored snapshot
    quizsession storage                             # Backend usage
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Local imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from config import get_settings
from src.engine import (
    AnswerValidator,
    CompletionResult,
    EngineContext,
    ExerciseConfig,
    ExerciseDefinition,
    ManualScheduler,
    MemoryBackend,
    ScoreCalculator,
    SessionEngine,
    SessionStore,
    StorageStrategy,
    format_time,
    snapshot_key,
)

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="quizsession",
    help="📝 Quiz Session - validate, score and replay exercise sessions",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


@app.callback()
def main(
    log_level: Annotated[
        str, typer.Option("--log-level", "-l", help="Loguru level for stderr output")
    ] = "WARNING",
) -> None:
    """Configure logging before any command runs."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level.upper(),
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )


def _load_definition(path: Path) -> ExerciseDefinition:
    if not path.exists():
        console.print(f"[red]File not found: {path}[/]")
        raise typer.Exit(1)
    try:
        return ExerciseDefinition.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as e:
        console.print(f"[red]Invalid exercise definition in {path.name}:[/]\n{e}")
        raise typer.Exit(1)


def _parse_answer(raw: str) -> Any:
    """JSON when it parses, the raw text otherwise (so -a Paris works)."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


# =============================================================================
# Inspection Commands
# =============================================================================


@app.command()
def types() -> None:
    """List the supported exercise types and their aliases."""
    validator = AnswerValidator()
    table = Table(title="Exercise Types")
    table.add_column("Type", style="cyan")
    table.add_column("Aliases", style="dim")

    for name in validator.available_types():
        table.add_row(name, ", ".join(validator.aliases_for(name)) or "-")

    console.print(table)


@app.command()
def check(
    exercise_file: Annotated[Path, typer.Argument(help="Exercise definition (JSON)")],
    answer: Annotated[str, typer.Option("--answer", "-a", help="Answer as JSON (or plain text)")],
    question: Annotated[int, typer.Option("--question", "-q", help="Question index (0-based)")] = 0,
    time_ms: Annotated[float, typer.Option("--time-ms", help="Time taken to answer")] = 0,
    hints: Annotated[int, typer.Option("--hints", help="Hints used before answering")] = 0,
) -> None:
    """
    Validate one answer and show how it would be scored.

    Examples:
        quizsession check capitals.json -q 0 -a '"Paris"'
        quizsession check order.json -q 2 -a '["b", "a", "c"]' --time-ms 4000
    """
    definition = _load_definition(exercise_file)
    if not 0 <= question < len(definition.questions):
        console.print(f"[red]Question {question} out of range (exercise has {len(definition.questions)})[/]")
        raise typer.Exit(1)

    target = definition.questions[question]
    validation = AnswerValidator().validate(_parse_answer(answer), target, definition.type)
    score = ScoreCalculator().calculate_score(
        validation,
        time_to_answer=time_ms,
        difficulty=target.difficulty,
        hints_used=hints,
    )

    verdict = "[green]✓ Correct[/]" if validation.is_correct else "[red]✗ Incorrect[/]"
    lines = [verdict, validation.feedback]
    if validation.partial_credit is not None:
        lines.append(f"Partial credit: {validation.partial_credit:.0%}")
    if validation.error:
        lines.append(f"[yellow]Error: {validation.error}[/]")
    console.print(Panel("\n".join(lines), title=f"Q{question}: {target.prompt or ''}", border_style="cyan"))

    table = Table(title=f"Score: {score.points} points")
    table.add_column("Component", style="cyan")
    table.add_column("Value", justify="right")
    for name, value in score.breakdown.items():
        table.add_row(name, f"{value:.2f}")
    console.print(table)


@app.command("max-score")
def max_score(
    questions: Annotated[int, typer.Argument(help="Number of questions")],
) -> None:
    """Show the theoretical maximum score for an exercise length."""
    maximum = ScoreCalculator().get_maximum_possible_score(questions)
    console.print(f"Maximum possible score for {questions} question(s): [bold cyan]{maximum}[/]")


# =============================================================================
# Session Commands
# =============================================================================


async def _simulate(
    definition: ExerciseDefinition,
    answers: list[Any],
    seconds_per_question: float,
    hints_per_question: int,
) -> CompletionResult:
    scheduler = ManualScheduler()
    settings = get_settings()
    store = SessionStore(
        {StorageStrategy.SESSION: MemoryBackend(settings.storage_namespace)},
        scheduler,
        save_interval=settings.save_interval_ms,
        namespace=settings.storage_namespace,
    )
    engine = SessionEngine(EngineContext.create(settings, scheduler, store))
    await engine.initialize()
    await engine.load_exercise(definition, ExerciseConfig(auto_save=False))
    await engine.start()

    for answer in answers[: len(definition.questions)]:
        for _ in range(hints_per_question):
            engine.get_hint()
        scheduler.advance(seconds_per_question * 1000)
        result = await engine.submit_answer(answer)
        mark = "[green]✓[/]" if result.validation.is_correct else "[red]✗[/]"
        console.print(
            f"  {mark} Q{engine.current_question_index + 1}: +{result.score_data.points} "
            f"[dim]({result.validation.feedback})[/]"
        )
        await engine.next_question()

    completion = await engine.complete()
    await engine.destroy()
    store.close()
    return completion


@app.command()
def simulate(
    exercise_file: Annotated[Path, typer.Argument(help="Exercise definition (JSON)")],
    answers_file: Annotated[Path, typer.Option("--answers", "-a", help="JSON list of answers, one per question")],
    seconds_per_question: Annotated[
        float, typer.Option("--seconds-per-question", "-s", help="Simulated time per answer")
    ] = 5.0,
    hints: Annotated[int, typer.Option("--hints", help="Hints requested before each answer")] = 0,
) -> None:
    """
    Replay a whole session on a virtual clock and print the final score.

    Examples:
        quizsession simulate capitals.json -a answers.json
        quizsession simulate capitals.json -a answers.json -s 12 --hints 1
    """
    definition = _load_definition(exercise_file)
    if not answers_file.exists():
        console.print(f"[red]File not found: {answers_file}[/]")
        raise typer.Exit(1)
    answers = json.loads(answers_file.read_text(encoding="utf-8"))
    if not isinstance(answers, list):
        console.print("[red]Answers file must contain a JSON list[/]")
        raise typer.Exit(1)

    console.print(f"[cyan]▶ Simulating {definition.title or definition.id} ({definition.type})...[/]")
    completion = asyncio.run(_simulate(definition, answers, seconds_per_question, hints))
    final = completion.final_score

    table = Table(title="Session Result")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Score", str(final.total))
    table.add_row("Completion bonus", str(final.completion_bonus))
    table.add_row("Correct", f"{final.correct_answers}/{final.total_questions}")
    table.add_row("Accuracy", f"{final.accuracy}%")
    table.add_row("Longest streak", str(final.longest_streak))
    table.add_row("Efficiency", f"{final.efficiency}%")
    table.add_row("Total time", format_time(completion.total_time))
    table.add_row("Grade", f"[bold]{final.grade}[/]")
    table.add_row("Performance", final.performance)
    console.print(table)


@app.command("show-state")
def show_state(
    exercise_id: Annotated[str, typer.Argument(help="Exercise id")],
) -> None:
    """Print the stored snapshot of an exercise session."""
    store = SessionStore.from_settings(get_settings(), ManualScheduler())
    try:
        snapshot = asyncio.run(store.load(snapshot_key(exercise_id)))
    finally:
        store.close()

    if not isinstance(snapshot, dict):
        console.print(f"[yellow]No saved session for exercise {exercise_id}[/]")
        raise typer.Exit(1)

    progress = snapshot.get("progress") or {}
    total_time = ((snapshot.get("timer") or {}).get("global") or {}).get("elapsed", 0)

    table = Table(title=f"Session: {exercise_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Type", str(snapshot.get("type")))
    table.add_row("Status", str(snapshot.get("status")))
    table.add_row("Question", f"{progress.get('current', 0)}/{progress.get('total', 0)}")
    table.add_row("Answered", str(progress.get("answered", 0)))
    table.add_row("Score", str(snapshot.get("score", 0)))
    table.add_row("Bookmarks", ", ".join(str(i) for i in snapshot.get("bookmarks") or []) or "-")
    table.add_row("Elapsed", format_time(total_time))
    console.print(table)


@app.command()
def storage() -> None:
    """Show which storage backends are available and how much they hold."""
    store = SessionStore.from_settings(get_settings(), ManualScheduler())
    try:
        stats = store.get_storage_stats()
    finally:
        store.close()

    table = Table(title="Storage Backends")
    table.add_column("Backend", style="cyan")
    table.add_column("Available")
    table.add_column("Keys", justify="right")
    table.add_column("Bytes", justify="right")
    for strategy in StorageStrategy:
        entry = stats[strategy.value]
        table.add_row(
            strategy.value,
            "[green]yes[/]" if entry["available"] else "[dim]no[/]",
            str(entry["keys"]),
            str(entry["used"]),
        )
    console.print(table)


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()

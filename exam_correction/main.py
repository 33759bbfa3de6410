"""
Exam Correction CLI Application.

Provides an operator command-line interface over a JSON state file for
submitting answers, correcting questions and inspecting submissions.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from exam_correction.config import Settings, get_settings
from exam_correction.errors import BulkCorrectionFailedError, CorrectionError
from exam_correction.models import CorrectionMethod, CorrectionStatus, Exam, Submission
from exam_correction.orchestrator import CorrectionOrchestrator
from exam_correction.store import JsonFileStore

# Create Typer app
app = typer.Typer(
    name="exam-correction",
    help="Scoring and correction engine for exam submissions",
    add_completion=False,
)

console = Console()

StoreOption = Annotated[
    Optional[Path],
    typer.Option("--store", "-s", help="JSON state file (defaults to STORE_PATH)"),
]


def _open(store_path: Path | None) -> tuple[Settings, JsonFileStore, CorrectionOrchestrator]:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = JsonFileStore(store_path or settings.store_path)
    orchestrator = CorrectionOrchestrator(store, store, store, settings=settings)
    return settings, store, orchestrator


@app.command("add-exam")
def add_exam(
    exam_file: Annotated[Path, typer.Argument(help="Path to an exam JSON file")],
    store: StoreOption = None,
) -> None:
    """Register or replace an exam in the state file."""
    if not exam_file.exists():
        console.print(f"[red]Error:[/red] Exam file not found: {exam_file}")
        raise typer.Exit(1)

    _, state, _ = _open(store)
    try:
        exam = Exam.model_validate_json(exam_file.read_text(encoding="utf-8"))
    except ValidationError as e:
        console.print(f"[red]Invalid exam:[/red] {e}")
        raise typer.Exit(1)
    state.add_exam(exam)
    console.print(f"[green]Exam saved:[/green] {exam.id} ({len(exam.questions)} questions)")


@app.command()
def submit(
    exam_id: Annotated[str, typer.Argument(help="Exam id")],
    user_id: Annotated[str, typer.Argument(help="Learner id")],
    answers_file: Annotated[Path, typer.Argument(help="Path to a JSON list of answers")],
    user_name: Annotated[Optional[str], typer.Option("--name", help="Learner name")] = None,
    store: StoreOption = None,
) -> None:
    """
    Submit a learner's answers.

    Exams configured for model correction are corrected before returning.
    """
    if not answers_file.exists():
        console.print(f"[red]Error:[/red] Answers file not found: {answers_file}")
        raise typer.Exit(1)

    _, _, orchestrator = _open(store)
    try:
        answers = json.loads(answers_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] Invalid answers file {answers_file}: {e}")
        raise typer.Exit(1)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task("Submitting answers...", total=None)
            result = orchestrator.submit_answers(exam_id, user_id, answers, user_name=user_name)
    except CorrectionError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(
        Panel(
            f"Submission: {result.submission_id}\n"
            f"Status: {result.correction_status.value if result.correction_status else '-'}\n"
            f"Score: {result.score if result.score is not None else '-'}",
            title="Submitted",
        )
    )
    console.print(result.message)


@app.command()
def correct(
    exam_id: Annotated[str, typer.Argument(help="Exam id")],
    user_id: Annotated[str, typer.Argument(help="Learner id")],
    question_id: Annotated[str, typer.Argument(help="Question id")],
    method: Annotated[
        CorrectionMethod,
        typer.Option("--method", "-m", help="Correction method"),
    ] = CorrectionMethod.MANUAL,
    score: Annotated[
        Optional[float], typer.Option("--score", help="Manual score")
    ] = None,
    feedback: Annotated[
        Optional[str], typer.Option("--feedback", help="Manual feedback")
    ] = None,
    rigor: Annotated[
        Optional[float], typer.Option("--rigor", help="Model strictness (0-1)")
    ] = None,
    grader: Annotated[
        Optional[str], typer.Option("--grader", help="Identity of the manual grader")
    ] = None,
    store: StoreOption = None,
) -> None:
    """Correct one discursive or essay question."""
    _, _, orchestrator = _open(store)

    try:
        outcome = orchestrator.correct_question(
            exam_id,
            user_id,
            question_id,
            method=method,
            score=score,
            feedback=feedback,
            rigor=rigor,
            corrected_by=grader,
        )
    except CorrectionError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    correction = outcome.correction
    console.print(
        Panel(
            f"[bold]{correction.score} / {correction.max_score}[/bold] ({correction.method.value})\n\n"
            f"{correction.feedback}",
            title=f"Question {question_id}",
        )
    )
    console.print(f"Discursive score: {outcome.discursive_score}")
    if outcome.all_corrected:
        final = outcome.score if outcome.score is not None else "-"
        console.print(f"[green]✓ All questions corrected.[/green] Final score: {final}")


@app.command("correct-all")
def correct_all(
    exam_id: Annotated[str, typer.Argument(help="Exam id")],
    user_id: Annotated[str, typer.Argument(help="Learner id")],
    rigor: Annotated[
        Optional[float], typer.Option("--rigor", help="Model strictness (0-1)")
    ] = None,
    store: StoreOption = None,
) -> None:
    """Correct every pending question of a submission with the grading model."""
    _, _, orchestrator = _open(store)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task("Grading... (this may take a moment)", total=None)
            report = orchestrator.correct_all_discursive(exam_id, user_id, rigor=rigor)
    except BulkCorrectionFailedError as e:
        console.print("[red]No question was corrected[/red]")
        for error in e.errors:
            console.print(f"  • {error}")
        raise typer.Exit(1)
    except CorrectionError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    color = "green" if report.corrected == report.total else "yellow"
    console.print(f"[{color}]Corrected {report.corrected} of {report.total} questions[/{color}]")
    for error in report.errors:
        console.print(f"  • {error}")
    for question_id in report.skipped:
        console.print(f"  • {question_id}: already corrected by someone else, kept as is")
    if report.all_corrected:
        final = report.score if report.score is not None else "-"
        console.print(f"[green]✓ All questions corrected.[/green] Final score: {final}")


@app.command()
def show(
    exam_id: Annotated[str, typer.Argument(help="Exam id")],
    user_id: Annotated[str, typer.Argument(help="Learner id")],
    store: StoreOption = None,
) -> None:
    """Show a submission's corrections and scores."""
    _, state, _ = _open(store)
    exam = state.get_exam(exam_id)
    submission = state.get_submission(exam_id, user_id)
    if exam is None or submission is None:
        console.print(f"[red]Error:[/red] No submission of '{user_id}' to exam '{exam_id}'")
        raise typer.Exit(1)

    _display_submission(exam, submission)


@app.command()
def health() -> None:
    """
    Check if the correction engine is operational.

    Verifies configuration and grading model connectivity.
    """
    try:
        settings = get_settings()
        console.print("[bold]Exam Correction Health Check[/bold]\n")

        console.print("[dim]Checking configuration...[/dim]")
        console.print(f"  API Base URL: {settings.grader_base_url}")
        console.print(f"  Model: {settings.grader_model}")
        console.print(f"  Timeout: {settings.grader_timeout_seconds}s")
        console.print(f"  Default rigor: {settings.default_rigor}")

        console.print("\n[dim]Checking API connectivity...[/dim]")
        _, _, orchestrator = _open(None)

        if orchestrator.health_check():
            console.print("[green]✓ API is reachable[/green]")
        else:
            console.print("[red]✗ API is not reachable[/red]")
            raise typer.Exit(1)

        console.print("\n[green]All systems operational[/green]")

    except ValueError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        raise typer.Exit(1)


def _display_submission(exam: Exam, submission: Submission) -> None:
    """Display a submission in a formatted table."""
    status = submission.correction_status
    status_color = "green" if status is CorrectionStatus.CORRECTED else "yellow"
    console.print(
        Panel(
            f"Status: [{status_color}]{status.value if status else 'no correction needed'}"
            f"[/{status_color}]\n"
            f"Discursive score: {submission.discursive_score if submission.discursive_score is not None else '-'}\n"
            f"[bold]Score: {submission.score if submission.score is not None else '-'}[/bold]",
            title=f"{exam.title or exam.id} - {submission.user_name or submission.user_id}",
        )
    )

    table = Table(title="Corrections")
    table.add_column("Question", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Method")
    table.add_column("Feedback")

    for question in exam.questions:
        correction = submission.find_correction(question.id)
        if correction is None:
            continue
        table.add_row(
            str(question.number),
            f"{correction.score}/{correction.max_score}",
            correction.method.value,
            correction.feedback[:60],
        )

    console.print(table)


if __name__ == "__main__":
    app()

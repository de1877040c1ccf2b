"""Command Line Interface (CLI) output: banners, progress and summaries."""

from typing import Any, Dict, List

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from core.models import AssessmentRecord, Criterion, Submission, SubmissionOutcome, format_points

console = Console(highlight=False)

ANSI_RESET = "\x1b[0m"


class RawConsoleSink:
    """Writes text straight to the console's file, bypassing rich markup.

    Child process output goes through here so brackets and escape codes it
    prints reach the terminal untouched.
    """

    def write(self, text: str) -> None:
        console.file.write(text)
        console.file.flush()


def reset_style():
    """Resets terminal colors a test command may have left behind."""
    if console.is_terminal:
        RawConsoleSink().write(ANSI_RESET)

def display_error(message: str):
    """Displays an error message in a standard format."""
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")

def display_warning(message: str):
    """Displays a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {escape(message)}")

def display_success(message: str):
    console.print(f"[green]Success:[/green] {escape(message)}")

def display_info(message: str):
    console.print(escape(message))

def display_step(description: str):
    """Displays the current phase of the run."""
    console.print(f"\n[bold blue]{escape(description)}[/bold blue]")
    console.rule()

def _position(index: int, total: int) -> str:
    return f"[{index + 1:02d}/{total}]"

def display_submission_banner(index: int, total: int, submission: Submission, url: str):
    """`[NN/TOTAL] Evaluating submission <id> by <name>`, the id linking to Canvas."""
    reset_style()
    console.print(
        f"{escape(_position(index, total))} [underline]Evaluating submission "
        f"[link={url}]{escape(submission.id)}[/link] by [bold]{escape(submission.user.name)}[/bold][/underline]"
    )

def display_skipped_submission(index: int, total: int, submission: Submission, url: str):
    reset_style()
    console.print(
        f"{escape(_position(index, total))} [strike]Skipping submission "
        f"[link={url}]{escape(submission.id)}[/link] by [bold]{escape(submission.user.name)}[/bold][/strike]"
    )

def display_criterion_banner(index: int, total: int, criterion_index: int, criterion: Criterion):
    """`[NN/TT #K] Testing for <description>`; as wide as the output pad."""
    reset_style()
    prefix = f"[{index + 1:02d}/{total:02d} #{criterion_index + 1}]"
    console.print(f"{escape(prefix)} [italic]Testing for [bold]{escape(criterion.description)}[/bold][/italic]")

def display_record(record: AssessmentRecord):
    """Dumps an assessment record (verbose mode)."""
    console.print_json(data=record.model_dump())

def display_json(data: Any):
    console.print_json(data=data)

# --- Upload progress ---

def start_upload_progress(count: int):
    """Prints the progress ruler: one `_` per record followed by `.`."""
    console.print("_" * count + ".", markup=False)

def mark_upload(mark: str):
    console.print(mark, end="", markup=False)

def finish_upload_progress(dry_run: bool):
    if not dry_run:
        mark_upload("|")
    console.print()

def display_upload_failures(failures: List[Dict[str, Any]]):
    for failure in failures:
        console.print_json(data=failure)

def display_upload_summary(failed: int, total: int):
    console.print(f"Upload finished ({failed} failed of {total}).")

# --- Summary ---

def display_processed_summary(outcomes: List[SubmissionOutcome]):
    """Displays a summary table of evaluated, skipped and failed submissions.

    Args:
        outcomes: One entry per submission of the assignment.
    """
    if not outcomes:
        console.print("[yellow]No submissions were processed.[/yellow]")
        return

    table = Table(title="Submission Evaluation Results", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=4)
    table.add_column("Submission ID", style="dim")
    table.add_column("User", style="cyan")
    table.add_column("Status")
    table.add_column("Points", justify="right")
    table.add_column("Errors", style="red")

    evaluated = skipped = failed = 0
    for outcome in outcomes:
        if outcome.status == "evaluated":
            evaluated += 1
            status = Text("evaluated", style="green")
        elif outcome.status == "skipped":
            skipped += 1
            status = Text("skipped", style="dim")
        else:
            failed += 1
            status = Text("failed", style="bold yellow")
        table.add_row(
            str(outcome.index + 1),
            outcome.submission_id,
            f"{outcome.user_name} ({outcome.user_id})",
            status,
            format_points(outcome.points) if outcome.points is not None else "-",
            outcome.error or "",
        )

    console.print(table)
    console.print(f"Summary: {evaluated} evaluated, {skipped} skipped, {failed} failed.")

import json
import logging
import typer

import asyncio
from pathlib import Path
from rich.table import Table
from rich.console import Console
from typing import Optional

from src.curation.age_rating import get_rating_color
from src.curation.analyzer import ContentAnalyzer
from src.curation.curation_queue import CurationQueue
from src.curation.database import CurationDB
from src.curation.models import ContentAnalysisResult, ExternalImage, ProcessingSummary
from src.curation.settings import database_path, load_config
from dotenv import load_dotenv

# Load env variables including GROQ_API_KEY
load_dotenv()

# Allow flags to be specified anywhere (before or after arguments)
CONTEXT_SETTINGS = {"allow_interspersed_args": True}
app = typer.Typer(help="Character image curation CLI", context_settings=CONTEXT_SETTINGS)
console = Console()


class GlobalState:
    db_path: Path = Path("data/curation.db")


global_state = GlobalState()


@app.callback()
def main_callback(
    db: Optional[Path] = typer.Option(None, "--db", help="Path to the curation database"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Global options for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    global_state.db_path = db or database_path()


def _open_db() -> CurationDB:
    global_state.db_path.parent.mkdir(parents=True, exist_ok=True)
    return CurationDB(global_state.db_path)


def _build_analyzer(db: Optional[CurationDB]) -> ContentAnalyzer:
    from src.curation.vision import GroqCharacterAnalyzer, GroqImageClassifier

    try:
        classifier = GroqImageClassifier()
        character_analyzer = GroqCharacterAnalyzer()
    except Exception as e:
        console.print(f"[bold red]Error initializing vision clients:[/bold red] {e}")
        raise typer.Exit(code=1)
    return ContentAnalyzer(classifier, character_analyzer, db=db, config=load_config())


def _build_queue() -> CurationQueue:
    db = _open_db()
    return CurationQueue(db, _build_analyzer(db), config=load_config())


@app.command()
def enqueue(
    file: Path = typer.Argument(..., help="JSON file with a list of source images", exists=True, dir_okay=False),
):
    """
    Add source images to the curation queue.
    Entries need a `url`; `rating`, `id`, `tags` and `author` are optional.
    """
    try:
        entries = json.loads(file.read_text())
        images = [ExternalImage.model_validate(entry) for entry in entries]
    except Exception as e:
        console.print(f"[red]Invalid input file {file}: {e}[/red]")
        raise typer.Exit(1)

    queue = CurationQueue(_open_db(), analyzer=None, config=load_config())
    added = queue.add_batch(images)

    console.print(
        f"[bold green]Queued {len(added)} of {len(images)} images[/bold green] "
        f"([dim]{len(images) - len(added)} skipped[/dim])"
    )


@app.command()
def process(
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum number of pending items to process"),
):
    """
    Analyze and classify pending items.
    """
    queue = _build_queue()
    console.print("[bold blue]Processing pending items...[/bold blue]")

    summary = asyncio.run(queue.process_pending_items(limit))

    _print_summary(summary)


@app.command()
def stats():
    """
    Show queue counts per status.
    """
    queue = CurationQueue(_open_db(), analyzer=None, config=load_config())
    queue_stats = queue.get_stats()

    table = Table(title="Curation Queue")
    table.add_column("Status", style="cyan")
    table.add_column("Count", style="magenta")

    for name, value in queue_stats.model_dump().items():
        table.add_row(name.capitalize(), str(value))

    console.print(table)


@app.command()
def approved(
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum number of items to list"),
):
    """
    List approved images awaiting character generation, best first.
    """
    queue = CurationQueue(_open_db(), analyzer=None, config=load_config())
    items = queue.get_approved_items(limit)

    if not items:
        console.print("[yellow]No approved images waiting[/yellow]")
        return

    table = Table(title="Approved Images", show_header=True)
    table.add_column("ID")
    table.add_column("Rating")
    table.add_column("Quality")
    table.add_column("Species")
    table.add_column("Gender")
    table.add_column("URL")

    for item in items:
        rating_str = "-"
        if item.age_rating:
            color = get_rating_color(item.age_rating)
            rating_str = f"[{color}]{item.age_rating.value}[/{color}]"
        quality_str = f"{item.quality_score:.2f}" if item.quality_score is not None else "N/A"
        table.add_row(item.id[:8], rating_str, quality_str, item.species or "-", item.gender or "-", item.source_url)

    console.print(table)


@app.command()
def analyze(
    url: str = typer.Argument(..., help="Public image URL"),
    check_duplicates: bool = typer.Option(False, "--check-duplicates", "-d", help="Compare against accepted images"),
):
    """
    Analyze a single image without queueing it.
    """
    db = _open_db() if check_duplicates else None
    analyzer = _build_analyzer(db)

    try:
        result = asyncio.run(analyzer.analyze_image(url, check_duplicates=check_duplicates))
    except Exception as e:
        console.print(f"[bold red]Analysis failed:[/bold red] {e}")
        raise typer.Exit(code=1)

    _print_analysis(result, analyzer)


def _print_summary(summary: ProcessingSummary):
    table = Table(title="Processing Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("Processed", str(summary.processed))
    table.add_row("Approved", str(summary.approved))
    table.add_row("Rejected", str(summary.rejected))
    table.add_row("Errors", str(summary.errors))

    console.print(table)


def _print_analysis(result: ContentAnalysisResult, analyzer: ContentAnalyzer):
    color = get_rating_color(result.age_rating)

    table = Table(title="Content Analysis")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Age Rating", f"[{color}]{result.age_rating.value}[/{color}]")
    table.add_row("Content Tags", ", ".join(t.value for t in result.content_tags) or "-")
    table.add_row("Triage Quality", f"{result.quality_score:.1f}")
    table.add_row("NSFW", "[red]yes[/red]" if result.is_nsfw else "no")
    table.add_row("Duplicate", f"[red]yes ({result.duplicate_match_id})[/red]" if result.is_duplicate else "no")
    if result.physical_characteristics:
        table.add_row("Species", result.physical_characteristics.species or "-")
        table.add_row("Gender", result.physical_characteristics.gender or "-")
    table.add_row("Description", result.overall_description or result.description or "-")

    console.print(table)

    reasons = analyzer.rejection_reasons(result)
    if reasons:
        console.print(f"[red]Would be rejected:[/red] {', '.join(reasons)}")
    elif analyzer.should_auto_approve(result):
        console.print("[green]Would be auto-approved[/green]")
    else:
        console.print("[yellow]Needs review[/yellow]")


if __name__ == "__main__":
    app()

"""
Command-line interface for chaptersplit.
"""

import builtins
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.tree import Tree

from .formatters import (
    estimate_audio_size,
    estimate_reading_time,
    format_chapters_text,
    format_duration,
)
from .models import Chapter, ParseResult
from .parser import parse_document
from .reconcile import DRIFT_THRESHOLD_PERCENT, build_manual_result

console = Console()
err_console = Console(stderr=True)


def parse_chapter_range(range_str: str) -> list[int]:
    """
    Parse chapter range string like "1-5,7,9-12" into list of indices.

    Order of first appearance is kept and duplicates are dropped, so
    "3,1-2,2" gives [2, 0, 1].

    Args:
        range_str: Range string (e.g., "1-5,7,9-12")

    Returns:
        List of chapter indices (0-based)

    Raises:
        ValueError: On a malformed part or a reversed range like "3-1"
    """
    indices: list[int] = []
    seen: set[int] = set()
    for part in range_str.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start, end = part.split("-", 1)
            start_idx = int(start.strip()) - 1  # Convert to 0-based
            end_idx = int(end.strip()) - 1
            if end_idx < start_idx:
                raise ValueError(f"Reversed range: {part}")
            candidates = range(start_idx, end_idx + 1)
        else:
            candidates = range(int(part) - 1, int(part))
        for idx in candidates:
            if idx < 0:
                raise ValueError(f"Chapter numbers start at 1: {part}")
            if idx not in seen:
                seen.add(idx)
                indices.append(idx)
    return indices


def media_type_for(filepath: Path) -> str:
    return "application/epub+zip" if filepath.suffix.lower() == ".epub" else "text/plain"


def load_result(filepath: Path) -> ParseResult:
    """Parse ``filepath``; exits with status 1 on a failed parse."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=err_console,
    ) as progress:
        progress.add_task(f"Loading {filepath.name}...", total=None)
        result = parse_document(filepath.read_bytes(), media_type_for(filepath))
        progress.stop()

    if not result.success:
        kind = result.error_kind.value if result.error_kind else "Error"
        err_console.print(f"[red]{kind}:[/red] {result.error}")
        sys.exit(1)
    for warning in result.warnings:
        err_console.print(f"[yellow]Warning:[/yellow] {warning}")
    return result


def display_chapters_tree(chapters: list[Chapter]):
    """Display chapters in a tree structure."""
    tree = Tree("📚 [bold]Chapters[/bold]")

    # Parent of each chapter is the last one seen at a shallower level
    path: list[tuple[int, Any]] = []
    for chapter in chapters:
        label = (
            f"[cyan]{chapter.title}[/cyan] [dim]({chapter.char_count:,} chars, "
            f"{format_duration(estimate_reading_time(chapter.text))})[/dim]"
        )
        while path and path[-1][0] >= chapter.level:
            path.pop()
        parent = path[-1][1] if path else tree
        node = parent.add(label)
        path.append((chapter.level, node))

    console.print(tree)


def display_chapters_table(chapters: list[Chapter]):
    """Display chapters in a table format."""
    table = Table(title="📚 Chapters", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=6)
    table.add_column("Title", style="cyan")
    table.add_column("Characters", justify="right", style="green")
    table.add_column("Narration", justify="right", style="yellow")
    table.add_column("Audio", justify="right", style="blue")
    table.add_column("Source", style="dim")

    for idx, chapter in enumerate(chapters, 1):
        indent = "  " * chapter.level
        title = f"{indent}{chapter.title}"
        if chapter.load_error:
            title += " [red](failed)[/red]"
        audio_kb = estimate_audio_size(chapter.text) / 1024
        table.add_row(
            str(idx),
            title,
            f"{chapter.char_count:,}",
            format_duration(estimate_reading_time(chapter.text)),
            f"{audio_kb:,.0f} KB",
            chapter.source.value,
        )

    console.print(table)


def load_edited_pairs(path: Path) -> list[tuple[str, str]]:
    """
    Read an edited split from JSON.

    Accepts either a list of {"title", "text"} objects or a serialized
    parse result with a "chapters" list.

    Raises:
        ValueError: If the JSON has neither shape
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("chapters")
    if not isinstance(data, builtins.list):
        raise ValueError("expected a list of chapters or an object with 'chapters'")
    pairs = []
    for entry in data:
        if not isinstance(entry, dict):
            raise ValueError(f"chapter entry is not an object: {entry!r}")
        pairs.append((str(entry.get("title") or ""), str(entry.get("text") or "")))
    return pairs


@click.group()
@click.version_option(package_name="chaptersplit", prog_name="chaptersplit")
@click.option("--verbose", "-v", is_flag=True, help="Show log output")
def cli(verbose: bool):
    """
    chaptersplit - Split EPUB and plain-text books into chapters for narration.
    """
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )


@cli.command()
@click.argument("filepath", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--format",
    "-f",
    type=click.Choice(["table", "tree"]),
    default="table",
    help="Display format for chapters",
)
def list(filepath: Path, format: str):
    """List all chapters of an EPUB or text file."""
    result = load_result(filepath)
    chapters = [*result.chapters]
    if not chapters:
        console.print("[yellow]No chapters found.[/yellow]")
        return

    console.print(
        f"\n[bold]Found {len(chapters)} chapter(s) in {filepath.name}[/bold]\n"
    )
    if format == "tree":
        display_chapters_tree(chapters)
    else:
        display_chapters_table(chapters)


@cli.command()
@click.argument("filepath", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output file path (default: stdout)",
)
@click.option("--chapters", "-c", type=str, help="Chapter range (e.g., '1-5,7,9-12')")
@click.option("--json", "as_json", is_flag=True, help="Write the parse result as JSON")
@click.option("--no-chapter-titles", is_flag=True, help="Omit chapter titles")
def extract(
    filepath: Path,
    output: Optional[Path],
    chapters: Optional[str],
    as_json: bool,
    no_chapter_titles: bool,
):
    """
    Extract chapter text from an EPUB or text file.

    Use --chapters to pick a subset and --json for the full parse result.
    """
    result = load_result(filepath)
    selected = [*result.chapters]
    if chapters:
        try:
            indices = parse_chapter_range(chapters)
        except ValueError as e:
            err_console.print(f"[red]Invalid chapter range: {e}[/red]")
            sys.exit(1)
        selected = [selected[i] for i in indices if i < len(selected)]

    if as_json:
        data = result.to_dict()
        if chapters:
            data["chapters"] = [ch.to_dict() for ch in selected]
        text = json.dumps(data, indent=2, ensure_ascii=False)
    else:
        text = format_chapters_text(selected, with_titles=not no_chapter_titles)

    if output:
        output.write_text(text, encoding="utf-8")
        err_console.print(
            f"\n[green]✓[/green] Extracted {len(selected)} chapter(s) to {output}"
        )
    else:
        # Write to stdout (bypass rich console)
        print(text)


@cli.command()
@click.argument("filepath", type=click.Path(exists=True, path_type=Path))
def info(filepath: Path):
    """Display title, author and totals for a file."""
    result = load_result(filepath)
    total_chars = result.total_characters
    total_text = "".join(ch.text for ch in result.chapters)
    sources = sorted({ch.source.value for ch in result.chapters})

    info_lines = [
        f"[bold]Title:[/bold] {result.title}",
        f"[bold]Author:[/bold] {result.author}",
        f"\n[bold]Chapters:[/bold] {len(result.chapters)}",
        f"[bold]Chapter Sources:[/bold] {', '.join(sources) or '-'}",
        f"[bold]Total Characters:[/bold] {total_chars:,}",
        "[bold]Narration Time:[/bold] "
        f"{format_duration(estimate_reading_time(total_text))}",
        "[bold]Audio Size:[/bold] "
        f"{estimate_audio_size(total_text) / (1024 * 1024):,.1f} MB",
    ]
    if result.warnings:
        info_lines.append(f"[bold]Warnings:[/bold] {len(result.warnings)}")

    panel = Panel(
        "\n".join(info_lines), title=f"📖 {filepath.name}", border_style="cyan"
    )
    console.print(panel)


@cli.command()
@click.argument("source", type=click.Path(exists=True, path_type=Path))
@click.argument("edited", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--threshold",
    type=float,
    default=DRIFT_THRESHOLD_PERCENT,
    show_default=True,
    help="Drift percentage that triggers a warning",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output file path (default: stdout)",
)
def reconcile(source: Path, edited: Path, threshold: float, output: Optional[Path]):
    """
    Check a hand-edited split against its source text.

    SOURCE is the original text file, EDITED a JSON list of chapters. The
    rebuilt parse result is written as JSON.
    """
    try:
        pairs = load_edited_pairs(edited)
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] Cannot read {edited.name}: {e}")
        sys.exit(1)

    source_text = source.read_text(encoding="utf-8-sig", errors="replace")
    result, report = build_manual_result(
        pairs, source_text=source_text, threshold=threshold
    )

    style = "red" if report.exceeded else "green"
    err_console.print(
        f"[{style}]Drift {report.drift_percent:.2f}%[/{style}] "
        f"({report.chapter_length:,} of {report.source_length:,} characters, "
        f"threshold {report.threshold:g}%)"
    )
    if output:
        output.write_text(result.to_json(), encoding="utf-8")
    else:
        print(result.to_json())


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()

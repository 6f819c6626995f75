"""
CLI for interval coverage.

Usage:
    bedcov <reference.bed> <target.bed>
"""

from __future__ import annotations

import logging
import sys
from contextlib import nullcontext
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from ..core.genome_interval import IndexStateError, UnknownContigError
from ..coverage.coverage_calculator import (
    CoverageCalculator,
    CoverageConfig,
    CoverageSummary,
)

# Status goes to stderr so stdout carries only results
console = Console(stderr=True)
app = typer.Typer(help="Overlap count and union coverage of target intervals")

# Configure logging with rich
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(console=console, rich_tracebacks=True)],
)
logger = logging.getLogger(__name__)


@app.command()
def coverage(
    reference_bed: Path = typer.Argument(..., help="Reference BED file (chrom, start, end)"),
    target_bed: Path = typer.Argument(..., help="Target BED file (chrom, start, end)"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Output file path (default: stdout)"
    ),
    summary_file: Optional[Path] = typer.Option(
        None, "--summary", help="Write a per-contig summary TSV"
    ),
    workers: int = typer.Option(1, "--workers", "-j", help="Number of worker processes"),
    chunk_size: int = typer.Option(
        10_000, "--chunk-size", help="Targets per work unit when --workers > 1"
    ),
    strict_contigs: bool = typer.Option(
        False,
        "--strict-contigs",
        help="Fail on target contigs with no reference intervals instead of reporting 0",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Report, for every target interval, the number of overlapping reference
    intervals and the number of target bases they cover.

    Output columns (tab-separated, no header):
    chrom, start, end, overlap_count, covered_length

    Example:
        bedcov genes.bed exons.bed --output exon_coverage.tsv
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    console.print("[bold blue]bedcov - Interval Coverage[/bold blue]")
    console.print(f"Reference: {reference_bed}")
    console.print(f"Targets: {target_bed}")

    try:
        config = CoverageConfig(
            reference_bed=reference_bed,
            target_bed=target_bed,
            strict_contigs=strict_contigs,
            workers=workers,
            chunk_size=chunk_size,
        )
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print("[yellow]Loading reference intervals...[/yellow]")
    try:
        calculator = CoverageCalculator(config)
    except OSError as e:
        console.print(f"[bold red]Error reading reference:[/bold red] {e}")
        logger.exception("Reference loading failed")
        raise typer.Exit(1)

    summary = CoverageSummary()
    console.print("[yellow]Computing coverage...[/yellow]")
    try:
        # Targets are opened before the output file is created or truncated
        results = calculator.calculate(summary)
        with open(output, "w") if output else nullcontext(sys.stdout) as handle:
            calculator.write_results(handle, results)
    except UnknownContigError as e:
        console.print(f"[bold red]Error:[/bold red] no reference intervals for contig {e}")
        raise typer.Exit(1)
    except (OSError, IndexStateError) as e:
        console.print(f"[bold red]Error during coverage calculation:[/bold red] {e}")
        logger.exception("Coverage calculation failed")
        raise typer.Exit(1)

    if summary_file is not None:
        try:
            summary.save(summary_file)
        except OSError as e:
            console.print(f"[bold red]Error writing summary:[/bold red] {e}")
            logger.exception("Summary writing failed")
            raise typer.Exit(1)

    # Print summary
    console.print("\n[bold green]Coverage complete![/bold green]")
    console.print(f"Targets: {summary.n_targets:,}")
    console.print(f"Targets with overlaps: {summary.n_targets_covered:,}")
    console.print(f"Covered bases: {summary.covered_bp:,}")
    if output:
        console.print(f"Output saved to: {output}")


if __name__ == "__main__":
    app()

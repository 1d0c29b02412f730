"""
Run command: screen seed proteins against NCBI BLAST and Batch CD-Search.

This is the command most users will interact with. It collects candidates
with a BLASTP search per seed, confirms them by domain superiority, and
writes the positive identifiers. Interrupted runs resume from the work
directory when the same command is run again.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from arbitrator.cli.utils import QuietConsole, configure_logging, spinner_progress
from arbitrator.core.exceptions import ArbitratorError
from arbitrator.core.io_utils import read_seed_list
from arbitrator.core.pipeline import Pipeline, PipelineResult
from arbitrator.models.config import ArbitratorConfig, parse_domain_list

logger = logging.getLogger(__name__)

console = Console()


def build_config(
    config_file: Path | None,
    **overrides: object,
) -> ArbitratorConfig:
    """Merge an optional YAML file with command-line values (CLI wins)."""
    if config_file is not None:
        return ArbitratorConfig.from_yaml(config_file, **overrides)
    return ArbitratorConfig(**{k: v for k, v in overrides.items() if v is not None})


def print_summary(out: QuietConsole, result: PipelineResult) -> None:
    """Print a table summarising a finished run."""
    table = Table(title="Screening Summary", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    coordinator = result.coordinator
    table.add_row("Seeds searched", f"{len(coordinator.completed):,}")
    table.add_row("Seeds cached", f"{len(coordinator.skipped):,}")
    if coordinator.failed:
        table.add_row("Seeds failed", f"[red]{len(coordinator.failed):,}[/red]")
    table.add_row("Groups classified", f"{len(result.records):,}")
    table.add_row("Positive calls", f"[green]{len(result.call_set.positive):,}[/green]")
    table.add_row("Negative calls", f"{len(result.call_set.negative):,}")
    table.add_row("Positives written", f"{len(result.positives):,}")
    if result.fetch is not None:
        table.add_row("Records written", f"{len(result.fetch.written):,}")
        table.add_row("Records reused", f"{len(result.fetch.reused):,}")
        if result.fetch.failures:
            table.add_row("Record failures", f"[yellow]{len(result.fetch.failures):,}[/yellow]")

    out.print()
    out.print(table)


def run(
    seeds: Path = typer.Option(
        ...,
        "--seeds",
        "-r",
        help="File of representative seed protein accessions, one per line",
        exists=True,
        dir_okay=False,
    ),
    quality: float | None = typer.Option(
        None,
        "--quality",
        "-q",
        help="Quality threshold q: first-stage BLASTP uses EXPECT=10^-q",
    ),
    superiority: float | None = typer.Option(
        None,
        "--superiority",
        "-s",
        help="Superiority threshold: minimum log10 margin of the positive domain hit",
    ),
    posdom: str | None = typer.Option(
        None,
        "--posdom",
        help="Comma-separated CDD accessions of the positive domain(s), e.g. cd02040",
    ),
    uninfdom: str | None = typer.Option(
        None,
        "--uninfdom",
        help="Comma-separated CDD accessions whose hits are ignored",
    ),
    list_output: Path | None = typer.Option(
        None,
        "--list-output",
        "-o",
        help="Output file for positive accessions, one per line",
    ),
    records_dir: Path | None = typer.Option(
        None,
        "--records-dir",
        help="Directory for GenPept records of positive calls",
    ),
    failures_output: Path | None = typer.Option(
        None,
        "--failures-output",
        help="File listing positives whose record could not be retrieved",
    ),
    report: Path | None = typer.Option(
        None,
        "--report",
        help="Per-group call report (.csv or .parquet)",
    ),
    ignore: list[Path] | None = typer.Option(
        None,
        "--ignore",
        "-i",
        help="Identifiers to treat as known positives (list, EMBL or GenBank file). Repeatable.",
    ),
    no_recovery: bool = typer.Option(
        False,
        "--no-recovery",
        help="Discard checkpoints and cached search results before running",
    ),
    api_key: str | None = typer.Option(
        None,
        "--api-key",
        envvar="NCBI_API_KEY",
        help="NCBI API key (used for E-utilities requests)",
    ),
    email: str | None = typer.Option(
        None,
        "--email",
        envvar="NCBI_EMAIL",
        help="Contact email sent to NCBI with each request",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file; command-line values take precedence",
        exists=True,
        dir_okay=False,
    ),
    batch_size: int | None = typer.Option(
        None,
        "--batch-size",
        help="Synonymous groups per CD-Search request (default 250)",
    ),
    work_dir: Path | None = typer.Option(
        None,
        "--work-dir",
        "-w",
        help="Directory for cached search results and checkpoints (default ./work)",
    ),
    max_workers: int | None = typer.Option(
        None,
        "--max-workers",
        help="Maximum concurrent first-stage searches",
    ),
    log_file: Path | None = typer.Option(
        None,
        "--log-file",
        help="Also write log records to this file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        help="Suppress progress output (for scripting)",
    ),
) -> None:
    """
    Screen seed proteins and call family members by domain superiority.

    Example:

        arbitrator run \\
            --seeds nifh_representatives.txt \\
            -q 2 -s 1 \\
            --posdom cd02040 --uninfdom cd02117 \\
            --list-output nifh_positives.txt

        # Resume an interrupted run: run the same command again.

        # Start over, ignoring previous work:
        arbitrator run --seeds reps.txt -q 2 -s 1 --posdom cd02040 \\
            --list-output positives.txt --no-recovery
    """
    out = QuietConsole(console, quiet=quiet)
    configure_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    out.print("\n[bold blue]Arbitrator Protein Family Screening[/bold blue]\n")

    if list_output is None and records_dir is None:
        console.print("[red]Error: Specify --list-output and/or --records-dir.[/red]")
        raise typer.Exit(code=1) from None
    if failures_output is not None and records_dir is None:
        console.print("[red]Error: --failures-output requires --records-dir.[/red]")
        raise typer.Exit(code=1) from None

    try:
        positive_domains = parse_domain_list(posdom) if posdom is not None else None
        uninformative_domains = parse_domain_list(uninfdom) if uninfdom is not None else None
        run_config = build_config(
            config,
            quality_threshold=quality,
            superiority_threshold=superiority,
            positive_domains=positive_domains,
            uninformative_domains=uninformative_domains,
            batch_size=batch_size,
            work_dir=work_dir,
            max_workers=max_workers,
            api_key=api_key,
            email=email,
            no_recovery=no_recovery or None,
        )
    except ArbitratorError as e:
        console.print(f"[red]Error: {e.full_message}[/red]")
        raise typer.Exit(code=1) from None
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/red]\n{e}")
        raise typer.Exit(code=1) from None

    seed_ids = read_seed_list(seeds)
    if not seed_ids:
        console.print(f"[red]Error: No seed identifiers in {seeds}[/red]")
        raise typer.Exit(code=1) from None

    out.print(f"[bold]Seeds:[/bold] {len(seed_ids):,} from {seeds}")
    out.print(f"[bold]Expect:[/bold] {run_config.expect:g}")
    out.print(f"[bold]Positive domains:[/bold] {', '.join(sorted(run_config.positive_domains))}")
    if run_config.uninformative_domains:
        out.print(
            f"[bold]Uninformative domains:[/bold] "
            f"{', '.join(sorted(run_config.uninformative_domains))}"
        )
    out.print(f"[bold]Work directory:[/bold] {run_config.work_dir}")
    if run_config.no_recovery:
        out.print("[yellow]No-recovery mode: previous checkpoints and results are discarded[/yellow]")

    try:
        with Pipeline(run_config) as pipeline, spinner_progress(
            "Screening (NCBI rate limits apply, this can take hours)...", console, quiet
        ) as progress:
            task_id = progress.tasks[0].id
            finished: list[str] = []

            def show_seed_done(seed: str, success: bool) -> None:
                finished.append(seed)
                status = "searched" if success else "[red]failed[/red]"
                progress.update(
                    task_id,
                    description=(
                        f"First-stage searches {len(finished)}/{len(seed_ids)} ({seed} {status})"
                    ),
                )

            result = pipeline.run(
                seed_ids,
                list_output=list_output,
                ignore_files=ignore or (),
                records_dir=records_dir,
                failures_output=failures_output,
                report=report,
                on_seed_done=show_seed_done,
            )
    except ArbitratorError as e:
        console.print(f"\n[red]Error ({e.kind.value}): {e.full_message}[/red]")
        if e.recoverable:
            console.print("[dim]Run the same command again to resume from the checkpoint.[/dim]")
        if verbose:
            console.print_exception()
        raise typer.Exit(code=1) from None
    except PermissionError as e:
        console.print(f"\n[red]Permission denied: {e}[/red]")
        console.print("[dim]Check file permissions and try again.[/dim]")
        raise typer.Exit(code=1) from None

    print_summary(out, result)

    if list_output is not None:
        out.print(f"\n[green]Positive accessions written to:[/green] {list_output}")
    if report is not None:
        out.print(f"[green]Call report written to:[/green] {report}")

    if not result.complete:
        console.print(
            f"\n[yellow]{len(result.coordinator.failed)} seed(s) could not be searched. "
            f"Run the same command again to retry them.[/yellow]"
        )
        raise typer.Exit(code=1)

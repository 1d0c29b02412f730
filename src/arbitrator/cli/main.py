"""
Main CLI entry point for arbitrator.

Provides commands:
- run: Screen seed proteins (BLASTP collection, CD-Search confirmation)
- init-config: Write a YAML configuration template
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich import print as rprint
from rich.console import Console

from arbitrator import __version__
from arbitrator.cli import run as run_cmd
from arbitrator.models.config import ArbitratorConfig

app = typer.Typer(
    name="arbitrator",
    help="Two-stage screening of protein families against NCBI BLAST and CD-Search",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        rprint(f"arbitrator version {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Arbitrator: collect protein family members from nr.

    Seeds are searched with BLASTP against nr; every hit is confirmed with
    NCBI Batch CD-Search and called positive when its best domain hit is to
    a positive domain by a sufficient margin.
    """


app.command(name="run")(run_cmd.run)


@app.command(name="init-config")
def init_config(
    output: Path = typer.Option(
        Path("arbitrator.yaml"),
        "--output",
        "-o",
        help="Path of the configuration file to write",
    ),
    posdom: str = typer.Option(
        "cd02040",
        "--posdom",
        help="Comma-separated positive domain accessions for the template",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Overwrite an existing file",
    ),
) -> None:
    """Write a configuration template with default search settings."""
    if output.exists() and not force:
        console.print(f"[red]Error: {output} exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1) from None

    try:
        template = ArbitratorConfig(
            quality_threshold=2.0,
            superiority_threshold=1.0,
            positive_domains=posdom,
        )
    except ValueError as e:
        console.print(f"[red]Invalid configuration:[/red]\n{e}")
        raise typer.Exit(code=1) from None

    template.to_yaml(output)
    console.print(f"[green]Configuration template written to:[/green] {output}")


if __name__ == "__main__":
    app()

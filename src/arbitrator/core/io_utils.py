"""
I/O utilities for identifier lists, ignore files and report tables.

Identifier lists are newline-delimited files of accessions. Writes go to a
temporary file in the same directory that is then renamed over the target,
so a reader never sees a partially written list.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Literal

import polars as pl

logger = logging.getLogger(__name__)

OutputFormat = Literal["csv", "parquet"]


def write_text_atomic(path: Path, text: str) -> None:
    """
    Write text to path through a temporary file and rename.

    The temporary file lives in the target directory so the rename stays on
    one filesystem.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w") as handle:
            handle.write(text)
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def read_identifier_list(path: Path) -> set[str]:
    """
    Read a newline-delimited identifier list.

    Blank lines are ignored and surrounding whitespace is stripped. A
    missing file reads as an empty set.
    """
    if not path.exists():
        return set()
    with path.open() as handle:
        return {line.strip() for line in handle if line.strip()}


def read_seed_list(path: Path) -> list[str]:
    """Read seed identifiers: blank lines dropped, duplicates collapsed, sorted."""
    return sorted(read_identifier_list(path))


def write_identifier_list(path: Path, identifiers: Iterable[str]) -> None:
    """Atomically write identifiers one per line, sorted."""
    lines = sorted(set(identifiers))
    write_text_atomic(path, "".join(f"{identifier}\n" for identifier in lines))


# =============================================================================
# Ignore files
# =============================================================================


def detect_ignore_format(path: Path) -> str | None:
    """
    Guess the format of an ignore file from its first non-blank line.

    Returns:
        "embl", "genbank", "list", or None if the file is none of these
    """
    with path.open() as handle:
        for line in handle:
            if line.strip():
                first = line
                break
        else:
            return "list"

    if first.startswith("ID "):
        return "embl"
    if first.startswith("LOCUS"):
        return "genbank"
    if len(first.split()) == 1:
        return "list"
    return None


def read_flat_file_ids(path: Path, file_format: str) -> set[str]:
    """Extract record ids (accession.version) from an EMBL or GenBank file."""
    from Bio import SeqIO

    return {record.id for record in SeqIO.parse(str(path), file_format)}


def load_ignore_identifiers(paths: Iterable[Path]) -> set[str]:
    """
    Collect identifiers to treat as known positives.

    Each file may be a plain list or an EMBL/GenBank flat file. Missing
    files and files in an unrecognised format are skipped with a warning.
    """
    ignored: set[str] = set()
    for path in paths:
        if not path.exists():
            logger.warning("Skipping ignore file %s: file not found", path)
            continue

        file_format = detect_ignore_format(path)
        if file_format is None:
            logger.warning("Skipping ignore file %s: not a valid list, EMBL or GenBank file", path)
            continue

        if file_format == "list":
            identifiers = read_identifier_list(path)
        else:
            identifiers = read_flat_file_ids(path, file_format)
        logger.info("Loaded %d identifiers to ignore from %s (%s)", len(identifiers), path, file_format)
        ignored |= identifiers
    return ignored


# =============================================================================
# Tabular reports
# =============================================================================


def output_format_for(path: Path) -> OutputFormat:
    """Choose the report format from the file extension."""
    return "parquet" if path.suffix.lower() == ".parquet" else "csv"


def write_dataframe(
    df: pl.DataFrame,
    path: Path,
    output_format: OutputFormat = "csv",
) -> None:
    """
    Write DataFrame to file in specified format.

    For Parquet output, uses zstd compression.

    Args:
        df: Polars DataFrame to write.
        path: Output file path.
        output_format: Output format - 'csv' or 'parquet'.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    if output_format == "parquet":
        df.write_parquet(path, compression="zstd")
    else:
        df.write_csv(path)


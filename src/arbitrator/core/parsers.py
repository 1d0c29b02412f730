"""
Parsers for first-stage BLAST tables and Batch CD-Search hit tables.

First-stage documents are parsed line by line into SynonymousGroups; a
truncated or malformed line is logged and skipped without affecting the
rest of the document. CD-Search hit tables are read with Polars, filtered
to informative curated-domain hits and partitioned by query position.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import ClassVar

import polars as pl

from arbitrator.core.constants import (
    CURATED_DOMAIN_PREFIX,
    EVALUE_FIELD_INDEX,
    EXPECTED_FIELDS_HEADER,
    FIELDS_HEADER_PREFIX,
    MIN_HIT_FIELDS,
    SUBJECT_FIELD_INDEX,
)
from arbitrator.core.exceptions import MalformedRecord
from arbitrator.models.hits import DomainHit, HitRecord, SynonymousGroup

logger = logging.getLogger(__name__)


class HitGroupParser:
    """
    Parser for tabular first-stage BLASTP output.

    Each data line describes one subject sequence and becomes one
    SynonymousGroup. Under current NCBI settings the subject field holds
    exactly one accession; a ';'-separated list means the response is not
    in the expected shape and the line is rejected.

    Example:
        >>> parser = HitGroupParser()
        >>> groups = list(parser.parse_document(text, source="blast_hits_P12345.1"))
    """

    def parse_line(self, line: str, source: str | None = None) -> SynonymousGroup:
        """
        Parse one data line into a group.

        Raises:
            MalformedRecord: If the line has fewer than 13 fields, a
                multi-accession subject or a column that HitRecord rejects
        """
        fields = line.split()
        if len(fields) < MIN_HIT_FIELDS:
            raise MalformedRecord(
                line, f"expected >= {MIN_HIT_FIELDS} fields, got {len(fields)}", source
            )

        subject = fields[SUBJECT_FIELD_INDEX]
        if ";" in subject:
            raise MalformedRecord(line, "multiple accessions in subject field", source)

        try:
            expect_value = float(fields[EVALUE_FIELD_INDEX])
        except ValueError:
            raise MalformedRecord(
                line, f"expect value {fields[EVALUE_FIELD_INDEX]!r} is not a number", source
            ) from None

        try:
            record = HitRecord.from_line(line)
        except ValueError as e:
            raise MalformedRecord(line, f"invalid hit columns: {e}", source) from e

        return SynonymousGroup([record.subject_id], expect_value=expect_value)

    def check_fields_header(self, line: str, source: str | None = None) -> bool:
        """Compare a '# Fields:' line with the expected column order.

        Returns:
            True if the header matches. A mismatch is logged as a warning.
        """
        if line.strip().lower() == EXPECTED_FIELDS_HEADER.lower():
            return True
        logger.warning(
            "Unexpected BLAST fields header in %s:\n  expected: %s\n  found:    %s",
            source or "result document",
            EXPECTED_FIELDS_HEADER,
            line.strip(),
        )
        return False

    def parse_document(self, text: str, source: str | None = None) -> Iterator[SynonymousGroup]:
        """
        Yield groups from one cached result document.

        Comment lines are skipped after the fields header has been checked.
        Lines that are a single token or a 'Status=' line carry no hit and
        are skipped silently; other malformed lines are logged and skipped.
        """
        header_prefix = FIELDS_HEADER_PREFIX.strip().lower()
        header_checked = False
        for line in text.splitlines():
            stripped = line.strip()
            if not stripped:
                continue
            if stripped.startswith("#"):
                if not header_checked and stripped.lower().startswith(header_prefix):
                    self.check_fields_header(stripped, source)
                    header_checked = True
                continue
            if len(stripped.split()) <= 1 or stripped.startswith("Status="):
                continue

            try:
                yield self.parse_line(line, source)
            except MalformedRecord as e:
                logger.warning("%s", e.message)

    def parse_file(self, path: Path) -> Iterator[SynonymousGroup]:
        """Yield groups from a cached result file."""
        yield from self.parse_document(path.read_text(), source=str(path))


# =============================================================================
# Batch CD-Search hit tables
# =============================================================================


class DomainHitTable:
    """
    Reader for the Batch CD-Search 'hits' table.

    Data lines start with "Q#" and carry 11 tab-separated columns:
    Query, Hit type, PSSM-ID, From, To, E-Value, Bitscore, Accession,
    Short name, Incomplete, Superfamily.
    """

    COLUMNS: ClassVar[list[str]] = [
        "query",
        "hit_type",
        "pssm_id",
        "from",
        "to",
        "evalue",
        "bitscore",
        "accession",
        "short_name",
        "incomplete",
        "superfamily",
    ]

    @classmethod
    def read(cls, text: str) -> pl.DataFrame:
        """
        Read hit rows into a DataFrame.

        Rows with too few columns or unparseable numbers are logged and
        dropped. The row order of the service is kept.

        Returns:
            DataFrame with query_index, query, hit_type, pssm_id, accession,
            short_name, evalue and bitscore columns
        """
        rows: list[list[str]] = []
        for line in text.splitlines():
            if not line.startswith("Q#"):
                continue
            pieces = line.rstrip("\r\n").split("\t")
            if len(pieces) < len(cls.COLUMNS):
                logger.warning("Skipping incomplete CD-Search hit line: %s", line.strip())
                continue
            rows.append(pieces[: len(cls.COLUMNS)])

        if not rows:
            return cls._empty()

        df = pl.DataFrame(rows, schema=cls.COLUMNS, orient="row")
        df = df.with_columns(
            pl.col("query").str.extract(r"^Q#(\d+)", 1).cast(pl.Int64, strict=False).alias("query_index"),
            pl.col("evalue").str.strip_chars().cast(pl.Float64, strict=False),
            pl.col("bitscore").str.strip_chars().cast(pl.Float64, strict=False),
            pl.col("hit_type").str.strip_chars(),
            pl.col("accession").str.strip_chars(),
        )

        invalid = df.filter(pl.col("query_index").is_null() | pl.col("evalue").is_null())
        if invalid.height:
            for query in invalid["query"].to_list():
                logger.warning("Skipping CD-Search hit with unparseable fields: %s", query)
            df = df.filter(pl.col("query_index").is_not_null() & pl.col("evalue").is_not_null())

        return df.select(
            "query_index",
            "query",
            "hit_type",
            "pssm_id",
            "accession",
            "short_name",
            "evalue",
            pl.col("bitscore").fill_null(0.0),
        )

    @staticmethod
    def _empty() -> pl.DataFrame:
        return pl.DataFrame(
            schema={
                "query_index": pl.Int64,
                "query": pl.Utf8,
                "hit_type": pl.Utf8,
                "pssm_id": pl.Utf8,
                "accession": pl.Utf8,
                "short_name": pl.Utf8,
                "evalue": pl.Float64,
                "bitscore": pl.Float64,
            }
        )


def informative_hits_expr(uninformative_domains: Iterable[str] = ()) -> pl.Expr:
    """
    Polars filter keeping specific and non-specific hits to curated domains
    that are not listed as uninformative.
    """
    retained = list(DomainHit.RETAINED_HIT_TYPES)
    expr = pl.col("hit_type").str.to_lowercase().is_in(retained) & pl.col(
        "accession"
    ).str.starts_with(CURATED_DOMAIN_PREFIX)
    uninformative = sorted(set(uninformative_domains))
    if uninformative:
        expr = expr & ~pl.col("accession").is_in(uninformative)
    return expr


def parse_domain_hits(
    text: str,
    uninformative_domains: Iterable[str] = (),
) -> list[DomainHit]:
    """Parse a CD-Search hits table into informative DomainHits, in service order."""
    df = DomainHitTable.read(text).filter(informative_hits_expr(uninformative_domains))
    return [
        DomainHit(
            query_index=row["query_index"],
            query_id=row["query"],
            hit_type=row["hit_type"],
            pssm_id=row["pssm_id"],
            accession=row["accession"],
            short_name=row["short_name"],
            expect_value=row["evalue"],
            bit_score=row["bitscore"],
        )
        for row in df.iter_rows(named=True)
    ]


def partition_by_query(hits: Iterable[DomainHit], batch_size: int) -> dict[int, list[DomainHit]]:
    """
    Group hits by 1-based query position.

    Every position from 1 to batch_size is present, with an empty list when
    the query had no informative hits. Hits for positions outside the batch
    are logged and dropped.
    """
    partitions: dict[int, list[DomainHit]] = {i: [] for i in range(1, batch_size + 1)}
    for hit in hits:
        bucket = partitions.get(hit.query_index)
        if bucket is None:
            logger.warning(
                "CD-Search hit for query #%d outside batch of %d: %s",
                hit.query_index,
                batch_size,
                hit.query_id,
            )
            continue
        bucket.append(hit)
    return partitions

"""
End-to-end screening pipeline.

Stages:
    1. Optionally discard checkpoints and cached results (no-recovery mode)
    2. Ensure a first-stage BLASTP result is cached for every seed
    3. Parse cached results into synonymous groups, in seed order
    4. Classify groups (fast path or batched CD-Search), checkpointing
    5. Write the positive list, minus ignored identifiers
    6. Optionally download GenPept records for the positives
    7. Optionally write the per-group call report
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Self

import polars as pl

from arbitrator.clients.blast import BlastJobClient
from arbitrator.clients.cdsearch import CDSearchClient
from arbitrator.clients.entrez import EntrezRecordFetcher, FetchReport
from arbitrator.clients.transport import NCBITransport
from arbitrator.core.checkpoint import CheckpointStore
from arbitrator.core.classifier import BatchClassifier, CallRecord, DomainSearcher
from arbitrator.core.coordinator import BlastCoordinator, CoordinatorReport, SeedSearcher
from arbitrator.core.io_utils import (
    load_ignore_identifiers,
    output_format_for,
    write_dataframe,
    write_identifier_list,
)
from arbitrator.core.parsers import HitGroupParser
from arbitrator.core.rate_limiter import RateLimiter
from arbitrator.models.config import ArbitratorConfig
from arbitrator.models.hits import CallSet, SynonymousGroup

logger = logging.getLogger(__name__)

CALL_REPORT_SCHEMA = {
    "group": pl.Utf8,
    "members": pl.Utf8,
    "call": pl.Utf8,
    "source": pl.Utf8,
    "superiority": pl.Float64,
}


@dataclass
class PipelineResult:
    """Everything a run produced.

    Attributes:
        coordinator: First-stage search outcome per seed
        call_set: Final positive and negative calls (ignored ids included)
        records: One CallRecord per parsed group, in processing order
        positives: Positive identifiers written to the list output
        fetch: Record retrieval outcome, if records were requested
    """

    coordinator: CoordinatorReport
    call_set: CallSet
    records: list[CallRecord]
    positives: list[str]
    fetch: FetchReport | None = None

    @property
    def complete(self) -> bool:
        """True when every seed had a first-stage result to classify."""
        return self.coordinator.all_succeeded


def build_call_report(records: Iterable[CallRecord]) -> pl.DataFrame:
    """Build the call report table from call records."""
    rows = [record.as_row() for record in records]
    if not rows:
        return pl.DataFrame(schema=CALL_REPORT_SCHEMA)
    return pl.DataFrame(rows, schema=CALL_REPORT_SCHEMA)


class Pipeline:
    """
    Wires the coordinator, parser, classifier and checkpoint store together.

    Clients are created on demand from the configuration and share one
    transport and RateLimiter. Pass clients explicitly to substitute them.

    Example:
        >>> config = ArbitratorConfig(
        ...     quality_threshold=2, superiority_threshold=1, positive_domains={"cd02040"}
        ... )
        >>> with Pipeline(config) as pipeline:
        ...     result = pipeline.run(["P00459.1"], list_output=Path("positives.txt"))
    """

    def __init__(
        self,
        config: ArbitratorConfig,
        blast_client: SeedSearcher | None = None,
        cd_client: DomainSearcher | None = None,
        transport: NCBITransport | None = None,
    ):
        self.config = config
        self._transport = transport
        self._owns_transport = transport is None
        self._blast_client = blast_client
        self._cd_client = cd_client
        self.store = CheckpointStore(config.work_dir)
        self.parser = HitGroupParser()

    @property
    def transport(self) -> NCBITransport:
        if self._transport is None:
            self._transport = NCBITransport(
                limiter=RateLimiter(self.config.rate_limits),
                api_key=self.config.api_key,
                email=self.config.email,
            )
        return self._transport

    @property
    def blast_client(self) -> SeedSearcher:
        if self._blast_client is None:
            self._blast_client = BlastJobClient(
                self.transport,
                max_poll_attempts=self.config.max_poll_attempts,
                hit_list_size=self.config.hit_list_size,
            )
        return self._blast_client

    @property
    def cd_client(self) -> DomainSearcher:
        if self._cd_client is None:
            self._cd_client = CDSearchClient(
                self.transport, max_poll_attempts=self.config.max_poll_attempts
            )
        return self._cd_client

    def close(self) -> None:
        if self._owns_transport and self._transport is not None:
            self._transport.close()
            self._transport = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _iter_groups(self, coordinator: BlastCoordinator, seeds: list[str]) -> Iterator[SynonymousGroup]:
        for seed in seeds:
            yield from self.parser.parse_file(coordinator.result_path(seed))

    def run(
        self,
        seeds: Iterable[str],
        *,
        list_output: Path | None = None,
        ignore_files: Iterable[Path] = (),
        records_dir: Path | None = None,
        failures_output: Path | None = None,
        report: Path | None = None,
        on_seed_done: Callable[[str, bool], None] | None = None,
    ) -> PipelineResult:
        """
        Screen seeds and write the requested outputs.

        Args:
            seeds: Seed identifiers (duplicates collapsed, sorted)
            list_output: File for the positive identifier list
            ignore_files: Lists or flat files of identifiers treated as
                known positives and left out of the list output
            records_dir: Directory for GenPept records of the positives
            failures_output: File listing positives whose record could not
                be retrieved
            report: Call report path (.csv or .parquet)
            on_seed_done: Called with (seed, success) as each first-stage
                search finishes

        Returns:
            PipelineResult

        Raises:
            RemoteJobFailure: If a confirmation job fails
            ClassificationError: If checkpoints or ignore files conflict
        """
        if self.config.no_recovery:
            self.store.clear()

        ignore = load_ignore_identifiers(ignore_files)

        coordinator = BlastCoordinator(
            self.config.work_dir,
            self.blast_client,
            expect=self.config.expect,
            max_workers=self.config.max_workers,
            on_seed_done=on_seed_done,
        )
        coordinator_report = coordinator.run_all(seeds)
        if coordinator_report.failed:
            logger.error(
                "%d seed(s) have no first-stage result and are left out of this run: %s",
                len(coordinator_report.failed),
                ", ".join(sorted(coordinator_report.failed)),
            )

        call_set = self.store.load()
        classifier = BatchClassifier(
            self.config, self.cd_client, self.store, call_set=call_set, ignore=ignore
        )
        records = classifier.classify_groups(self._iter_groups(coordinator, coordinator_report.cached))

        positives = sorted(call_set.positive - ignore)
        if list_output is not None:
            write_identifier_list(list_output, positives)
            logger.info("Wrote %d positive identifiers to %s", len(positives), list_output)

        fetch_report: FetchReport | None = None
        if records_dir is not None:
            fetcher = EntrezRecordFetcher(self.transport, records_dir)
            fetch_report = fetcher.fetch_all(positives)
            if failures_output is not None:
                write_identifier_list(failures_output, fetch_report.failed_identifiers)

        if report is not None:
            write_dataframe(build_call_report(records), report, output_format_for(report))
            logger.info("Wrote call report for %d groups to %s", len(records), report)

        return PipelineResult(
            coordinator=coordinator_report,
            call_set=call_set,
            records=records,
            positives=positives,
            fetch=fetch_report,
        )

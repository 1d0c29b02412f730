"""
Concurrent first-stage search coordination.

Every seed needs one BLASTP result document in the work directory. Seeds
that already have one are skipped; the rest are searched concurrently, one
worker per seed, and the coordinator returns once every search has either
been written to disk or failed. A failing seed never cancels its siblings.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import httpx

from arbitrator.core.constants import RESULT_FILE_PREFIX
from arbitrator.core.exceptions import ArbitratorError, ErrorKind
from arbitrator.core.io_utils import write_text_atomic

logger = logging.getLogger(__name__)

# Failures confined to one seed. Other kinds stop the whole pass.
PER_SEED_ERROR_KINDS = frozenset(
    {ErrorKind.TRANSPORT, ErrorKind.PROTOCOL_FORMAT, ErrorKind.REMOTE_JOB}
)


class SeedSearcher(Protocol):
    """Anything that runs a first-stage search for one seed."""

    def search(self, seed: str, expect: float) -> str: ...


@dataclass
class CoordinatorReport:
    """Outcome of one coordinator pass.

    Attributes:
        completed: Seeds searched and cached in this pass
        skipped: Seeds that already had a valid cached result
        failed: Seed -> error message for searches that did not complete
    """

    completed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def cached(self) -> list[str]:
        """Seeds with a result document on disk after the pass."""
        return sorted(self.completed + self.skipped)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class BlastCoordinator:
    """
    Fans out first-stage searches over a thread pool.

    Results are cached at ``<work_dir>/blast_hits_<seed>``. All workers share
    the client, and through it the transport's RateLimiter, which keeps the
    combined request rate within NCBI limits.
    """

    def __init__(
        self,
        work_dir: Path,
        client: SeedSearcher,
        expect: float,
        max_workers: int | None = None,
        on_seed_done: Callable[[str, bool], None] | None = None,
    ):
        """
        Args:
            work_dir: Directory holding cached result documents.
            client: First-stage search client.
            expect: Expect value cutoff for the searches.
            max_workers: Upper bound on concurrent searches. Defaults to one
                worker per pending seed.
            on_seed_done: Called with (seed, success) as each search finishes.
        """
        self.work_dir = work_dir
        self.client = client
        self.expect = expect
        self.max_workers = max_workers
        self.on_seed_done = on_seed_done

    def result_path(self, seed: str) -> Path:
        return self.work_dir / f"{RESULT_FILE_PREFIX}{seed}"

    def has_valid_result(self, seed: str) -> bool:
        """
        True if the seed's cached document is readable and non-empty.

        An empty or unreadable cache file is removed so the seed is searched
        again.
        """
        path = self.result_path(seed)
        if not path.exists():
            return False
        try:
            with path.open() as handle:
                valid = bool(handle.read(1))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cached result %s is unreadable (%s); searching again", path, e)
            valid = False
        if not valid:
            logger.warning("Discarding invalid cached result %s", path)
            path.unlink(missing_ok=True)
        return valid

    def _record_failure(
        self, report: CoordinatorReport, seed: str, error: Exception, recoverable: bool
    ) -> None:
        if recoverable:
            logger.warning(
                "First-stage search for %s failed: %s; it is retried on the next run", seed, error
            )
        else:
            logger.error("First-stage search for %s failed: %s", seed, error)
        report.failed[seed] = str(error)

    def _search_and_cache(self, seed: str) -> Path:
        document = self.client.search(seed, self.expect)
        path = self.result_path(seed)
        write_text_atomic(path, document)
        return path

    def run_all(self, seeds: Iterable[str]) -> CoordinatorReport:
        """
        Ensure every seed has a cached result document.

        Args:
            seeds: Seed identifiers

        Returns:
            CoordinatorReport listing completed, skipped and failed seeds
        """
        report = CoordinatorReport()
        pending: list[str] = []
        for seed in sorted(set(seeds)):
            if self.has_valid_result(seed):
                report.skipped.append(seed)
            else:
                pending.append(seed)

        logger.info(
            "First-stage searches: %d cached, %d to run", len(report.skipped), len(pending)
        )
        if not pending:
            return report

        self.work_dir.mkdir(parents=True, exist_ok=True)
        workers = len(pending)
        if self.max_workers is not None:
            workers = min(workers, self.max_workers)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="blast") as executor:
            futures = {executor.submit(self._search_and_cache, seed): seed for seed in pending}
            for future in as_completed(futures):
                seed = futures[future]
                try:
                    path = future.result()
                except ArbitratorError as e:
                    if e.kind not in PER_SEED_ERROR_KINDS:
                        raise
                    self._record_failure(report, seed, e, e.recoverable)
                    success = False
                except (httpx.HTTPError, OSError) as e:
                    self._record_failure(report, seed, e, recoverable=True)
                    success = False
                else:
                    logger.info("Cached first-stage result for %s at %s", seed, path)
                    report.completed.append(seed)
                    success = True
                if self.on_seed_done is not None:
                    self.on_seed_done(seed, success)

        report.completed.sort()
        return report

"""
Shared pytest fixtures for arbitrator tests.

Provides canned NCBI responses, document builders, a controllable clock
and in-memory stand-ins for the remote search clients.
"""

from __future__ import annotations

import tempfile
from collections.abc import Sequence
from pathlib import Path

import pytest

from arbitrator.core.constants import EXPECTED_FIELDS_HEADER
from arbitrator.models.config import ArbitratorConfig

# =============================================================================
# Document Builders
# =============================================================================


def blast_line(seed: str, subject: str, evalue: str = "1e-100") -> str:
    """One 13-column tabular BLASTP line."""
    return "\t".join(
        [seed, subject, "98.5", "290", "4", "0", "1", "290", "1", "290", evalue, "500", "99.0"]
    )


def blast_document(seed: str, subjects: Sequence[str], header: str = EXPECTED_FIELDS_HEADER) -> str:
    """Tabular BLASTP result page for one seed."""
    lines = [
        "# blastp",
        f"# Query: {seed}",
        "# Database: nr",
        header,
        f"# {len(subjects)} hits found",
    ]
    lines.extend(blast_line(seed, subject, f"1e-{100 - i}") for i, subject in enumerate(subjects))
    return "\n".join(lines) + "\n"


def cdsearch_header(cdsid: str = "QM3-qcdsearch-ABC123", status: int = 0) -> str:
    """Header block of a Batch CD-Search response."""
    message = "Job is still running" if status == 3 else "Job completed"
    return (
        "#Batch CD-search tool\tNIH/NLM/NCBI\n"
        f"#cdsid\t{cdsid}\n"
        "#datatype\thits Concise data\n"
        f"#status\t{status}\tmsg\t{message}\n"
    )


def cdsearch_hits(
    hits: Sequence[tuple[int, str, str, str, float]],
    cdsid: str = "QM3-qcdsearch-ABC123",
) -> str:
    """Batch CD-Search hits table.

    Args:
        hits: (query_index, query_id, hit_type, accession, evalue) per row
    """
    lines = [
        cdsearch_header(cdsid, 0).rstrip("\n"),
        "",
        "Query\tHit type\tPSSM-ID\tFrom\tTo\tE-Value\tBitscore\tAccession\tShort name\tIncomplete\tSuperfamily",
    ]
    for index, query_id, hit_type, accession, evalue in hits:
        lines.append(
            f"Q#{index} - >{query_id}\t{hit_type}\t238123\t1\t250\t{evalue:g}\t300.5\t"
            f"{accession}\tDomain\t-\tcl21455"
        )
    return "\n".join(lines) + "\n"


# =============================================================================
# Fakes
# =============================================================================


class FakeClock:
    """Monotonic clock that only advances when slept on."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBlastClient:
    """First-stage searcher returning canned documents."""

    def __init__(self, documents: dict[str, str], failures: dict[str, Exception] | None = None):
        self.documents = documents
        self.failures = failures or {}
        self.calls: list[tuple[str, float]] = []

    def search(self, seed: str, expect: float) -> str:
        self.calls.append((seed, expect))
        if seed in self.failures:
            raise self.failures[seed]
        return self.documents[seed]


class FakeCDSearchClient:
    """Confirmation searcher answering from per-identifier domain hits.

    Args:
        domain_hits: identifier -> [(hit_type, accession, evalue), ...] in rank order
    """

    def __init__(self, domain_hits: dict[str, list[tuple[str, str, float]]]):
        self.domain_hits = domain_hits
        self.batches: list[list[str]] = []
        self.fail_with: Exception | None = None
        # Batches answered before fail_with is raised
        self.fail_after = 0

    def search_batch(self, queries: Sequence[str]) -> str:
        self.batches.append(list(queries))
        if self.fail_with is not None and len(self.batches) > self.fail_after:
            raise self.fail_with
        rows = []
        for index, query in enumerate(queries, start=1):
            for hit_type, accession, evalue in self.domain_hits.get(query, []):
                rows.append((index, query, hit_type, accession, evalue))
        return cdsearch_hits(rows)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Path:
    """Temporary directory that is cleaned up after tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def work_dir(temp_dir: Path) -> Path:
    path = temp_dir / "work"
    path.mkdir()
    return path


@pytest.fixture
def config(work_dir: Path) -> ArbitratorConfig:
    """Screening configuration with small batches for tests."""
    return ArbitratorConfig(
        quality_threshold=2,
        superiority_threshold=1,
        positive_domains={"cd02040"},
        uninformative_domains={"cd02117"},
        batch_size=2,
        work_dir=work_dir,
    )


@pytest.fixture
def blast_result_text() -> str:
    """Realistic tabular BLASTP page for seed P00459.1."""
    return blast_document("P00459.1", ["WP_000001.1", "WP_000002.1", "WP_000003.1"])


@pytest.fixture
def qblast_submit_response() -> str:
    """Submission page carrying a QBlastInfo block."""
    return (
        "<html><body>\n"
        "<!--QBlastInfoBegin\n"
        "    RID = M7X1Z2ZB016\n"
        "    RTOE = 16\n"
        "QBlastInfoEnd\n"
        "-->\n"
        "</body></html>\n"
    )


@pytest.fixture
def make_blast_document():
    """Builder for tabular BLASTP pages: (seed, subjects, header=...) -> str."""
    return blast_document


@pytest.fixture
def make_cdsearch_hits():
    """Builder for CD-Search hit tables: ([(index, id, type, acc, evalue)]) -> str."""
    return cdsearch_hits


@pytest.fixture
def make_cdsearch_header():
    """Builder for CD-Search response headers: (cdsid, status) -> str."""
    return cdsearch_header


@pytest.fixture
def fake_blast_client():
    """Factory for FakeBlastClient(documents, failures=None)."""
    return FakeBlastClient


@pytest.fixture
def fake_cd_client():
    """Factory for FakeCDSearchClient(domain_hits)."""
    return FakeCDSearchClient

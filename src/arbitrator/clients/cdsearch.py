"""
Client for NCBI Batch CD-Search.

Submission and status responses start with a short header, e.g.:

    #Batch CD-search tool	NIH/NLM/NCBI
    #cdsid	QM3-qcdsearch-1314A4F913A52A2A-39B47A831E03737B
    #datatype	hits Concise data
    #status	3	msg	Job is still running

Status 0 means results are ready, 3 means the job is still running; any
other code is an error that does not clear within a run.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from arbitrator.clients.base import AsyncJobClient
from arbitrator.clients.transport import NCBITransport
from arbitrator.core.constants import (
    CD_SEARCH_EVALUE,
    CD_SEARCH_MAX_HITS,
    CD_SEARCH_STATUS_READY,
    CD_SEARCH_STATUS_RUNNING,
    CD_SEARCH_URL,
    DEFAULT_MAX_POLL_ATTEMPTS,
)
from arbitrator.core.exceptions import ProtocolFormatError
from arbitrator.models.jobs import JobHandle, JobStatus, ServiceClass

logger = logging.getLogger(__name__)

_FIRST_INT = re.compile(r"-?\d+")


def parse_cdsearch_header(response: str) -> tuple[str, int]:
    """
    Read the job id and status code from a CD-Search response header.

    Returns:
        Tuple of (cdsid, status_code)

    Raises:
        ProtocolFormatError: If the #cdsid or #status line is missing
    """
    cdsid: str | None = None
    status: int | None = None
    for raw in response.splitlines():
        line = raw.strip()
        if not line:
            continue
        if not line.startswith("#"):
            break
        if line.startswith("#cdsid"):
            cdsid = line[len("#cdsid"):].strip()
        elif line.startswith("#status"):
            match = _FIRST_INT.search(line[len("#status"):])
            if match is not None:
                status = int(match.group())

    if not cdsid:
        raise ProtocolFormatError("CD-Search", "expected a #cdsid line", response)
    if status is None:
        raise ProtocolFormatError("CD-Search", "expected a #status line", response)
    return cdsid, status


def build_batch_params(queries: Sequence[str]) -> dict[str, str]:
    """Submission parameters for a batch of protein identifiers."""
    return {
        "queries": "\n".join(queries),
        "useid1": "true",
        "tdata": "hits",
        "db": "cdd",
        "evalue": str(CD_SEARCH_EVALUE),
        "dmode": "all",
        "maxhit": str(CD_SEARCH_MAX_HITS),
    }


class CDSearchClient(AsyncJobClient):
    """Submit/poll/fetch client for confirmation domain searches."""

    service_name = "CD-Search"

    def __init__(
        self,
        transport: NCBITransport,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    ):
        super().__init__(transport, max_poll_attempts)
        self._last_status: dict[str, int] = {}

    def search_batch(self, queries: Sequence[str]) -> str:
        """Run one Batch CD-Search job and return the hits table."""
        return self.run(build_batch_params(queries))

    def submit(self, params: dict[str, str]) -> JobHandle:
        response = self.transport.get(CD_SEARCH_URL, params, ServiceClass.PRIMARY_SEARCH)
        cdsid, status = parse_cdsearch_header(response)
        self._last_status[cdsid] = status
        logger.info(
            "Submitted CD-Search batch of %d queries: cdsid %s (status %d)",
            params.get("queries", "").count("\n") + 1,
            cdsid,
            status,
        )
        return JobHandle(job_id=cdsid, status_code=status)

    def poll(self, handle: JobHandle) -> JobStatus:
        response = self.transport.get(
            CD_SEARCH_URL, {"cdsid": handle.job_id}, ServiceClass.CONFIRMATION_POLL
        )
        _, status = parse_cdsearch_header(response)
        self._last_status[handle.job_id] = status
        if status == CD_SEARCH_STATUS_READY:
            return JobStatus.READY
        if status == CD_SEARCH_STATUS_RUNNING:
            return JobStatus.PENDING
        logger.error("CD-Search job %s failed with status code %d", handle.job_id, status)
        return JobStatus.FAILED

    def fetch(self, handle: JobHandle) -> str:
        self._last_status.pop(handle.job_id, None)
        return self.transport.get(
            CD_SEARCH_URL,
            {"cdsid": handle.job_id, "tdata": "hits"},
            ServiceClass.PRIMARY_SEARCH,
        )

    def failure_status(self, handle: JobHandle) -> int | None:
        return self._last_status.pop(handle.job_id, handle.status_code)

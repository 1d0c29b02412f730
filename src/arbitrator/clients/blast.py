"""
Client for the NCBI BLAST URL API (QBlast).

A BLASTP search against nr is started with CMD=Put. The response carries a
QBlastInfo block with the request id (RID) and the estimated time of
execution (RTOE). Results are retrieved with CMD=Get as tabular text; the
page is complete once it contains a "# Query:" header line.
"""

from __future__ import annotations

import logging
import re
import threading

from arbitrator.clients.base import AsyncJobClient
from arbitrator.clients.transport import NCBITransport
from arbitrator.core.constants import (
    BLAST_RESULTS_READY_MARKER,
    BLAST_URL,
    DEFAULT_HIT_LIST_SIZE,
    DEFAULT_MAX_POLL_ATTEMPTS,
    QBLAST_INFO_BEGIN,
    QBLAST_INFO_END,
)
from arbitrator.core.exceptions import ProtocolFormatError
from arbitrator.models.jobs import JobHandle, JobStatus, ServiceClass

logger = logging.getLogger(__name__)

RID_PATTERN = re.compile(r"\bRID[ \t]*=[ \t]*(\w+)\b", re.IGNORECASE)
RTOE_PATTERN = re.compile(r"\bRTOE[ \t]*=[ \t]*(\d+)\b", re.IGNORECASE)
FAILED_STATUS_PATTERN = re.compile(r"\bStatus\s*=\s*(FAILED|UNKNOWN)\b", re.IGNORECASE)


def parse_qblast_info(response: str) -> JobHandle:
    """
    Extract RID and RTOE from a submission response.

    The values sit between QBlastInfoBegin and QBlastInfoEnd, e.g.:

        <!--QBlastInfoBegin
            RID = M7X1Z2ZB016
            RTOE = 16
        QBlastInfoEnd
        -->

    Raises:
        ProtocolFormatError: If the block, RID or RTOE is missing. NCBI
            leaves them blank when it refuses a request.
    """
    begin = response.find(QBLAST_INFO_BEGIN)
    if begin < 0:
        raise ProtocolFormatError("BLAST", "no QBlastInfo block in submission response", response)
    end = response.find(QBLAST_INFO_END, begin)
    block = response[begin:end] if end >= 0 else response[begin:]

    rid_match = RID_PATTERN.search(block)
    if rid_match is None:
        raise ProtocolFormatError("BLAST", "missing RID in QBlastInfo block", block)
    rtoe_match = RTOE_PATTERN.search(block)
    if rtoe_match is None:
        raise ProtocolFormatError("BLAST", "missing RTOE in QBlastInfo block", block)

    return JobHandle(job_id=rid_match.group(1), estimated_wait_seconds=int(rtoe_match.group(1)))


def build_search_params(seed: str, expect: float, hit_list_size: int = DEFAULT_HIT_LIST_SIZE) -> dict[str, str]:
    """Submission parameters for a BLASTP search of one seed against nr."""
    size = str(hit_list_size)
    return {
        "CMD": "Put",
        "PROGRAM": "blastp",
        "DATABASE": "nr",
        "QUERY": seed,
        "EXPECT": repr(expect),
        "HITLIST_SIZE": size,
        "DESCRIPTIONS": size,
        "ALIGNMENTS": size,
    }


class BlastJobClient(AsyncJobClient):
    """
    Submit/poll/fetch client for first-stage BLASTP searches.

    Safe to share between coordinator worker threads. A tabular page seen
    complete while polling is kept and handed out by fetch, so a ready job
    is not downloaded twice.
    """

    service_name = "BLAST"

    def __init__(
        self,
        transport: NCBITransport,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        hit_list_size: int = DEFAULT_HIT_LIST_SIZE,
    ):
        super().__init__(transport, max_poll_attempts)
        self.hit_list_size = hit_list_size
        self._ready_pages: dict[str, str] = {}
        self._pages_lock = threading.Lock()

    def search(self, seed: str, expect: float) -> str:
        """Run a full BLASTP search for one seed and return the tabular result."""
        return self.run(build_search_params(seed, expect, self.hit_list_size))

    def submit(self, params: dict[str, str]) -> JobHandle:
        response = self.transport.get(BLAST_URL, params, ServiceClass.PRIMARY_SEARCH)
        handle = parse_qblast_info(response)
        logger.info(
            "Submitted BLAST search for %s: RID %s, estimated %ds",
            params.get("QUERY", "?"),
            handle.job_id,
            handle.estimated_wait_seconds,
        )
        return handle

    def _result_params(self, handle: JobHandle) -> dict[str, str]:
        size = str(self.hit_list_size)
        return {
            "CMD": "Get",
            "RID": handle.job_id,
            "DESCRIPTIONS": size,
            "ALIGNMENTS": size,
            "ALIGNMENT_VIEW": "Tabular",
            "FORMAT_TYPE": "Text",
        }

    def poll(self, handle: JobHandle) -> JobStatus:
        page = self.transport.get(
            BLAST_URL, self._result_params(handle), ServiceClass.CONFIRMATION_POLL
        )
        if BLAST_RESULTS_READY_MARKER in page:
            with self._pages_lock:
                self._ready_pages[handle.job_id] = page
            return JobStatus.READY
        if FAILED_STATUS_PATTERN.search(page):
            logger.warning("BLAST reports RID %s as failed or unknown", handle.job_id)
            return JobStatus.FAILED
        return JobStatus.PENDING

    def fetch(self, handle: JobHandle) -> str:
        with self._pages_lock:
            page = self._ready_pages.pop(handle.job_id, None)
        if page is not None:
            return page
        page = self.transport.get(
            BLAST_URL, self._result_params(handle), ServiceClass.PRIMARY_SEARCH
        )
        if BLAST_RESULTS_READY_MARKER not in page:
            raise ProtocolFormatError(
                "BLAST", f"result page for RID {handle.job_id} has no query header", page
            )
        return page

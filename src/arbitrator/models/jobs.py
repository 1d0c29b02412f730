"""
Data models for remote asynchronous search jobs.

A job moves through SUBMITTED -> PENDING -> READY, or ends in FAILED.
The JobHandle returned on submission is only used by the polling loop of
the same job and is discarded once results are fetched.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ServiceClass(str, Enum):
    """Classes of outbound requests, each with its own pacing policy."""

    PRIMARY_SEARCH = "primary_search"
    CONFIRMATION_POLL = "confirmation_poll"
    AUXILIARY_API = "auxiliary_api"


class JobStatus(str, Enum):
    """States of a remote asynchronous job."""

    SUBMITTED = "submitted"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class JobHandle:
    """Identifier and server-estimated wait for a submitted job.

    Attributes:
        job_id: Remote job identifier (BLAST RID or CD-Search cdsid)
        estimated_wait_seconds: Server estimate of time to completion
        status_code: Last status code reported by a status-coded service
    """

    job_id: str
    estimated_wait_seconds: int = 0
    status_code: int | None = None

    def __str__(self) -> str:
        return f"job_id={self.job_id} estimated_wait={self.estimated_wait_seconds}s"

"""
Base class for asynchronous NCBI search jobs.

Remote searches follow the same submit, poll, fetch protocol: one request
starts the job, repeated status requests wait for it, and one final request
retrieves the result. Subclasses implement the three requests; the base
class owns the polling loop and its attempt ceiling.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from arbitrator.clients.transport import NCBITransport
from arbitrator.core.constants import DEFAULT_MAX_POLL_ATTEMPTS
from arbitrator.core.exceptions import RemoteJobFailure, StuckJobError
from arbitrator.models.jobs import JobHandle, JobStatus

logger = logging.getLogger(__name__)


class AsyncJobClient(ABC):
    """
    Abstract client for a remote asynchronous search service.

    Each request is paced by the transport's RateLimiter: submissions and
    result fetches as primary search requests, status checks as
    confirmation polls.
    """

    service_name: str = "remote"

    def __init__(
        self,
        transport: NCBITransport,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    ):
        self.transport = transport
        self.max_poll_attempts = max_poll_attempts

    @abstractmethod
    def submit(self, params: dict[str, str]) -> JobHandle:
        """Start a job and return its handle."""

    @abstractmethod
    def poll(self, handle: JobHandle) -> JobStatus:
        """Check a submitted job once."""

    @abstractmethod
    def fetch(self, handle: JobHandle) -> str:
        """Retrieve the result document of a ready job."""

    def run(self, params: dict[str, str]) -> str:
        """
        Submit a job, wait until it is ready and return its result.

        Args:
            params: Service-specific submission parameters

        Returns:
            Raw result document

        Raises:
            RemoteJobFailure: If the service reports the job as failed
            StuckJobError: If the job is still pending after max_poll_attempts
            ProtocolFormatError: If a response lacks expected markers
            TransportFailure: If a request fails after retries
        """
        handle = self.submit(params)
        logger.debug("%s job submitted: %s", self.service_name, handle)

        for attempt in range(1, self.max_poll_attempts + 1):
            status = self.poll(handle)
            if status == JobStatus.READY:
                logger.debug(
                    "%s job %s ready after %d poll(s)", self.service_name, handle.job_id, attempt
                )
                return self.fetch(handle)
            if status == JobStatus.FAILED:
                raise RemoteJobFailure(
                    self.service_name, handle.job_id, self.failure_status(handle)
                )
            logger.debug(
                "%s job %s pending (poll %d/%d)",
                self.service_name,
                handle.job_id,
                attempt,
                self.max_poll_attempts,
            )

        raise StuckJobError(self.service_name, handle.job_id, self.max_poll_attempts)

    def failure_status(self, handle: JobHandle) -> int | None:
        """Status code reported for a failed job, if the service has one."""
        return handle.status_code

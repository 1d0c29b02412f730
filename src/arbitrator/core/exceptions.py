"""
Custom exceptions with actionable guidance.

Every failure mode of the screening pipeline maps to one exception class
tagged with an ErrorKind, so call sites can decide locally which kinds are
recoverable (skip the unit, restart the process) and which are fatal.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories used to decide recovery at call sites."""

    TRANSPORT = "transport"
    PROTOCOL_FORMAT = "protocol_format"
    REMOTE_JOB = "remote_job"
    MALFORMED_RECORD = "malformed_record"
    CLASSIFICATION = "classification"
    CONFIGURATION = "configuration"
    CONVERSION = "conversion"


class ConversionFailure(str, Enum):
    """Reasons a confirmed positive could not be turned into a stored record."""

    NO_INITIAL_RESPONSE = "no_initial_response"
    NO_ID_TAG_IN_INITIAL_RESPONSE = "no_id_tag_in_initial_response"
    NO_RECORD_PAGE = "no_record_page"
    RECORD_NOT_WRITTEN = "record_not_written"


class ArbitratorError(Exception):
    """Base exception for arbitrator errors."""

    kind: ErrorKind = ErrorKind.CONFIGURATION
    recoverable: bool = False

    def __init__(self, message: str, suggestion: str | None = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class TransportFailure(ArbitratorError):
    """Network or I/O failure talking to a remote service."""

    kind = ErrorKind.TRANSPORT
    recoverable = True

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        suggestion = "Check your internet connection and rerun; completed work is resumed."
        if status_code == 414:
            suggestion = (
                "The request URL was too long. Lower the confirmation batch size "
                "(--batch-size) so fewer identifiers are sent per request."
            )
        elif status_code == 429:
            suggestion = "Rate limited by NCBI. Wait a few minutes and rerun."
        elif status_code and status_code >= 500:
            suggestion = "NCBI server error. Try again later; completed work is resumed."

        super().__init__(message=message, suggestion=suggestion)


class ProtocolFormatError(ArbitratorError):
    """Raised when a remote response lacks the markers the protocol expects."""

    kind = ErrorKind.PROTOCOL_FORMAT
    recoverable = True

    def __init__(self, service: str, detail: str, excerpt: str = ""):
        self.service = service
        self.detail = detail
        message = f"Unexpected {service} response: {detail}"
        if excerpt:
            message = f"{message}\n  Response began with: {excerpt[:200]!r}"
        super().__init__(
            message=message,
            suggestion=(
                "NCBI may have refused the request (too frequent requests) or "
                "changed its response format. Rerun later; if it persists, "
                "inspect the response with --verbose."
            ),
        )


class RemoteJobFailure(ArbitratorError):
    """Raised when a remote job reports an error status."""

    kind = ErrorKind.REMOTE_JOB
    recoverable = False

    def __init__(self, service: str, job_id: str, status_code: int | None = None):
        self.service = service
        self.job_id = job_id
        self.status_code = status_code
        status = f" with status code {status_code}" if status_code is not None else ""
        super().__init__(
            message=f"{service} job {job_id} failed{status}",
            suggestion=(
                "The remote service is in an error state that does not clear "
                "within a run. Rerun later; checkpointed calls are kept."
            ),
        )


class StuckJobError(RemoteJobFailure):
    """Raised when a job is still pending after the maximum number of polls."""

    recoverable = True

    def __init__(self, service: str, job_id: str, attempts: int):
        self.service = service
        self.job_id = job_id
        self.status_code = None
        self.attempts = attempts
        ArbitratorError.__init__(
            self,
            message=f"{service} job {job_id} still pending after {attempts} polls",
            suggestion=(
                "Increase max_poll_attempts in the configuration or rerun; "
                "seeds with cached results are not searched again."
            ),
        )


class MalformedRecord(ArbitratorError):
    """Raised when a single hit line cannot be parsed."""

    kind = ErrorKind.MALFORMED_RECORD
    recoverable = True

    def __init__(self, line: str, reason: str, source: str | None = None):
        self.line = line
        self.reason = reason
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(
            message=f"Malformed hit line{where} ({reason}): {line.strip()[:200]}",
            suggestion=(
                "Truncated lines are occasionally returned by NCBI. If this "
                "was the last line of the file, later lines may be lost; "
                "delete the cached result to search the seed again."
            ),
        )


class ClassificationError(ArbitratorError):
    """Raised when a call would break write-once or disjointness rules."""

    kind = ErrorKind.CLASSIFICATION


class ConfigurationError(ArbitratorError):
    """Raised when configuration is invalid."""

    kind = ErrorKind.CONFIGURATION


class InvalidDomainError(ConfigurationError):
    """Raised when a domain accession is not an NCBI-curated CDD domain."""

    def __init__(self, accession: str):
        self.accession = accession
        super().__init__(
            message=f"Only NCBI-curated domains are allowed: '{accession}' does not begin with 'cd'",
            suggestion="Use CDD accessions such as cd02040 for positive and uninformative domains.",
        )


class ConversionError(ArbitratorError):
    """Raised when a confirmed positive cannot be converted to a stored record."""

    kind = ErrorKind.CONVERSION
    recoverable = True

    def __init__(self, identifier: str, reason: ConversionFailure):
        self.identifier = identifier
        self.reason = reason
        super().__init__(
            message=f"Could not retrieve record for {identifier}: {reason.value}",
            suggestion="Rerun to retry failed records; existing records are reused.",
        )

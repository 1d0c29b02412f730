"""
Rate-limited HTTP transport for NCBI services.

Every request passes through the shared RateLimiter before it is sent, and
transient failures (5xx, 429, connection errors) are retried with
exponential backoff. Responses are returned as text; protocol parsing is
left to the job clients.
"""

from __future__ import annotations

import logging
import time
from typing import Self

import httpx

from arbitrator.core.constants import EUTILS_BASE_URL, NCBI_TOOL_NAME
from arbitrator.core.exceptions import TransportFailure
from arbitrator.core.rate_limiter import RateLimiter
from arbitrator.models.jobs import ServiceClass

logger = logging.getLogger(__name__)

# Retry configuration defaults
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 5.0  # seconds
DEFAULT_RETRY_BACKOFF = 2.0  # exponential multiplier


class NCBITransport:
    """HTTP client shared by all NCBI job clients of a run.

    Attaches the ``tool`` and ``email`` parameters NCBI asks for on every
    request. The API key is only sent to E-utilities, the one service that
    honours it.

    Attributes:
        limiter: Shared request pacer
        api_key: NCBI API key, if any
        email: Contact address sent with each request
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        limiter: RateLimiter | None = None,
        api_key: str | None = None,
        email: str | None = None,
        timeout: float = 120.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
    ):
        """Initialize transport.

        Args:
            limiter: Shared RateLimiter. A new one with NCBI defaults if None.
            api_key: NCBI API key (E-utilities only).
            email: Contact email sent to NCBI.
            timeout: Request timeout in seconds.
            max_retries: Maximum retry attempts for transient failures.
            retry_delay: Initial delay between retries in seconds.
            retry_backoff: Exponential backoff multiplier for retries.
        """
        self.limiter = limiter or RateLimiter()
        self.api_key = api_key
        self.email = email
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.retry_backoff = retry_backoff
        self._client: httpx.Client | None = None

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": f"{NCBI_TOOL_NAME} (+httpx)"},
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def build_params(self, url: str, params: dict[str, str]) -> dict[str, str]:
        """Add tool, email and (for E-utilities) api_key to request parameters."""
        full = dict(params)
        full["tool"] = NCBI_TOOL_NAME
        if self.email:
            full["email"] = self.email
        if self.api_key and url.startswith(EUTILS_BASE_URL):
            full["api_key"] = self.api_key
        return full

    def get(self, url: str, params: dict[str, str], service_class: ServiceClass) -> str:
        """Make a rate-limited GET request with retry logic.

        Implements exponential backoff for transient failures (5xx errors,
        connection errors, rate limiting). Each attempt, retries included,
        waits on the rate limiter first.

        Args:
            url: Service URL
            params: Query parameters
            service_class: Pacing class of the request

        Returns:
            Response body as text

        Raises:
            TransportFailure: If the request fails after all retries or with
                a non-retryable client error
        """
        client = self._get_client()
        full_params = self.build_params(url, params)
        has_key = self.has_api_key and service_class == ServiceClass.AUXILIARY_API
        last_exception: Exception | None = None
        delay = self.retry_delay

        for attempt in range(self.max_retries + 1):
            self.limiter.wait_before_request(service_class, has_key)
            try:
                response = client.get(url, params=full_params)
                response.raise_for_status()
                return response.text

            except httpx.HTTPStatusError as e:
                last_exception = e
                status_code = e.response.status_code

                # Don't retry client errors (4xx) except rate limiting (429)
                if 400 <= status_code < 500 and status_code != 429:
                    raise TransportFailure(
                        f"NCBI request to {url} failed: {status_code}",
                        status_code=status_code,
                    ) from e

                if status_code == 429:
                    retry_after = e.response.headers.get("Retry-After")
                    if retry_after:
                        try:
                            delay = float(retry_after)
                        except ValueError:
                            logger.debug("Ignoring non-numeric Retry-After: %s", retry_after)

                if attempt < self.max_retries:
                    logger.warning(
                        "NCBI request failed (attempt %d/%d): %s. Retrying in %.1fs...",
                        attempt + 1,
                        self.max_retries + 1,
                        status_code,
                        delay,
                    )
                    time.sleep(delay)
                    delay *= self.retry_backoff

            except httpx.RequestError as e:
                last_exception = e
                if attempt < self.max_retries:
                    logger.warning(
                        "NCBI connection error (attempt %d/%d): %s. Retrying in %.1fs...",
                        attempt + 1,
                        self.max_retries + 1,
                        str(e),
                        delay,
                    )
                    time.sleep(delay)
                    delay *= self.retry_backoff

        # All retries exhausted
        if isinstance(last_exception, httpx.HTTPStatusError):
            raise TransportFailure(
                f"NCBI request to {url} failed after {self.max_retries + 1} attempts: "
                f"{last_exception.response.status_code}",
                status_code=last_exception.response.status_code,
            ) from last_exception
        raise TransportFailure(
            f"NCBI request to {url} failed after {self.max_retries + 1} attempts: "
            f"{last_exception}"
        ) from last_exception

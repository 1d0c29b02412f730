"""
Request pacing for NCBI services.

NCBI throttles or blocks clients that exceed its published request rates, so
every outbound request first waits on a shared RateLimiter. The limiter
keeps one last-request timestamp and one lock per service class; callers of
a class are serialized on its lock, which is held across the wait.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from arbitrator.models.config import RateLimitPolicy
from arbitrator.models.jobs import ServiceClass

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforces minimum intervals between requests of each service class.

    Shared by all worker threads of a run. The first request of a class is
    never delayed; later requests sleep only for the remaining part of the
    interval since the previous request of the same class.

    Example:
        >>> limiter = RateLimiter(RateLimitPolicy())
        >>> limiter.wait_before_request(ServiceClass.PRIMARY_SEARCH, has_key=False)
    """

    def __init__(
        self,
        policy: RateLimitPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            policy: Minimum intervals per service class. Defaults to NCBI limits.
            clock: Monotonic clock returning seconds.
            sleep: Function used to block the calling thread.
        """
        self.policy = policy or RateLimitPolicy()
        self._clock = clock
        self._sleep = sleep
        self._locks = {service_class: threading.Lock() for service_class in ServiceClass}
        self._last_request: dict[ServiceClass, float] = {}

    def wait_before_request(self, service_class: ServiceClass, has_key: bool = False) -> float:
        """
        Block until a request of the given class is allowed.

        The lock of the class is held while sleeping, so concurrent callers
        of one class are admitted one at a time and each sees the timestamp
        left by the previous one. Other classes are not held up.

        Args:
            service_class: Class of the request about to be sent.
            has_key: Whether an NCBI API key accompanies the request.

        Returns:
            Seconds spent waiting.
        """
        interval = self.policy.interval_seconds(service_class, has_key)
        with self._locks[service_class]:
            waited = 0.0
            last = self._last_request.get(service_class)
            if last is not None:
                remaining = last + interval - self._clock()
                if remaining > 0:
                    logger.debug(
                        "Waiting %.2fs before %s request", remaining, service_class.value
                    )
                    self._sleep(remaining)
                    waited = remaining
            now = self._clock()
            if last is not None and now < last:
                now = last
            self._last_request[service_class] = now
            return waited


"""Unit tests for request pacing."""

from __future__ import annotations

import threading
import time

import pytest

from arbitrator.core.rate_limiter import RateLimiter
from arbitrator.models.config import RateLimitPolicy
from arbitrator.models.jobs import ServiceClass


@pytest.fixture
def limiter(fake_clock):
    return RateLimiter(RateLimitPolicy(), clock=fake_clock, sleep=fake_clock.sleep)


class TestRateLimiter:
    """Tests driven by a fake clock."""

    def test_first_request_does_not_wait(self, limiter, fake_clock):
        assert limiter.wait_before_request(ServiceClass.PRIMARY_SEARCH) == 0.0
        assert fake_clock.sleeps == []

    def test_second_request_waits_full_interval(self, limiter, fake_clock):
        limiter.wait_before_request(ServiceClass.PRIMARY_SEARCH)
        waited = limiter.wait_before_request(ServiceClass.PRIMARY_SEARCH)
        assert waited == pytest.approx(5.0)
        assert fake_clock.sleeps == [pytest.approx(5.0)]

    def test_waits_only_remaining_interval(self, limiter, fake_clock):
        limiter.wait_before_request(ServiceClass.PRIMARY_SEARCH)
        fake_clock.advance(3.0)
        waited = limiter.wait_before_request(ServiceClass.PRIMARY_SEARCH)
        assert waited == pytest.approx(2.0)

    def test_no_wait_after_interval_elapsed(self, limiter, fake_clock):
        limiter.wait_before_request(ServiceClass.CONFIRMATION_POLL)
        fake_clock.advance(81.0)
        assert limiter.wait_before_request(ServiceClass.CONFIRMATION_POLL) == 0.0

    def test_service_classes_are_independent(self, limiter, fake_clock):
        """A poll right after a submission is not delayed by the submission."""
        limiter.wait_before_request(ServiceClass.PRIMARY_SEARCH)
        assert limiter.wait_before_request(ServiceClass.CONFIRMATION_POLL) == 0.0
        assert limiter.wait_before_request(ServiceClass.AUXILIARY_API) == 0.0

    def test_keyed_auxiliary_interval(self, limiter):
        limiter.wait_before_request(ServiceClass.AUXILIARY_API, has_key=True)
        waited = limiter.wait_before_request(ServiceClass.AUXILIARY_API, has_key=True)
        assert waited == pytest.approx(0.13)

    def test_unkeyed_auxiliary_interval(self, limiter):
        limiter.wait_before_request(ServiceClass.AUXILIARY_API)
        assert limiter.wait_before_request(ServiceClass.AUXILIARY_API) == pytest.approx(0.4)

    def test_sleeping_class_does_not_block_other_classes(self):
        """A caller waiting out a poll interval does not hold up submissions."""
        sleeping = threading.Event()
        release = threading.Event()

        def blocking_sleep(seconds):
            sleeping.set()
            release.wait(timeout=5)

        limiter = RateLimiter(RateLimitPolicy(), sleep=blocking_sleep)
        limiter.wait_before_request(ServiceClass.CONFIRMATION_POLL)
        poller = threading.Thread(
            target=limiter.wait_before_request, args=(ServiceClass.CONFIRMATION_POLL,)
        )
        submitter = threading.Thread(
            target=limiter.wait_before_request, args=(ServiceClass.PRIMARY_SEARCH,)
        )
        try:
            poller.start()
            assert sleeping.wait(timeout=5)
            submitter.start()
            submitter.join(timeout=1)
            assert not submitter.is_alive()
        finally:
            release.set()
            poller.join()
            submitter.join()


@pytest.mark.slow
class TestRateLimiterThreads:
    """Concurrent callers on a real clock."""

    def test_concurrent_requests_are_spaced(self):
        """Every pair of consecutive admissions is at least one interval apart."""
        interval = 0.1
        limiter = RateLimiter(RateLimitPolicy(primary_search_ms=int(interval * 1000)))
        stamps: list[float] = []
        waits: list[float] = []
        record_lock = threading.Lock()

        def worker():
            waited = limiter.wait_before_request(ServiceClass.PRIMARY_SEARCH)
            admitted = time.monotonic()
            with record_lock:
                stamps.append(admitted)
                waits.append(waited)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(stamps) == 5
        assert waits.count(0.0) >= 1
        stamps.sort()
        gaps = [later - earlier for earlier, later in zip(stamps, stamps[1:])]
        # Scheduling between admission and timestamp may shave a few milliseconds
        assert min(gaps) >= interval * 0.9

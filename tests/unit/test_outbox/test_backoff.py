"""Unit tests for the retry backoff policy."""

from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta

import pytest

from outbox_service.infra.events.outbox.backoff import BackoffPolicy

pytestmark = pytest.mark.unit


class TestDelay:
    """Tests for BackoffPolicy.delay()."""

    @pytest.mark.parametrize(
        ("attempt", "expected"),
        [(0, 1.0), (1, 2.0), (2, 4.0), (3, 8.0), (9, 512.0)],
    )
    def test_doubles_per_attempt(self, attempt: int, expected: float):
        assert BackoffPolicy(base_delay=1.0, cap_delay=900.0).delay(attempt) == expected

    def test_caps_at_maximum(self):
        policy = BackoffPolicy(base_delay=1.0, cap_delay=900.0)

        assert policy.delay(10) == 900.0
        assert policy.delay(50) == 900.0

    def test_huge_attempt_count_does_not_overflow(self):
        policy = BackoffPolicy(base_delay=1.0, cap_delay=900.0)

        assert policy.delay(10_000) == 900.0

    def test_jitter_stays_within_equal_jitter_bounds(self):
        policy = BackoffPolicy(base_delay=1.0, cap_delay=900.0, jitter=True, rng=random.Random(42))

        for attempt in range(1, 12):
            full = min(2.0**attempt, 900.0)
            delay = policy.delay(attempt)
            assert full / 2 <= delay <= full


class TestNextAttemptAt:
    """Tests for BackoffPolicy.next_attempt_at()."""

    def test_first_failure_waits_two_seconds(self):
        now = datetime(2025, 1, 1, tzinfo=UTC)

        assert BackoffPolicy().next_attempt_at(1, now) == now + timedelta(seconds=2)

    def test_never_exceeds_cap(self):
        now = datetime(2025, 1, 1, tzinfo=UTC)

        assert BackoffPolicy().next_attempt_at(30, now) == now + timedelta(minutes=15)


class TestValidation:
    """Tests for construction and exhaustion checks."""

    def test_rejects_non_positive_base(self):
        with pytest.raises(ValueError, match="base_delay"):
            BackoffPolicy(base_delay=0)

    def test_rejects_cap_below_base(self):
        with pytest.raises(ValueError, match="cap_delay"):
            BackoffPolicy(base_delay=10.0, cap_delay=5.0)

    @pytest.mark.parametrize(
        ("attempts", "max_attempts", "exhausted"),
        [(0, 3, False), (2, 3, False), (3, 3, True), (4, 3, True), (1, 1, True)],
    )
    def test_is_exhausted(self, attempts: int, max_attempts: int, exhausted: bool):
        assert BackoffPolicy.is_exhausted(attempts, max_attempts) is exhausted

"""Tests for the bounded SSH readiness poll."""

from __future__ import annotations

import random

from ciliumlab.readiness import BackoffPolicy, Readiness, ReadinessPoller


class TestReadinessPoller:
    """Tests for ReadinessPoller.wait_ready()."""

    def test_times_out_after_exact_budget(self):
        probes = []
        sleeps = []
        poller = ReadinessPoller(
            lambda target: probes.append(target) or False,
            BackoffPolicy(max_attempts=3, interval=10),
            sleep=sleeps.append,
        )
        assert poller.wait_ready("vm-1") == Readiness.TIMED_OUT
        assert len(probes) == 3
        assert sleeps == [10, 10]
        assert [a.ok for a in poller.attempts] == [False, False, False]

    def test_ready_on_second_attempt(self):
        answers = iter([False, True])
        sleeps = []
        poller = ReadinessPoller(
            lambda target: next(answers),
            BackoffPolicy(max_attempts=5, interval=1),
            sleep=sleeps.append,
        )
        assert poller.wait_ready("vm-1") == Readiness.READY
        assert len(poller.attempts) == 2
        assert sleeps == [1]

    def test_first_probe_needs_no_sleep(self):
        sleeps = []
        poller = ReadinessPoller(lambda target: True, sleep=sleeps.append)
        assert poller.wait_ready("vm-1") == Readiness.READY
        assert sleeps == []

    def test_overrides(self):
        probes = []
        poller = ReadinessPoller(
            lambda target: probes.append(target) or False, sleep=lambda s: None,
        )
        assert poller.wait_ready("vm-1", max_attempts=2, interval=0) == Readiness.TIMED_OUT
        assert len(probes) == 2
        assert poller.policy.max_attempts == 40

    def test_jitter_bounded(self):
        policy = BackoffPolicy(interval=10, jitter=2)
        rng = random.Random(7)
        for _ in range(20):
            assert 10 <= policy.delay(rng) <= 12

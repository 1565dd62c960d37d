"""
ReadinessPoller — bounded wait for a fresh VM to accept SSH.

The retry budget lives here and only here: the probe makes exactly one
attempt per call, so ``max_attempts`` is the exact number of probes.
"""

from __future__ import annotations

import logging
import random
import time
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import PollAttempt

logger = logging.getLogger("ciliumlab.readiness")


class BackoffPolicy(BaseModel):
    """Fixed-interval polling with optional jitter."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=40, ge=1)
    interval: float = Field(default=10.0, ge=0)
    jitter: float = Field(default=0.0, ge=0)

    def delay(self, rng: random.Random) -> float:
        """Seconds to wait before the next probe."""
        if self.jitter:
            return self.interval + rng.uniform(0, self.jitter)
        return self.interval


class Readiness(str, Enum):
    """Poll result."""

    READY = "ready"
    TIMED_OUT = "timed_out"


class ReadinessPoller:
    """Probe a target until it answers or the attempt budget runs out.

    Args:
        probe: Single connectivity check; returns True when the target is up.
        policy: Attempt budget and spacing.
        sleep: Sleep function (swap for a fake clock in tests).
        rng: Random source for jitter.
    """

    def __init__(
        self,
        probe: Callable[[str], bool],
        policy: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._probe = probe
        self._policy = policy or BackoffPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.attempts: List[PollAttempt] = []

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    def wait_ready(
        self,
        target: str,
        max_attempts: Optional[int] = None,
        interval: Optional[float] = None,
    ) -> Readiness:
        """Block until ``target`` answers a probe.

        Args:
            target: Machine name handed to the probe.
            max_attempts: Override the policy's attempt budget.
            interval: Override the policy's interval.

        Returns:
            Readiness.READY on the first successful probe, otherwise
            Readiness.TIMED_OUT after exactly ``max_attempts`` probes.
        """
        policy = self._policy
        if max_attempts is not None or interval is not None:
            policy = policy.model_copy(update={
                k: v for k, v in (("max_attempts", max_attempts), ("interval", interval))
                if v is not None
            })

        self.attempts = []
        for index in range(1, policy.max_attempts + 1):
            ok = bool(self._probe(target))
            self.attempts.append(PollAttempt(index=index, ok=ok))
            if ok:
                logger.info("%s is reachable (attempt %d/%d)", target, index, policy.max_attempts)
                return Readiness.READY
            if index < policy.max_attempts:
                delay = policy.delay(self._rng)
                logger.info(
                    "%s not reachable yet, retrying in %.0fs (attempt %d/%d)",
                    target, delay, index, policy.max_attempts,
                )
                self._sleep(delay)

        logger.error("%s never became reachable after %d attempts", target, policy.max_attempts)
        return Readiness.TIMED_OUT

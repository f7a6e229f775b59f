"""
consent_gateway.auth.ratelimit

In-process fixed-window rate limiting per (requester key, route category).

Responsibilities:
- Hold one independently configured (limit, window) policy per route category.
- Atomically count admissions per key and reject once the window is exhausted.
- Report a retry hint without exposing internal counters.

Note:
- Counters live in process memory only. They reset on restart and are not shared
  between instances; this is best-effort backpressure, not a security boundary.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Literal

# Defaults mirror the hosted service's published limits.
DEFAULT_POLICY_SPECS: dict[str, str] = {
    "api": "100/60",
    "registration": "5/3600",
    "consent": "200/60",
    "widget": "50/60",
    "scan": "30/60",
    "admin": "20/60",
}


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    limit: int
    window_seconds: float

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("rate limit must allow at least one request")
        if self.window_seconds <= 0:
            raise ValueError("rate limit window must be positive")

    @classmethod
    def parse(cls, spec: str) -> RateLimitPolicy:
        """Parse ``"<requests>/<window seconds>"``, e.g. ``"5/3600"``."""
        try:
            limit_s, window_s = spec.split("/", 1)
            return cls(limit=int(limit_s), window_seconds=float(window_s))
        except ValueError as e:
            raise ValueError(f"invalid rate limit spec {spec!r}: {e}") from e


def parse_policies(specs: Mapping[str, str]) -> dict[str, RateLimitPolicy]:
    return {category: RateLimitPolicy.parse(spec) for category, spec in specs.items()}


@dataclass(frozen=True, slots=True)
class Admitted:
    limit: int
    remaining: int
    # Seconds until the current window closes.
    reset_after: float
    admitted: Literal[True] = True


@dataclass(frozen=True, slots=True)
class Rejected:
    limit: int
    # Whole seconds until the window closes, 1 <= retry_after <= window.
    retry_after: int
    admitted: Literal[False] = False


@dataclass(slots=True)
class _Window:
    count: int
    started: float
    expires: float


class RateLimiter:
    """
    Fixed-window counters keyed by ``(key, category)``.

    The counter table is the only shared mutable state in the admission layer;
    every read-modify-write happens under one lock and no I/O is done while it
    is held, so the limiter is safe from the event loop and from threadpool
    workers alike.
    """

    def __init__(
        self,
        policies: Mapping[str, RateLimitPolicy],
        *,
        clock: Callable[[], float] = time.monotonic,
        prune_every: int = 1024,
    ) -> None:
        self._policies = dict(policies)
        self._clock = clock
        self._prune_every = max(1, prune_every)
        self._windows: dict[tuple[str, str], _Window] = {}
        self._calls = 0
        self._lock = threading.Lock()

    @property
    def categories(self) -> frozenset[str]:
        return frozenset(self._policies)

    def policy(self, category: str) -> RateLimitPolicy:
        try:
            return self._policies[category]
        except KeyError:
            raise ValueError(f"unknown rate limit category: {category!r}") from None

    def admit(self, key: str, category: str) -> Admitted | Rejected:
        policy = self.policy(category)
        now = self._clock()
        with self._lock:
            self._calls += 1
            if self._calls % self._prune_every == 0:
                self._prune_locked(now)

            window = self._windows.get((key, category))
            if window is None or now >= window.expires:
                # Expired windows restart from zero; nothing carries over.
                window = _Window(count=0, started=now, expires=now + policy.window_seconds)
                self._windows[(key, category)] = window

            left = window.expires - now
            if window.count >= policy.limit:
                retry_after = min(max(1, math.ceil(left)), math.ceil(policy.window_seconds))
                return Rejected(limit=policy.limit, retry_after=retry_after)

            window.count += 1
            return Admitted(
                limit=policy.limit,
                remaining=policy.limit - window.count,
                reset_after=left,
            )

    def prune(self) -> int:
        with self._lock:
            return self._prune_locked(self._clock())

    def _prune_locked(self, now: float) -> int:
        expired = [k for k, w in self._windows.items() if now >= w.expires]
        for k in expired:
            del self._windows[k]
        return len(expired)


def build_rate_limiter(specs: Mapping[str, str]) -> RateLimiter:
    merged = {**DEFAULT_POLICY_SPECS, **specs}
    return RateLimiter(parse_policies(merged))


# --- Module Notes -----------------------------------------------------------
# A shared counter store (Redis etc.) would make limits hold across instances,
# but that is a different contract; callers must not assume global accuracy.

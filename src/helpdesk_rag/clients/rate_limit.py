"""Sliding-window rate limiting for backend clients.

Every client owns one :class:`RateLimiter`, and with it one
:class:`RateLimitState`; nothing is shared between clients.  The limiter
paces callers (it sleeps) rather than rejecting requests: the backend
remains the source of truth for usage, so token counts are estimated
before a call and corrected afterwards via :meth:`RateLimiter.record_tokens`.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

MINUTE = 60.0
HOUR = 3600.0


@dataclass(frozen=True)
class RateLimits:
    """Ceilings for one backend.

    Attributes
    ----------
    requests_per_minute:
        Request ceiling over a sliding one-minute window.
    tokens_per_minute:
        Token ceiling over the same window; ``None`` disables token pacing.
    requests_per_hour:
        Optional hourly request ceiling (used for the document source).
    tokens_per_request:
        Heuristic token cost of a request whose real usage is not known yet.
    max_request_wait / max_token_wait:
        Upper bound on a single pacing sleep, in seconds.
    """

    requests_per_minute: int
    tokens_per_minute: int | None = None
    requests_per_hour: int | None = None
    tokens_per_request: int = 100
    max_request_wait: float = 10.0
    max_token_wait: float = 15.0


@dataclass
class RateLimitState:
    """Timestamps of recent requests and ``(timestamp, count)`` token entries."""

    requests: list[float] = field(default_factory=list)
    tokens: list[tuple[float, int]] = field(default_factory=list)


class RateLimiter:
    """Advisory pacing over sliding request and token windows.

    Parameters
    ----------
    limits:
        Ceilings for the backend this limiter guards.
    name:
        Backend name used in log lines.
    clock / sleep:
        Injectable for tests; default to :func:`time.monotonic` and
        :func:`time.sleep`.
    """

    def __init__(
        self,
        limits: RateLimits,
        *,
        name: str = "backend",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.limits = limits
        self.name = name
        self.state = RateLimitState()
        self._lock = threading.Lock()
        self._clock = clock
        self._sleep = sleep

    def acquire(self, requests: int = 1) -> float:
        """Wait, if needed, before issuing *requests* requests.

        Returns the total number of seconds slept.  Concurrent callers are
        serialised, so a caller that has to wait holds back the ones behind it.
        """
        with self._lock:
            return self._acquire(requests)

    def record_tokens(self, count: int) -> None:
        """Record real token usage reported by the backend."""
        if count > 0:
            with self._lock:
                self.state.tokens.append((self._clock(), count))

    def _acquire(self, requests: int) -> float:
        limits = self.limits
        now = self._clock()
        minute_ago = now - MINUTE
        horizon = HOUR if limits.requests_per_hour else MINUTE

        self.state.requests = [t for t in self.state.requests if t > now - horizon]
        self.state.tokens = [(t, c) for t, c in self.state.tokens if t > minute_ago]

        waited = 0.0

        recent = [t for t in self.state.requests if t > minute_ago]
        if len(recent) + requests > limits.requests_per_minute:
            oldest = min(recent) if recent else now
            wait = min(limits.max_request_wait, MINUTE - (now - oldest))
            logger.warning(
                "%s request rate limit reached (%d/%d), waiting %.1fs",
                self.name,
                len(recent),
                limits.requests_per_minute,
                wait,
            )
            waited += self._pause(wait)

        if limits.requests_per_hour and len(self.state.requests) + requests > limits.requests_per_hour:
            oldest = min(self.state.requests) if self.state.requests else now
            wait = min(limits.max_request_wait, HOUR - (now - oldest))
            logger.warning(
                "%s hourly rate limit reached (%d/%d), waiting %.1fs",
                self.name,
                len(self.state.requests),
                limits.requests_per_hour,
                wait,
            )
            waited += self._pause(wait)

        if limits.tokens_per_minute:
            recent_tokens = sum(c for _, c in self.state.tokens)
            estimated = requests * limits.tokens_per_request
            if recent_tokens + estimated > limits.tokens_per_minute:
                oldest = min((t for t, _ in self.state.tokens), default=now)
                wait = min(limits.max_token_wait, MINUTE - (now - oldest))
                logger.warning(
                    "%s token rate limit reached (%d/%d), waiting %.1fs",
                    self.name,
                    recent_tokens,
                    limits.tokens_per_minute,
                    wait,
                )
                waited += self._pause(wait)

        stamp = self._clock()
        self.state.requests.extend([stamp] * requests)
        return waited

    def _pause(self, seconds: float) -> float:
        if seconds <= 0:
            return 0.0
        self._sleep(seconds)
        return seconds

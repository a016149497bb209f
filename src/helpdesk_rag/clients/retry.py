"""Exponential-backoff retry for backend calls."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from helpdesk_rag.exceptions import BackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry a failing call up to ``max_retries`` times.

    The delay before retry *n* (0-based) is
    ``min(base_delay * backoff_factor ** n, max_delay)`` seconds.  Only
    :class:`~helpdesk_rag.exceptions.BackendError` is retried, and only when
    it is :attr:`~helpdesk_rag.exceptions.BackendError.retryable`.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * self.backoff_factor**attempt, self.max_delay)

    def call(
        self,
        operation: Callable[[], T],
        *,
        sleep: Callable[[float], None] = time.sleep,
        description: str = "request",
    ) -> T:
        """Run *operation*, retrying transient failures; re-raise the last error."""
        attempt = 0
        while True:
            try:
                return operation()
            except BackendError as exc:
                if not exc.retryable:
                    logger.debug("%s failed with non-retryable error: %s", description, exc)
                    raise
                if attempt >= self.max_retries:
                    logger.debug("%s failed after %d attempts: %s", description, attempt + 1, exc)
                    raise
                delay = self.delay_for(attempt)
                logger.debug(
                    "%s failed (attempt %d), retrying in %.1fs: %s",
                    description,
                    attempt + 1,
                    delay,
                    exc,
                )
                sleep(delay)
                attempt += 1

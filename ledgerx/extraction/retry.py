"""Retry policy for fallible external calls.

A :class:`RetryPolicy` wraps any callable and re-invokes it while it raises
a retryable :class:`~ledgerx.errors.ExtractionError`, sleeping between
attempts with exponential backoff.  The policy itself holds no state between
calls, so one instance can be shared across dispatcher workers.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional, TypeVar

from ..errors import CancelledError, ExtractionError

if TYPE_CHECKING:
    from ..config import LedgerxConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


def exponential_backoff(base: float = 2.0, cap: float = 30.0) -> Callable[[int], float]:
    """Return ``attempt -> delay`` with ``base * 2**(attempt-1)`` capped at *cap*."""

    def _delay(attempt: int) -> float:
        return min(cap, base * 2 ** (attempt - 1))

    return _delay


@dataclass
class RetryPolicy:
    """Idempotent retry with a backoff function.

    ``backoff(n)`` returns the delay (seconds) to wait after the n-th failed
    attempt.  ``sleep`` overrides the pause (tests inject a no-op); left
    unset, the caller's ``wait`` hook or ``time.sleep`` is used.
    """

    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=exponential_backoff)
    sleep: Optional[Callable[[float], None]] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def from_config(cls, cfg: LedgerxConfig) -> RetryPolicy:
        return cls(
            max_attempts=cfg.retry_max_attempts,
            backoff=exponential_backoff(cfg.retry_backoff_base, cfg.retry_backoff_max),
        )

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        return cls(max_attempts=1)

    def _pause(self, delay: float, wait: Optional[Callable[[float], object]]) -> None:
        if self.sleep is not None:
            self.sleep(delay)
        elif wait is not None:
            wait(delay)
        else:
            time.sleep(delay)

    def call(
        self,
        fn: Callable[[int], T],
        *,
        should_stop: Optional[Callable[[], bool]] = None,
        wait: Optional[Callable[[float], object]] = None,
    ) -> tuple[T, int]:
        """Run ``fn(attempt)`` until it succeeds or attempts are exhausted.

        Args:
            fn: Receives the 1-based attempt number.
            should_stop: Polled before and after every backoff pause.
            wait: Interruptible pause (e.g. ``CancelToken.wait``) used when
                the policy has no explicit ``sleep``.

        Returns:
            ``(result, attempts_used)``.

        Raises:
            ExtractionError: The last error, when non-retryable or when every
                attempt failed.  ``attempts`` is set on the raised error.
            CancelledError: ``should_stop`` turned true before a retry.
        """
        stopped = should_stop or (lambda: False)
        attempt = 1
        while True:
            try:
                return fn(attempt), attempt
            except ExtractionError as exc:
                exc.attempts = attempt
                if not exc.retryable or attempt >= self.max_attempts:
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "Attempt %d/%d failed (%s); retrying in %.1fs",
                    attempt, self.max_attempts, exc.message, delay,
                )
            if stopped():
                raise CancelledError("cancelled between retry attempts")
            self._pause(delay, wait)
            if stopped():
                raise CancelledError("cancelled during retry backoff")
            attempt += 1

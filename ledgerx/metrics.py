"""Per-stage timing and token accounting for pipeline runs.

``TokenTracker`` implements the ``add_usage(model, usage)`` hook DSPy calls
after every LM completion.  ``track_step`` snapshots the tracker around a
pipeline stage and appends a :class:`StepMetric` with the stage's wall time
and the tokens spent while it ran.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Generator


@dataclass
class StepMetric:
    """Wall time and token usage of one pipeline stage."""

    name: str
    duration_s: float
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class PipelineMetrics:
    """Stage metrics of a whole run, in execution order."""

    steps: list[StepMetric] = field(default_factory=list)

    @property
    def total_duration_s(self) -> float:
        return sum(s.duration_s for s in self.steps)

    @property
    def total_input_tokens(self) -> int:
        return sum(s.input_tokens for s in self.steps)

    @property
    def total_output_tokens(self) -> int:
        return sum(s.output_tokens for s in self.steps)

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    def tokens(self) -> dict[str, int]:
        """Token totals in the envelope's ``{"input", "output"}`` shape."""
        return {"input": self.total_input_tokens, "output": self.total_output_tokens}


class TokenTracker:
    """Append-only usage log shared by concurrent oracle calls."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def add_usage(self, model: str, usage: dict) -> None:  # noqa: ARG002
        with self._lock:
            self.calls.append(usage)

    def reset(self) -> None:
        with self._lock:
            self.calls.clear()

    def snapshot(self) -> int:
        """Marker for :meth:`tokens_since`."""
        with self._lock:
            return len(self.calls)

    def tokens_since(self, snap: int) -> tuple[int, int]:
        """``(prompt_tokens, completion_tokens)`` recorded after *snap*."""
        with self._lock:
            recent = list(self.calls[snap:])
        return (
            sum(u.get("prompt_tokens", 0) for u in recent),
            sum(u.get("completion_tokens", 0) for u in recent),
        )


_tracker: TokenTracker | None = None


def get_tracker() -> TokenTracker:
    """Return the process-wide tracker, creating it on first use."""
    global _tracker
    if _tracker is None:
        _tracker = TokenTracker()
    return _tracker


def set_tracker(tracker: TokenTracker) -> None:
    global _tracker
    _tracker = tracker


@contextmanager
def track_step(
    metrics: PipelineMetrics,
    step_name: str,
    tracker: TokenTracker | None = None,
) -> Generator[None, None, None]:
    """Record *step_name* in *metrics*, also when the body raises.

    Usage::

        metrics = PipelineMetrics()
        with track_step(metrics, "Dispatch segments"):
            results = dispatcher.dispatch(segments)
    """
    tracker = tracker or get_tracker()
    snap = tracker.snapshot()
    started = time.perf_counter()
    try:
        yield
    finally:
        inp, out = tracker.tokens_since(snap)
        metrics.steps.append(
            StepMetric(step_name, time.perf_counter() - started, inp, out)
        )

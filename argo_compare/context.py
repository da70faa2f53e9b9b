"""Utilities for tracing how long each step of a comparison takes."""

from collections import defaultdict
from collections.abc import Generator
import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter


_LOGGER = logging.getLogger(__name__)

__all__ = [
    "trace_context",
    "TraceCollector",
    "collect_traces",
]


trace: contextvars.ContextVar[list[str]] = contextvars.ContextVar("trace")
_collector: contextvars.ContextVar["TraceCollector | None"] = contextvars.ContextVar(
    "collector", default=None
)


class TraceCollector:
    """Accumulates durations of traced steps, keyed by step name."""

    def __init__(self) -> None:
        self.timings: dict[str, float] = defaultdict(float)
        self.counts: dict[str, int] = defaultdict(int)

    def add(self, name: str, duration: float) -> None:
        self.timings[name] += duration
        self.counts[name] += 1

    def summary(self) -> list[str]:
        """Return one line per step, slowest first."""
        return [
            f"{name}: {duration:0.2f}s ({self.counts[name]} calls)"
            for name, duration in sorted(
                self.timings.items(), key=lambda item: item[1], reverse=True
            )
        ]


@contextmanager
def collect_traces() -> Generator[TraceCollector, None, None]:
    """Record every `trace_context` step run inside this block."""
    collector = TraceCollector()
    token = _collector.set(collector)
    try:
        yield collector
    finally:
        _collector.reset(token)


@contextmanager
def trace_context(name: str) -> Generator[None, None, None]:
    stack = trace.get([])
    token = trace.set(stack + [name])
    label = " > ".join(stack + [name])
    t1 = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    finally:
        duration = perf_counter() - t1
        trace.reset(token)
        if (collector := _collector.get()) is not None:
            collector.add(name, duration)
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, duration)

"""Rate-limited byte progress accumulator."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

ProgressSink = Callable[[int, int], None]

DEFAULT_MIN_INTERVAL = 0.1


class ProgressTracker:
    """Accumulate copied bytes from many workers and report to a sink.

    The sink receives ``(copied, total)``. Reports are coalesced to at most
    one per ``min_interval`` seconds; ``finish()`` always emits. Updates and
    reports happen under one lock, so the reported value never decreases.
    """

    def __init__(
        self,
        total: int,
        sink: ProgressSink | None = None,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.total = total
        self._sink = sink
        self._min_interval = min_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._copied = 0
        self._last_emit: float | None = None

    @property
    def copied(self) -> int:
        with self._lock:
            return self._copied

    def add(self, nbytes: int) -> None:
        with self._lock:
            self._copied += nbytes
            now = self._clock()
            if self._last_emit is None or now - self._last_emit >= self._min_interval:
                self._emit(now)

    def finish(self) -> None:
        with self._lock:
            self._emit(self._clock())

    def _emit(self, now: float) -> None:
        self._last_emit = now
        if self._sink is not None:
            self._sink(self._copied, self.total)


__all__ = ["DEFAULT_MIN_INTERVAL", "ProgressSink", "ProgressTracker"]

"""Pooled copy buffers.

Two buffer classes are kept: small buffers for files under the large-file
threshold and large buffers for everything else. Buffers are handed out by
``lease()`` and returned to their pool on exit, so a copy of a tree with
many thousands of files allocates only about one buffer per worker.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterator
from contextlib import contextmanager

SMALL_BUFFER_SIZE = 64 * 1024
LARGE_BUFFER_SIZE = 1024 * 1024
LARGE_FILE_THRESHOLD = 1024 * 1024


class BufferPool:
    """Thread-safe pool of reusable bytearrays in two size classes."""

    def __init__(
        self,
        small_size: int = SMALL_BUFFER_SIZE,
        large_size: int = LARGE_BUFFER_SIZE,
        threshold: int = LARGE_FILE_THRESHOLD,
    ) -> None:
        self.small_size = small_size
        self.large_size = large_size
        self.threshold = threshold
        self._pools: dict[int, queue.SimpleQueue[bytearray]] = {
            small_size: queue.SimpleQueue(),
            large_size: queue.SimpleQueue(),
        }
        self._lock = threading.Lock()
        self._allocated = {small_size: 0, large_size: 0}

    def size_for(self, file_size: int) -> int:
        """Return the buffer class used for a file of the given size."""
        return self.small_size if file_size < self.threshold else self.large_size

    def acquire(self, file_size: int) -> bytearray:
        size = self.size_for(file_size)
        try:
            return self._pools[size].get_nowait()
        except queue.Empty:
            with self._lock:
                self._allocated[size] += 1
            return bytearray(size)

    def release(self, buffer: bytearray) -> None:
        pool = self._pools.get(len(buffer))
        if pool is not None:
            pool.put(buffer)

    @contextmanager
    def lease(self, file_size: int) -> Iterator[bytearray]:
        """Borrow a buffer sized for ``file_size`` for the duration of a block."""
        buffer = self.acquire(file_size)
        try:
            yield buffer
        finally:
            self.release(buffer)

    @property
    def allocated(self) -> dict[int, int]:
        """Number of buffers ever allocated, per size class."""
        with self._lock:
            return dict(self._allocated)


__all__ = [
    "LARGE_BUFFER_SIZE",
    "LARGE_FILE_THRESHOLD",
    "SMALL_BUFFER_SIZE",
    "BufferPool",
]

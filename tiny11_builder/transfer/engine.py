"""Concurrent directory-tree copy engine.

This module handles:
- Walking the source tree once and creating destination directories
- Fanning file copies out to a bounded thread pool
- Streaming each file through a pooled buffer
- Aggregating per-file errors without stopping the other workers

Used to stage the multi-gigabyte installation source before editing.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from tiny11_builder.errors import CopyError, NotFoundError
from tiny11_builder.transfer.buffers import BufferPool
from tiny11_builder.transfer.progress import ProgressSink, ProgressTracker
from tiny11_builder.types import CopyTask

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 8


@dataclass
class CopyResult:
    """Result of a tree copy.

    Attributes:
        files: Number of files copied.
        total_bytes: Sum of source file sizes.
        workers: Worker threads used.
        failures: (path, error) pairs for files that failed.
    """

    files: int
    total_bytes: int
    workers: int
    failures: list[tuple[Path, BaseException]] = field(default_factory=list)


def plan_copy(
    src: Path,
    dst: Path,
    failures: list[tuple[Path, BaseException]] | None = None,
    log: logging.Logger = logger,
) -> list[CopyTask]:
    """Walk ``src``, create every destination directory and list the files.

    Entries that cannot be listed or stat'ed are logged and appended to
    ``failures`` instead of stopping the walk.

    Args:
        src: Source directory.
        dst: Destination directory (created if missing).
        failures: Optional list collecting (path, error) pairs.
        log: Logger instance.

    Returns:
        Flat list of CopyTask, in walk order.
    """
    if failures is None:
        failures = []

    def record(path: Path, error: OSError) -> None:
        log.warning("Cannot read %s: %s", path, error)
        failures.append((path, error))

    def on_walk_error(error: OSError) -> None:
        record(Path(error.filename or src), error)

    tasks: list[CopyTask] = []
    dst.mkdir(parents=True, exist_ok=True)
    for root, dirs, files in os.walk(src, onerror=on_walk_error):
        root_path = Path(root)
        target_root = dst / root_path.relative_to(src)
        for name in dirs:
            (target_root / name).mkdir(parents=True, exist_ok=True)
        for name in files:
            source = root_path / name
            try:
                size = source.stat().st_size
            except OSError as e:
                record(source, e)
                continue
            tasks.append(CopyTask(source=source, destination=target_root / name, size=size))
    return tasks


class ConcurrentCopyEngine:
    """Copy directory trees with a bounded worker pool."""

    def __init__(
        self,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        buffer_pool: BufferPool | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.max_concurrency = max(1, max_concurrency)
        self.buffer_pool = buffer_pool or BufferPool()
        self._log = logger or logging.getLogger(__name__)

    @property
    def workers(self) -> int:
        """Worker count: the configured cap bounded by host parallelism."""
        return max(1, min(self.max_concurrency, os.cpu_count() or 1))

    def copy_tree(
        self,
        src: Path,
        dst: Path,
        progress: ProgressSink | None = None,
    ) -> CopyResult:
        """Copy every file under ``src`` into ``dst``.

        Args:
            src: Source directory.
            dst: Destination directory.
            progress: Optional sink receiving (copied_bytes, total_bytes).

        Returns:
            CopyResult describing the copy.

        Raises:
            NotFoundError: If the source directory does not exist.
            CopyError: If any file failed; raised after all workers finish,
                chained from the first recorded failure.
        """
        if not src.is_dir():
            raise NotFoundError(f"Source directory not found: {src}", context={"path": src})

        failures: list[tuple[Path, BaseException]] = []
        tasks = plan_copy(src, dst, failures, log=self._log)
        entries = len(tasks) + len(failures)
        total = sum(task.size for task in tasks)
        tracker = ProgressTracker(total, progress)
        workers = self.workers
        result = CopyResult(
            files=len(tasks), total_bytes=total, workers=workers, failures=failures
        )

        self._log.info(
            "Copying %d files (%d bytes) from %s to %s with %d workers",
            len(tasks),
            total,
            src,
            dst,
            workers,
        )

        failures_lock = threading.Lock()

        def worker(task: CopyTask) -> None:
            try:
                self._copy_file(task, tracker)
            except OSError as e:
                self._log.warning("Failed to copy %s: %s", task.source, e)
                with failures_lock:
                    result.failures.append((task.source, e))

        if tasks:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="copy") as pool:
                # Results are drained so a bug in a worker surfaces here
                for _ in pool.map(worker, tasks):
                    pass

        tracker.finish()

        if result.failures:
            first_path, first_error = result.failures[0]
            raise CopyError(
                f"{len(result.failures)} of {entries} files failed to copy",
                failed=len(result.failures),
                first_path=first_path,
            ) from first_error

        self._log.info("Copied %d files (%d bytes)", len(tasks), total)
        return result

    def _copy_file(self, task: CopyTask, tracker: ProgressTracker) -> None:
        with self.buffer_pool.lease(task.size) as buffer, memoryview(buffer) as view:
            with task.source.open("rb") as fsrc, task.destination.open("wb") as fdst:
                while True:
                    n = fsrc.readinto(buffer)
                    if not n:
                        break
                    fdst.write(view[:n])
                    tracker.add(n)


__all__ = ["DEFAULT_MAX_CONCURRENCY", "ConcurrentCopyEngine", "CopyResult", "plan_copy"]

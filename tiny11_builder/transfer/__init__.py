"""Bulk file transfer: pooled buffers, progress and the concurrent copy engine."""

from tiny11_builder.transfer.buffers import BufferPool
from tiny11_builder.transfer.engine import ConcurrentCopyEngine, CopyResult, plan_copy
from tiny11_builder.transfer.progress import ProgressTracker

__all__ = [
    "BufferPool",
    "ConcurrentCopyEngine",
    "CopyResult",
    "ProgressTracker",
    "plan_copy",
]

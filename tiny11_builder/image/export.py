"""Re-export of an edited image with retries and sanity checks.

The export writes into a work file next to the target (``install2.wim``
for ``install.wim``), validates it and only then moves it into place. A
failed export never leaves the work file behind.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import stat
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from tiny11_builder.config import GIB, MIB
from tiny11_builder.errors import (
    BuildError,
    DiskSpaceError,
    ExternalToolError,
    NotFoundError,
    PermissionDeniedError,
)
from tiny11_builder.tools.dism import Dism
from tiny11_builder.types import ExportAttempt

DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 2.0
DEFAULT_SPACE_MARGIN = 2 * GIB
DEFAULT_MIN_SIZE = 100 * MIB

COMPRESSION_RECOVERY = "recovery"
COMPRESSION_MAX = "max"


@dataclass
class ExportResult:
    """Outcome of a successful export.

    Attributes:
        source: Image that was exported.
        target: Final path of the exported image.
        index: Source index exported.
        compression: DISM compression mode used.
        attempts: Every attempt made, the last one being the successful one.
        size_before: Source size in bytes.
        size_after: Target size in bytes.
    """

    source: Path
    target: Path
    index: int
    compression: str
    attempts: list[ExportAttempt] = field(default_factory=list)
    size_before: int = 0
    size_after: int = 0

    @property
    def ratio(self) -> float:
        """Space saved as a percentage of the source size."""
        if not self.size_before:
            return 0.0
        return (self.size_before - self.size_after) / self.size_before * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": str(self.source),
            "target": str(self.target),
            "index": self.index,
            "compression": self.compression,
            "attempts": len(self.attempts),
            "size_before": self.size_before,
            "size_after": self.size_after,
            "ratio": round(self.ratio, 1),
        }


def work_file_for(target: Path) -> Path:
    """Return the temporary export path used for ``target``."""
    return target.with_name(f"{target.stem}2{target.suffix}")


def _force_remove(path: Path) -> None:
    if not path.exists():
        return
    # A failed chmod surfaces through unlink
    with contextlib.suppress(OSError):
        os.chmod(path, stat.S_IWRITE | stat.S_IREAD)
    path.unlink()


class ExportRetryPolicy:
    """Bounded-retry wrapper around ``dism /Export-Image``."""

    def __init__(
        self,
        dism: Dism,
        attempts: int = DEFAULT_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        space_margin: int = DEFAULT_SPACE_MARGIN,
        min_size: int = DEFAULT_MIN_SIZE,
        logger: logging.Logger | None = None,
        disk_usage: Callable[[Path], Any] = shutil.disk_usage,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.dism = dism
        self.attempts = max(1, attempts)
        self.backoff_seconds = backoff_seconds
        self.space_margin = space_margin
        self.min_size = min_size
        self._log = logger or logging.getLogger(__name__)
        self._disk_usage = disk_usage
        self._sleep = sleep

    def export(
        self,
        source: Path,
        index: int,
        compression: str = COMPRESSION_RECOVERY,
        target: Path | None = None,
        replace_source: bool = True,
    ) -> ExportResult:
        """Export one image index of ``source`` into ``target``.

        Args:
            source: Image file to export from.
            index: Image index to export.
            compression: DISM ``/Compress`` mode.
            target: Final image path; defaults to ``source``.
            replace_source: Delete ``source`` once the export is in place.

        Returns:
            ExportResult with attempt history and sizes.

        Raises:
            NotFoundError: If the source image does not exist.
            DiskSpaceError: If free space is below source size plus margin;
                no attempt is made.
            ExternalToolError: If every attempt failed or produced an
                implausibly small file.
            PermissionDeniedError: If the exported file cannot be moved
                into place.
        """
        target = target or source
        work_file = work_file_for(target)

        if not source.is_file():
            raise NotFoundError(f"Image to export not found: {source}", context={"path": source})

        size_before = source.stat().st_size
        self._check_space(work_file.parent, size_before)

        result = ExportResult(
            source=source,
            target=target,
            index=index,
            compression=compression,
            size_before=size_before,
        )

        last_output = ""
        last_error: BaseException | None = None
        for ordinal in range(1, self.attempts + 1):
            if ordinal > 1:
                self._log.info("Retrying export (attempt %d/%d)", ordinal, self.attempts)
                self._sleep(self.backoff_seconds)

            attempt = ExportAttempt(
                ordinal=ordinal,
                source=source,
                destination=work_file,
                compression=compression,
            )
            result.attempts.append(attempt)

            try:
                _force_remove(work_file)
                tool_result = self.dism.export_image(source, index, work_file, compression)
                last_output = tool_result.output
                self._validate(work_file)
            except (BuildError, OSError) as e:
                last_error = e
                if isinstance(e, ExternalToolError) and e.output:
                    last_output = e.output
                self._log.warning("Export attempt %d/%d failed: %s", ordinal, self.attempts, e)
                self._discard(work_file)
                continue

            self._replace(source, target, work_file, replace_source)
            result.size_after = target.stat().st_size
            self._log.info(
                "Exported %s: %d -> %d bytes (%.1f%% smaller)",
                target.name,
                result.size_before,
                result.size_after,
                result.ratio,
            )
            return result

        self._discard(work_file)
        raise ExternalToolError(
            f"Image export failed after {self.attempts} attempts",
            output=last_output,
            code="export_failed",
            context={"attempts": self.attempts, "source": source, "output": last_output.strip()},
        ) from last_error

    def _check_space(self, directory: Path, source_size: int) -> None:
        try:
            usage = self._disk_usage(directory)
        except OSError as e:
            self._log.warning("Cannot query free space on %s, proceeding: %s", directory, e)
            return
        required = source_size + self.space_margin
        self._log.info("Free space: %d bytes, required: %d bytes", usage.free, required)
        if usage.free < required:
            raise DiskSpaceError(
                "Not enough free space to export the image",
                context={"available": usage.free, "required": required, "path": directory},
            )

    def _validate(self, work_file: Path) -> None:
        if not work_file.is_file():
            raise ExternalToolError(
                f"Export produced no file at {work_file}",
                code="export_missing",
                context={"path": work_file},
            )
        size = work_file.stat().st_size
        if size < self.min_size:
            raise ExternalToolError(
                f"Exported image is too small ({size} bytes), possibly corrupt",
                code="export_too_small",
                context={"path": work_file, "size": size},
            )

    def _discard(self, work_file: Path) -> None:
        try:
            _force_remove(work_file)
        except OSError as e:
            self._log.error("Cannot remove partial export %s: %s", work_file, e)

    def _replace(self, source: Path, target: Path, work_file: Path, replace_source: bool) -> None:
        # os.replace overwrites the target, so the source survives a failed move
        try:
            if target.exists():
                with contextlib.suppress(OSError):
                    os.chmod(target, stat.S_IWRITE | stat.S_IREAD)
            os.replace(work_file, target)
        except OSError as e:
            if source.exists():
                self._discard(work_file)
            else:
                self._log.error("Keeping exported image at %s", work_file)
            raise PermissionDeniedError(
                f"Cannot move exported image into place at {target}",
                context={"path": target, "work_file": work_file},
            ) from e

        if replace_source and target != source:
            try:
                _force_remove(source)
            except OSError as e:
                raise PermissionDeniedError(
                    f"Cannot remove original image {source}",
                    context={"path": source},
                ) from e


__all__ = [
    "COMPRESSION_MAX",
    "COMPRESSION_RECOVERY",
    "DEFAULT_ATTEMPTS",
    "DEFAULT_BACKOFF_SECONDS",
    "DEFAULT_MIN_SIZE",
    "DEFAULT_SPACE_MARGIN",
    "ExportRetryPolicy",
    "ExportResult",
    "work_file_for",
]

"""Background build service for the HTTP and MCP frontends.

This module provides:
- BuildManager: queues build requests onto a single worker thread
- BuildRecord: status snapshot of a submitted build

Only one build session runs per process at a time; later submissions wait
in the executor queue with status PENDING.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from tiny11_builder.config import Settings, get_settings
from tiny11_builder.errors import BuildError
from tiny11_builder.pipeline.context import BuildRequest
from tiny11_builder.pipeline.session import BuildResult, BuildSession, new_build_id
from tiny11_builder.privileges import ElevationCheck, is_elevated, require_elevation
from tiny11_builder.types import BuildPhase, BuildStatus

logger = logging.getLogger(__name__)

SessionFactory = Callable[..., BuildSession]

DEFAULT_MAX_FINISHED = 100


class BuildNotFoundError(Exception):
    """Raised when a build is not found."""

    def __init__(self, build_id: str, code: str = "build_not_found") -> None:
        super().__init__(f"Build not found: {build_id}")
        self.build_id = build_id
        self.code = code


@dataclass
class BuildRecord:
    """Status snapshot of one submitted build."""

    build_id: str
    request: BuildRequest
    status: BuildStatus = BuildStatus.PENDING
    phase: BuildPhase | None = None
    progress: float = 0.0
    message: str = ""
    error: dict[str, Any] | None = None
    output_path: str | None = None
    warnings: list[str] = field(default_factory=list)
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "build_id": self.build_id,
            "status": self.status.value,
            "phase": self.phase.value if self.phase else None,
            "progress": round(self.progress, 1),
            "message": self.message,
            "error": self.error,
            "output_path": self.output_path,
            "warnings": list(self.warnings),
            "variant": self.request.variant.value,
            "source": str(self.request.source),
            "requested_at": self.requested_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class BuildManager:
    """Serialise builds onto one background worker thread.

    Finished builds beyond ``max_finished`` are forgotten, oldest first.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        session_factory: SessionFactory = BuildSession,
        logger: logging.Logger | None = None,
        elevation_check: ElevationCheck = is_elevated,
        max_finished: int = DEFAULT_MAX_FINISHED,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self._log = logger or logging.getLogger(__name__)
        self._elevation_check = elevation_check
        self.max_finished = max(0, max_finished)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tiny11-build")
        self._lock = threading.Lock()
        self._records: dict[str, BuildRecord] = {}
        self._futures: dict[str, Future[None]] = {}

    def submit(self, request: BuildRequest) -> str:
        """Queue a build and return its id.

        Raises:
            PermissionDeniedError: If the process lacks administrator rights.
        """
        require_elevation(self._elevation_check)
        build_id = new_build_id()
        with self._lock:
            self._evict_finished()
            self._records[build_id] = BuildRecord(build_id=build_id, request=request)
            self._futures[build_id] = self._executor.submit(self._run, build_id, request)
        self._log.info("Queued build %s (%s)", build_id, request.variant.value)
        return build_id

    def get(self, build_id: str) -> BuildRecord:
        """Return a snapshot of one build.

        Raises:
            BuildNotFoundError: If no build has this id.
        """
        with self._lock:
            record = self._records.get(build_id)
            if record is None:
                raise BuildNotFoundError(build_id)
            return replace(record, warnings=list(record.warnings))

    def list(self) -> list[BuildRecord]:
        """Snapshots of every build, oldest first."""
        with self._lock:
            return [
                replace(record, warnings=list(record.warnings))
                for record in self._records.values()
            ]

    def wait(self, build_id: str, timeout: float | None = None) -> BuildRecord:
        """Block until a build has finished and return its final snapshot."""
        with self._lock:
            future = self._futures.get(build_id)
        if future is None:
            raise BuildNotFoundError(build_id)
        future.result(timeout=timeout)
        return self.get(build_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _evict_finished(self) -> None:
        finished = [
            build_id
            for build_id, record in self._records.items()
            if record.status in (BuildStatus.SUCCEEDED, BuildStatus.FAILED)
        ]
        for build_id in finished[: max(0, len(finished) - self.max_finished)]:
            del self._records[build_id]
            self._futures.pop(build_id, None)

    def _update(self, build_id: str, **changes: Any) -> None:
        with self._lock:
            record = self._records[build_id]
            for key, value in changes.items():
                setattr(record, key, value)

    def _on_status(self, build_id: str) -> Callable[[BuildPhase, float, str], None]:
        def callback(phase: BuildPhase, percent: float, message: str) -> None:
            self._update(build_id, phase=phase, progress=percent, message=message)

        return callback

    def _run(self, build_id: str, request: BuildRequest) -> None:
        self._update(
            build_id,
            status=BuildStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
        )
        try:
            session = self._session_factory(
                request,
                settings=self.settings,
                build_id=build_id,
                status_callback=self._on_status(build_id),
            )
            result: BuildResult = session.build()
        except BuildError as e:
            self._log.error("Build %s failed: %s", build_id, e)
            self._update(
                build_id,
                status=BuildStatus.FAILED,
                phase=BuildPhase.ABORTED,
                error=e.to_dict(),
                finished_at=datetime.now(timezone.utc),
            )
            return
        except Exception as e:
            self._log.exception("Build %s crashed", build_id)
            self._update(
                build_id,
                status=BuildStatus.FAILED,
                phase=BuildPhase.ABORTED,
                error={"kind": "general", "code": "internal_error", "message": str(e)},
                finished_at=datetime.now(timezone.utc),
            )
            return

        self._update(
            build_id,
            status=BuildStatus.SUCCEEDED,
            phase=BuildPhase.DONE,
            progress=100.0,
            output_path=str(result.output_path) if result.output_path else None,
            warnings=list(result.warnings),
            finished_at=datetime.now(timezone.utc),
        )


__all__ = ["DEFAULT_MAX_FINISHED", "BuildManager", "BuildNotFoundError", "BuildRecord"]

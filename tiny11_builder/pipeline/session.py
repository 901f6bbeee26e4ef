"""Build session: runs a variant's steps against one staged source.

This module handles:
- Creating the per-build logger, tool runner and pipeline context
- Running steps in order under a CleanupGuard
- Applying each step's failure policy (fatal aborts, soft warns)
- Reporting phase and progress to an optional status callback
- Keeping or removing the working directories after a failure
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx

from tiny11_builder.config import Settings, get_settings
from tiny11_builder.errors import BuildError, StepFailedError
from tiny11_builder.image.export import ExportResult
from tiny11_builder.image.mount import CleanupGuard, remediation_hint
from tiny11_builder.log import close_session_logger, session_log_path, session_logger
from tiny11_builder.pipeline.context import BuildRequest, PipelineContext
from tiny11_builder.pipeline.steps import PipelineStep
from tiny11_builder.pipeline.variants import build_steps
from tiny11_builder.removal.files import delete_path
from tiny11_builder.tools.runner import ToolRunner
from tiny11_builder.types import BuildPhase, Variant

StatusCallback = Callable[[BuildPhase, float, str], None]


def new_build_id() -> str:
    """Generate a sortable, unique build identifier."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"{stamp}-{uuid.uuid4().hex[:6]}"


@dataclass
class BuildResult:
    """Outcome of a successful build.

    Attributes:
        build_id: Identifier of the session.
        output_path: The ISO that was written.
        variant: Reduction profile that was built.
        steps_run: Labels of the steps that ran, in order.
        warnings: One entry per soft step that failed.
        started_at: Session start time (UTC).
        finished_at: Session end time (UTC).
        export: Result of the install image export.
        log_path: Session log file, if one was written.
    """

    build_id: str
    variant: Variant
    started_at: datetime
    output_path: Path | None = None
    steps_run: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    finished_at: datetime | None = None
    export: ExportResult | None = None
    log_path: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "build_id": self.build_id,
            "variant": self.variant.value,
            "output_path": str(self.output_path) if self.output_path else None,
            "steps_run": list(self.steps_run),
            "warnings": list(self.warnings),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "export": self.export.to_dict() if self.export else None,
            "log_path": str(self.log_path) if self.log_path else None,
        }


class BuildSession:
    """One run of the reduction pipeline.

    A session owns one pipeline context, and through it the single mount
    guard and registry session. Every step runs inside a CleanupGuard so no
    exit path leaves the image mounted or a hive loaded.
    """

    def __init__(
        self,
        request: BuildRequest,
        settings: Settings | None = None,
        runner: ToolRunner | None = None,
        build_id: str | None = None,
        status_callback: StatusCallback | None = None,
        logger: logging.Logger | None = None,
        http_client: httpx.Client | None = None,
        steps: list[PipelineStep] | None = None,
    ) -> None:
        self.request = request
        self.settings = settings or get_settings()
        self.build_id = build_id or new_build_id()
        self.status_callback = status_callback
        self.http_client = http_client
        self._own_logger = logger is None
        self.log = logger or session_logger(
            self.build_id, self.settings.logs_dir, level=self.settings.log_level
        )
        self.runner = runner or ToolRunner(
            timeout=self.settings.tool_timeout,
            log_path=self.settings.logs_dir / f"{self.build_id}-tools.log",
            logger=self.log,
        )
        self.steps = steps if steps is not None else build_steps(request.variant, request)
        self.phase = BuildPhase.VALIDATING
        self.context: PipelineContext | None = None
        self._percent = 0.0

    def build(self) -> BuildResult:
        """Run every step of the variant in order.

        Returns:
            BuildResult describing the output and any soft-step warnings.

        Raises:
            StepFailedError: If a fatal step failed; the original error is
                chained and its kind and context are preserved.
        """
        result = BuildResult(
            build_id=self.build_id,
            variant=self.request.variant,
            started_at=datetime.now(timezone.utc),
            log_path=session_log_path(self.log),
        )
        ctx = PipelineContext.create(
            self.request,
            self.settings,
            self.runner,
            self.log,
            http_client=self.http_client,
        )
        ctx.copy_progress = self._copy_progress
        self.context = ctx

        self.log.info(
            "Build %s: %s variant from %s (%d steps)",
            self.build_id,
            self.request.variant.value,
            self.request.source,
            len(self.steps),
        )
        try:
            with CleanupGuard(ctx.guard, ctx.registry, logger=self.log) as cleanup:
                for step in self.steps:
                    self._run_step(ctx, step, result)
                cleanup.clean_exit = True
        except Exception:
            self._set_phase(BuildPhase.ABORTED)
            self._report(self._percent, "Build failed")
            self._after_failure(ctx)
            raise
        finally:
            result.finished_at = datetime.now(timezone.utc)
            if self._own_logger:
                close_session_logger(self.log)

        result.output_path = ctx.output_path
        result.export = ctx.export
        self._set_phase(BuildPhase.DONE)
        self._report(100.0, f"Build complete: {result.output_path}")
        return result

    def _run_step(self, ctx: PipelineContext, step: PipelineStep, result: BuildResult) -> None:
        total = len(self.steps)
        self._set_phase(step.phase)
        self._percent = step.ordinal / total * 100 if total else 100.0
        self._report(self._percent, step.label)
        self.log.info("[%d/%d] %s", step.ordinal, total, step.label)

        try:
            step.action(ctx)
        except Exception as e:
            unexpected = not isinstance(e, (BuildError, OSError))
            if step.fatal:
                self.log.error(
                    "Step %d (%s) failed: %s",
                    step.ordinal,
                    step.label,
                    e,
                    exc_info=unexpected,
                )
                self._set_phase(BuildPhase.ABORTED)
                raise StepFailedError(step.label, step.ordinal, e) from e
            self.log.warning(
                "Step %d (%s) failed, continuing: %s",
                step.ordinal,
                step.label,
                e,
                exc_info=unexpected,
            )
            result.warnings.append(f"{step.label}: {e}")
        result.steps_run.append(step.label)

    def _after_failure(self, ctx: PipelineContext) -> None:
        if not self.settings.keep_on_failure and not ctx.guard.is_active:
            for directory in (ctx.staging_dir, ctx.mount_dir, self.settings.temp_dir):
                if not directory.exists():
                    continue
                try:
                    delete_path(directory)
                except OSError as e:
                    self.log.warning("Cannot remove %s: %s", directory, e)
            return
        self.log.error(
            "Working directories kept for inspection under %s. "
            "If an image is still mounted: %s",
            ctx.staging_dir.parent,
            remediation_hint(ctx.mount_dir),
        )

    def _set_phase(self, phase: BuildPhase) -> None:
        if phase is not self.phase:
            self.log.debug("Phase %s -> %s", self.phase.value, phase.value)
            self.phase = phase

    def _report(self, percent: float, message: str) -> None:
        if self.status_callback is not None:
            self.status_callback(self.phase, percent, message)

    def _copy_progress(self, copied: int, total: int) -> None:
        self._report(self._percent, f"Copied {copied} of {total} bytes")


__all__ = ["BuildResult", "BuildSession", "StatusCallback", "new_build_id"]

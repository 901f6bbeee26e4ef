"""Build request and the shared state pipeline steps operate on."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from tiny11_builder.config import Settings
from tiny11_builder.customize.preinstall import PreinstallApp
from tiny11_builder.customize.theme import Theme
from tiny11_builder.image.export import ExportResult, ExportRetryPolicy
from tiny11_builder.image.inspect import (
    DEFAULT_LANGUAGE,
    boot_wim_path,
    install_esd_path,
    install_wim_path,
)
from tiny11_builder.image.mount import ImageMountGuard
from tiny11_builder.registry.session import RegistryEditSession
from tiny11_builder.tools import ToolRunner, ToolSet
from tiny11_builder.transfer.engine import ConcurrentCopyEngine
from tiny11_builder.transfer.progress import ProgressSink
from tiny11_builder.types import ImageInfo, Variant


class BuildRequest(BaseModel):
    """Parameters of one build.

    Attributes:
        source: Root of the mounted ISO or extracted installation media.
        variant: Reduction profile.
        index: Image index to build; picked automatically when None.
        output: ISO path; the configured default when None.
        theme: Theme directory name; None or "default" skips theming.
        preinstall: Ids of preinstall manifest apps to stage.
        enable_netfx3: Enable .NET Framework 3.5 (core and nano only).
        keep_staging: Keep the working directories after a successful build.
    """

    model_config = ConfigDict(extra="forbid")

    source: Path
    variant: Variant = Variant.STANDARD
    index: int | None = Field(default=None, ge=1)
    output: Path | None = None
    theme: str | None = None
    preinstall: list[str] = Field(default_factory=list)
    enable_netfx3: bool = False
    keep_staging: bool = False


@dataclass
class PipelineContext:
    """Collaborators and mutable build state shared by every step.

    One context exists per BuildSession run. Steps read the request and
    settings, drive the collaborators, and record what later steps need
    (resolved index, image info, language, export result).
    """

    request: BuildRequest
    settings: Settings
    tools: ToolSet
    guard: ImageMountGuard
    registry: RegistryEditSession
    exporter: ExportRetryPolicy
    copier: ConcurrentCopyEngine
    log: logging.Logger
    http_client: httpx.Client | None = None
    copy_progress: ProgressSink | None = None

    index: int | None = None
    image: ImageInfo | None = None
    language: str = DEFAULT_LANGUAGE
    theme: Theme | None = None
    preinstall_apps: list[PreinstallApp] = field(default_factory=list)
    oscdimg: Path | None = None
    export: ExportResult | None = None
    output_path: Path | None = None
    reports: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        request: BuildRequest,
        settings: Settings,
        runner: ToolRunner,
        logger: logging.Logger,
        http_client: httpx.Client | None = None,
    ) -> PipelineContext:
        """Wire the collaborators for one build from settings."""
        tools = ToolSet.from_runner(runner)
        guard = ImageMountGuard(
            tools.dism,
            tools.acl,
            settings.scratch_dir,
            settle_seconds=settings.mount_settle_seconds,
            logger=logger,
        )
        registry = RegistryEditSession(
            tools.reg,
            guard,
            attempts=settings.hive_unload_attempts,
            wait_seconds=settings.hive_unload_wait_seconds,
            logger=logger,
        )
        exporter = ExportRetryPolicy(
            tools.dism,
            attempts=settings.export_attempts,
            backoff_seconds=settings.export_backoff_seconds,
            space_margin=settings.export_space_margin_bytes,
            min_size=settings.export_min_size_bytes,
            logger=logger,
        )
        copier = ConcurrentCopyEngine(settings.max_copy_concurrency, logger=logger)
        return cls(
            request=request,
            settings=settings,
            tools=tools,
            guard=guard,
            registry=registry,
            exporter=exporter,
            copier=copier,
            log=logger,
            http_client=http_client,
        )

    @property
    def variant(self) -> Variant:
        return self.request.variant

    @property
    def staging_dir(self) -> Path:
        return self.settings.staging_dir

    @property
    def mount_dir(self) -> Path:
        return self.settings.scratch_dir

    @property
    def install_wim(self) -> Path:
        return install_wim_path(self.staging_dir)

    @property
    def install_esd(self) -> Path:
        return install_esd_path(self.staging_dir)

    @property
    def boot_wim(self) -> Path:
        return boot_wim_path(self.staging_dir)

    @property
    def architecture(self) -> str:
        return self.image.architecture if self.image else "amd64"

    @property
    def output_iso(self) -> Path:
        return self.request.output or self.settings.default_output_iso


__all__ = ["BuildRequest", "PipelineContext"]

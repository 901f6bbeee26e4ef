"""Shared type definitions for tiny11_builder.

This module contains enums and dataclasses shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Variant(str, Enum):
    """Reduction profile, ordered from least to most aggressive."""

    STANDARD = "standard"
    CORE = "core"
    NANO = "nano"


class MountState(str, Enum):
    """State of the scratch mount point."""

    UNMOUNTED = "unmounted"
    MOUNTED_EDITABLE = "mounted-editable"
    MOUNTED_READ_ONLY = "mounted-read-only"


class StepPolicy(str, Enum):
    """Failure policy of a pipeline step."""

    FATAL = "fatal"
    SOFT = "soft"


class BuildPhase(str, Enum):
    """Phase of a build session.

    Declaration order is the forward order of the state machine; ABORTED
    is terminal and reachable from any non-terminal phase.
    """

    VALIDATING = "validating"
    STAGING_FILES = "staging-files"
    INSPECTING = "inspecting"
    EDITING = "editing"
    REGISTRY_PASS = "registry-pass"
    UNMOUNTED = "unmounted"
    EXPORTING = "exporting"
    BOOT_IMAGE_EDITING = "boot-image-editing"
    PACKAGING = "packaging"
    CLEANUP = "cleanup"
    DONE = "done"
    ABORTED = "aborted"

    @property
    def rank(self) -> int:
        """Position of the phase in forward order."""
        return list(BuildPhase).index(self)

    @property
    def is_terminal(self) -> bool:
        return self in (BuildPhase.DONE, BuildPhase.ABORTED)


class BuildStatus(str, Enum):
    """Status of a submitted build."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class CopyTask:
    """A single file to copy, produced by the tree walk."""

    source: Path
    destination: Path
    size: int


@dataclass(frozen=True)
class ExportAttempt:
    """One invocation of the image export tool."""

    ordinal: int
    source: Path
    destination: Path
    compression: str


@dataclass
class ImageInfo:
    """Metadata for one image index inside a WIM/ESD file.

    Attributes:
        index: Image index (1-based).
        name: Image name, e.g. "Windows 11 Pro".
        description: Image description.
        architecture: Normalised architecture (amd64, arm64, x86).
        size_bytes: Expanded image size reported by DISM.
        language: Default system UI language, when detected.
    """

    index: int
    name: str = ""
    description: str = ""
    architecture: str = "amd64"
    size_bytes: int = 0
    language: str | None = None


@dataclass
class RemovalReport:
    """Counts for a bulk removal operation."""

    removed: int = 0
    failed: int = 0
    skipped: int = 0
    items: list[str] = field(default_factory=list)


__all__ = [
    "BuildPhase",
    "BuildStatus",
    "CopyTask",
    "ExportAttempt",
    "ImageInfo",
    "MountState",
    "RemovalReport",
    "StepPolicy",
    "Variant",
]

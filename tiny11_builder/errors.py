"""Error taxonomy for tiny11_builder.

Every error raised by the core carries a kind, a stable code for
programmatic handling, and a free-form context dict for diagnostics.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Category of a build error."""

    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    INVALID_INPUT = "invalid_input"
    EXTERNAL_TOOL = "external_tool"
    DISK_SPACE = "disk_space"
    NETWORK = "network"
    GENERAL = "general"


class BuildError(Exception):
    """Base error for all build operations."""

    kind: ErrorKind = ErrorKind.GENERAL

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.code = code or self.kind.value
        self.context: dict[str, Any] = dict(context or {})

    def with_context(self, **items: Any) -> BuildError:
        """Attach diagnostic context and return self for chaining."""
        self.context.update(items)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
        }
        if self.context:
            result["context"] = {k: str(v) for k, v in self.context.items()}
        return result

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class NotFoundError(BuildError):
    """Expected artifact is missing."""

    kind = ErrorKind.NOT_FOUND


class PermissionDeniedError(BuildError):
    """Ownership, ACL or lock failure."""

    kind = ErrorKind.PERMISSION


class InvalidInputError(BuildError):
    """Bad index, variant or selection."""

    kind = ErrorKind.INVALID_INPUT


class ExternalToolError(BuildError):
    """A collaborator tool exited with a failure."""

    kind = ErrorKind.EXTERNAL_TOOL

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        output: str = "",
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, context=context)
        self.exit_code = exit_code
        self.output = output


class DiskSpaceError(BuildError):
    """Not enough free space for an export."""

    kind = ErrorKind.DISK_SPACE


class NetworkError(BuildError):
    """Download failure."""

    kind = ErrorKind.NETWORK


class MountStateError(BuildError):
    """Mount operation attempted from the wrong state."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, code="mount_state", context=context)


class HiveUnloadError(ExternalToolError):
    """Registry hives still loaded after all unload attempts."""

    def __init__(self, aliases: list[str], attempts: int) -> None:
        super().__init__(
            f"Failed to unload registry hives: {', '.join(aliases)}",
            code="hive_unload",
            context={"aliases": aliases, "attempts": attempts},
        )
        self.aliases = aliases


class CopyError(BuildError):
    """One or more files failed to copy."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, code="copy_failed", context=context)


class StepFailedError(BuildError):
    """A fatal pipeline step failed; wraps the underlying error."""

    def __init__(self, step: str, ordinal: int, cause: BaseException) -> None:
        if isinstance(cause, BuildError):
            kind = cause.kind
            code = cause.code
            context = dict(cause.context)
        else:
            kind = ErrorKind.GENERAL
            code = "step_failed"
            context = {}
        context.update(step=step, ordinal=ordinal)
        super().__init__(
            f"Step {ordinal} ({step}) failed: {getattr(cause, 'message', cause)}",
            kind=kind,
            code=code,
            context=context,
        )
        self.step = step
        self.ordinal = ordinal


__all__ = [
    "BuildError",
    "CopyError",
    "DiskSpaceError",
    "ErrorKind",
    "ExternalToolError",
    "HiveUnloadError",
    "InvalidInputError",
    "MountStateError",
    "NetworkError",
    "NotFoundError",
    "PermissionDeniedError",
    "StepFailedError",
]

"""Error definitions for MCP tools.

This module defines structured error types with stable codes
that can be surfaced to MCP clients. Build failures reuse the code of the
core BuildError that caused them.
"""

from dataclasses import dataclass
from typing import Any

from tiny11_builder.errors import BuildError

# Error code constants
VALIDATION_ERROR = "validation"
BUILD_NOT_FOUND = "build_not_found"
INTERNAL_ERROR = "internal_error"


@dataclass
class MCPError:
    """Structured error response for MCP tools.

    Attributes:
        code: Stable error code for programmatic handling.
        message: Human-readable error message.
        details: Optional additional error details.
        log_path: Optional path to log file with more information.
    """

    code: str
    message: str
    details: dict[str, Any] | None = None
    log_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        if self.log_path is not None:
            result["log_path"] = self.log_path
        return result


def make_error(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    log_path: str | None = None,
) -> MCPError:
    """Create an MCPError instance."""
    return MCPError(code=code, message=message, details=details, log_path=log_path)


def validation_error(message: str, details: dict[str, Any] | None = None) -> MCPError:
    """Create a validation error."""
    return make_error(VALIDATION_ERROR, message, details)


def build_not_found(build_id: str) -> MCPError:
    """Create a build not found error."""
    return make_error(
        BUILD_NOT_FOUND,
        f"Build not found: {build_id}",
        details={"build_id": build_id},
    )


def from_build_error(error: BuildError) -> MCPError:
    """Convert a core BuildError, keeping its code and context."""
    details: dict[str, Any] = {"kind": error.kind.value}
    if error.context:
        details["context"] = {k: str(v) for k, v in error.context.items()}
    return make_error(error.code, error.message, details)


__all__ = [
    "BUILD_NOT_FOUND",
    "INTERNAL_ERROR",
    "MCPError",
    "VALIDATION_ERROR",
    "build_not_found",
    "from_build_error",
    "make_error",
    "validation_error",
]

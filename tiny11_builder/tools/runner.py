"""Subprocess runner for external Windows servicing tools.

This module handles:
- Executing dism/reg/takeown/icacls/oscdimg with subprocess
- Capturing combined stdout/stderr as text
- Appending every invocation to an optional tool log file
- Mapping timeouts and launch failures to ExternalToolError

All collaborators receive a runner instance, so tests can substitute a fake
that simulates the tools.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from tiny11_builder.errors import ExternalToolError


@dataclass
class ToolResult:
    """Result of an external tool invocation.

    Attributes:
        command: The argument vector that was executed.
        exit_code: Process exit code.
        output: Combined stdout and stderr text.
    """

    command: list[str]
    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ToolRunner:
    """Run external tools synchronously and capture their output."""

    def __init__(
        self,
        timeout: int | None = None,
        log_path: Path | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.timeout = timeout
        self.log_path = log_path
        self._log = logger or logging.getLogger(__name__)

    def run(
        self,
        cmd: list[str],
        check: bool = True,
        timeout: int | None = None,
    ) -> ToolResult:
        """Execute a command and return its result.

        Args:
            cmd: Argument vector; the first element is the executable.
            check: Raise ExternalToolError on a non-zero exit code.
            timeout: Override for the runner timeout in seconds.

        Returns:
            ToolResult with exit code and combined output.

        Raises:
            ExternalToolError: If the tool cannot be started, times out,
                or exits non-zero while check is set.
        """
        effective_timeout = timeout if timeout is not None else self.timeout
        cmd_str = shlex.join(cmd)
        self._log.debug("Executing: %s", cmd_str)

        try:
            completed = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=effective_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            self._append_log(cmd_str, None, f"TIMEOUT after {effective_timeout} seconds")
            raise ExternalToolError(
                f"{cmd[0]} timed out after {effective_timeout} seconds",
                code="tool_timeout",
                context={"command": cmd_str},
            ) from e
        except OSError as e:
            self._append_log(cmd_str, None, str(e))
            raise ExternalToolError(
                f"Failed to execute {cmd[0]}: {e}",
                code="tool_not_found",
                context={"command": cmd_str},
            ) from e

        result = ToolResult(
            command=list(cmd),
            exit_code=completed.returncode,
            output=completed.stdout or "",
        )
        self._append_log(cmd_str, result.exit_code, result.output)

        if check and not result.ok:
            self._log.debug("%s exited with %d", cmd[0], result.exit_code)
            raise ExternalToolError(
                f"{cmd[0]} failed with exit code {result.exit_code}",
                exit_code=result.exit_code,
                output=result.output,
                code="tool_failed",
                context={"command": cmd_str},
            )
        return result

    def _append_log(self, cmd_str: str, exit_code: int | None, output: str) -> None:
        if self.log_path is None:
            return
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with self.log_path.open("a", encoding="utf-8") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {datetime.now(timezone.utc).isoformat()}\n")
            log_file.write(output.rstrip() + "\n")
            log_file.write(f"# Exit code: {exit_code}\n")
            log_file.write("# " + "=" * 70 + "\n\n")


__all__ = ["ToolResult", "ToolRunner"]

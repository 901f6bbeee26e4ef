"""Ownership and ACL wrappers (takeown.exe / icacls.exe).

Used before destructive deletes of protected trees inside the mounted
image. Grants go to the built-in Administrators group by SID so they work
on every display language.
"""

from __future__ import annotations

from pathlib import Path

from tiny11_builder.tools.runner import ToolResult, ToolRunner

ADMINISTRATORS_SID = "*S-1-5-32-544"


class AclTool:
    """Ownership/ACL tool collaborator."""

    def __init__(self, runner: ToolRunner) -> None:
        self.runner = runner

    def take_ownership(self, path: Path, recursive: bool = False) -> ToolResult:
        cmd = ["takeown", "/f", str(path)]
        if recursive:
            cmd += ["/r", "/d", "y"]
        return self.runner.run(cmd)

    def grant_full_control(self, path: Path, recursive: bool = False) -> ToolResult:
        cmd = ["icacls", str(path), "/grant", f"{ADMINISTRATORS_SID}:F"]
        if recursive:
            cmd += ["/t", "/c"]
        return self.runner.run(cmd)

    def unlock(self, path: Path, recursive: bool = False) -> None:
        """Take ownership of a path and grant Administrators full control."""
        self.take_ownership(path, recursive=recursive)
        self.grant_full_control(path, recursive=recursive)


__all__ = ["ADMINISTRATORS_SID", "AclTool"]

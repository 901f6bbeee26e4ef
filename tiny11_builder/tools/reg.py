"""reg.exe wrappers for offline hive editing."""

from __future__ import annotations

from pathlib import Path

from tiny11_builder.tools.runner import ToolResult, ToolRunner

REG = "reg"


class RegTool:
    """Registry-hive tool collaborator."""

    def __init__(self, runner: ToolRunner, executable: str = REG) -> None:
        self.runner = runner
        self.executable = executable

    def load(self, alias: str, hive_file: Path) -> ToolResult:
        return self.runner.run([self.executable, "load", alias, str(hive_file)])

    def unload(self, alias: str) -> ToolResult:
        return self.runner.run([self.executable, "unload", alias])

    def add(self, path: str, name: str, value_type: str, value: str) -> ToolResult:
        return self.runner.run(
            [self.executable, "add", path, "/v", name, "/t", value_type, "/d", value, "/f"]
        )

    def delete(self, path: str) -> ToolResult:
        return self.runner.run([self.executable, "delete", path, "/f"])


__all__ = ["REG", "RegTool"]

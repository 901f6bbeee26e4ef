"""External tool collaborators.

Wrappers for the Windows servicing tools the builder drives:
- dism: image mount/unmount/export/cleanup and package servicing
- reg: offline registry hive load/edit/unload
- acl: takeown/icacls ownership helpers
- runner: the subprocess runner all wrappers share
"""

from dataclasses import dataclass

from tiny11_builder.tools.acl import AclTool
from tiny11_builder.tools.dism import Dism
from tiny11_builder.tools.parse import extract_all, extract_field, parse_size
from tiny11_builder.tools.reg import RegTool
from tiny11_builder.tools.runner import ToolResult, ToolRunner


@dataclass
class ToolSet:
    """The collaborator tools bound to one runner."""

    runner: ToolRunner
    dism: Dism
    reg: RegTool
    acl: AclTool

    @classmethod
    def from_runner(cls, runner: ToolRunner) -> "ToolSet":
        return cls(runner=runner, dism=Dism(runner), reg=RegTool(runner), acl=AclTool(runner))


__all__ = [
    "AclTool",
    "Dism",
    "RegTool",
    "ToolResult",
    "ToolRunner",
    "ToolSet",
    "extract_all",
    "extract_field",
    "parse_size",
]

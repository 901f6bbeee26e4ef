"""Tests for the tool runner, DISM output parsing and tool wrappers."""

import sys
from pathlib import Path

import pytest

from tiny11_builder.errors import ExternalToolError
from tiny11_builder.tools import AclTool, Dism, RegTool, ToolResult, ToolRunner
from tiny11_builder.tools.acl import ADMINISTRATORS_SID
from tiny11_builder.tools.parse import extract_all, extract_field, parse_size


class RecordingRunner(ToolRunner):
    """Runner that records argument vectors instead of executing them."""

    def __init__(self, output: str = "") -> None:
        super().__init__()
        self.commands: list[list[str]] = []
        self.output = output

    def run(self, cmd, check=True, timeout=None):
        self.commands.append(list(cmd))
        return ToolResult(command=list(cmd), exit_code=0, output=self.output)


class TestParse:
    """Test DISM output parsing."""

    def test_extract_field(self) -> None:
        """The value after the first colon should be returned."""
        output = "Index : 3\nName : Windows 11 Pro\nMount Dir : C:\\scratch\n"
        assert extract_field(output, "Name") == "Windows 11 Pro"
        assert extract_field(output, "Mount Dir") == "C:\\scratch"
        assert extract_field(output, "Architecture") is None

    def test_extract_field_requires_colon(self) -> None:
        """A key that only prefixes a longer word should not match."""
        assert extract_field("Indexes : 4\nIndex : 2\n", "Index") == "2"

    def test_extract_all(self) -> None:
        """Every matching line should be returned in order."""
        assert extract_all("Index : 1\nName : a\nIndex : 2\n", "Index") == ["1", "2"]

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("16,384,901,234 bytes", 16_384_901_234),
            ("1.024 bytes", 1024),
            ("", 0),
            (None, 0),
            ("unknown", 0),
        ],
    )
    def test_parse_size(self, value, expected) -> None:
        """Sizes should parse regardless of the thousands separator."""
        assert parse_size(value) == expected


class TestToolRunner:
    """Test subprocess execution."""

    def test_captures_output(self) -> None:
        """stdout and stderr should be captured together."""
        runner = ToolRunner()
        result = runner.run(
            [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"]
        )
        assert result.ok
        assert "out" in result.output
        assert "err" in result.output

    def test_non_zero_exit_raises(self) -> None:
        """A failing tool should raise with its exit code and output."""
        runner = ToolRunner()
        with pytest.raises(ExternalToolError) as exc_info:
            runner.run([sys.executable, "-c", "print('boom'); raise SystemExit(3)"])
        assert exc_info.value.exit_code == 3
        assert "boom" in exc_info.value.output
        assert exc_info.value.code == "tool_failed"

    def test_non_zero_exit_without_check(self) -> None:
        """check=False should return the failed result."""
        result = ToolRunner().run([sys.executable, "-c", "raise SystemExit(2)"], check=False)
        assert result.exit_code == 2
        assert not result.ok

    def test_missing_executable(self, tmp_path) -> None:
        """A tool that cannot be started should raise tool_not_found."""
        with pytest.raises(ExternalToolError) as exc_info:
            ToolRunner().run([str(tmp_path / "no-such-tool")])
        assert exc_info.value.code == "tool_not_found"

    def test_timeout(self) -> None:
        """A tool exceeding the timeout should raise tool_timeout."""
        runner = ToolRunner(timeout=1)
        with pytest.raises(ExternalToolError) as exc_info:
            runner.run([sys.executable, "-c", "import time; time.sleep(10)"])
        assert exc_info.value.code == "tool_timeout"

    def test_log_file(self, tmp_path) -> None:
        """Every invocation should be appended to the tool log."""
        log_path = tmp_path / "logs" / "tools.log"
        runner = ToolRunner(log_path=log_path)
        runner.run([sys.executable, "-c", "print('first')"])
        runner.run([sys.executable, "-c", "raise SystemExit(1)"], check=False)

        content = log_path.read_text(encoding="utf-8")
        assert content.count("# Command:") == 2
        assert "first" in content
        assert "# Exit code: 0" in content
        assert "# Exit code: 1" in content


class TestWrappers:
    """Test argument vectors composed by the tool wrappers."""

    def test_dism_mount(self) -> None:
        """Mount arguments should name image, index and directory."""
        runner = RecordingRunner()
        Dism(runner).mount_image(Path("install.wim"), 6, Path("scratch"), read_only=True)
        assert runner.commands[0] == [
            "dism",
            "/English",
            "/Mount-Image",
            "/ImageFile:install.wim",
            "/Index:6",
            "/MountDir:scratch",
            "/ReadOnly",
        ]

    def test_dism_unmount(self) -> None:
        """Commit and discard should map to the matching switch."""
        runner = RecordingRunner()
        dism = Dism(runner)
        dism.unmount_image(Path("scratch"), commit=True)
        dism.unmount_image(Path("scratch"), commit=False)
        assert runner.commands[0][-1] == "/Commit"
        assert runner.commands[1][-1] == "/Discard"

    def test_dism_export(self) -> None:
        """Export should pass compression and integrity checking."""
        runner = RecordingRunner()
        Dism(runner).export_image(Path("a.wim"), 2, Path("b.esd"), "recovery")
        assert runner.commands[0][2:] == [
            "/Export-Image",
            "/SourceImageFile:a.wim",
            "/SourceIndex:2",
            "/DestinationImageFile:b.esd",
            "/Compress:recovery",
            "/CheckIntegrity",
        ]

    def test_dism_cleanup_image(self) -> None:
        """Component cleanup should reset the base by default."""
        runner = RecordingRunner()
        Dism(runner).cleanup_image(Path("scratch"))
        assert runner.commands[0][-2:] == ["/StartComponentCleanup", "/ResetBase"]

    def test_dism_returns_output(self) -> None:
        """Listing calls should return the tool output text."""
        runner = RecordingRunner(output="Index : 1\n")
        assert Dism(runner).get_wim_info(Path("install.wim")) == "Index : 1\n"

    def test_reg_add(self) -> None:
        """reg add should force-overwrite the value."""
        runner = RecordingRunner()
        RegTool(runner).add("HKLM\\zSOFTWARE\\Test", "Enabled", "REG_DWORD", "1")
        assert runner.commands[0] == [
            "reg",
            "add",
            "HKLM\\zSOFTWARE\\Test",
            "/v",
            "Enabled",
            "/t",
            "REG_DWORD",
            "/d",
            "1",
            "/f",
        ]

    def test_reg_load_and_unload(self) -> None:
        """Hives should be loaded from and unloaded by alias."""
        runner = RecordingRunner()
        reg = RegTool(runner)
        reg.load("HKLM\\zSYSTEM", Path("config/SYSTEM"))
        reg.unload("HKLM\\zSYSTEM")
        assert runner.commands == [
            ["reg", "load", "HKLM\\zSYSTEM", str(Path("config/SYSTEM"))],
            ["reg", "unload", "HKLM\\zSYSTEM"],
        ]

    def test_acl_unlock_recursive(self) -> None:
        """unlock should take ownership and grant Administrators by SID."""
        runner = RecordingRunner()
        AclTool(runner).unlock(Path("WinSxS"), recursive=True)
        assert runner.commands == [
            ["takeown", "/f", "WinSxS", "/r", "/d", "y"],
            ["icacls", "WinSxS", "/grant", f"{ADMINISTRATORS_SID}:F", "/t", "/c"],
        ]

"""Shared fixtures: a fake Windows tool host and a staged source tree.

FakeWindows stands in for dism, reg, takeown, icacls and oscdimg. It keeps
just enough state to check the builder's invariants: which directories are
mounted, which hives are loaded, and every command that was run.
FakeSession replaces BuildSession behind the build service and frontends.
"""

from __future__ import annotations

import shutil
from datetime import datetime, timezone
from pathlib import Path

import pytest

from tiny11_builder.config import Settings
from tiny11_builder.errors import ExternalToolError, NotFoundError
from tiny11_builder.pipeline.session import BuildResult
from tiny11_builder.tools.runner import ToolResult, ToolRunner
from tiny11_builder.types import BuildPhase

WIM_INFO = """Deployment Image Servicing and Management tool
Version: 10.0.22621.1

Details for image : install.wim

Index : 1
Name : Windows 11 Home
Description : Windows 11 Home
Size : 16,000,000,000 bytes

Index : 2
Name : Windows 11 Pro
Description : Windows 11 Pro
Size : 16,500,000,000 bytes

The operation completed successfully.
"""

INDEX_INFO = """Details for image : install.wim

Index : {index}
Name : Windows 11 Pro
Description : Windows 11 Pro
Size : 16,500,000,000 bytes
Architecture : x64
Version : 10.0.22621

The operation completed successfully.
"""

PROVISIONED = """Displayname : Microsoft.BingNews
PackageName : Microsoft.BingNews_4.2.0.0_neutral_~_8wekyb3d8bbwe

Displayname : Microsoft.WindowsCalculator
PackageName : Microsoft.WindowsCalculator_11.0.0.0_neutral_~_8wekyb3d8bbwe

Displayname : Clipchamp.Clipchamp
PackageName : Clipchamp.Clipchamp_2.2.8.0_neutral_~_yxz26nhyzhsrt
"""

PACKAGES = """Package Identity                                                              | State     | Release Type
------------------------------------------------------------------------------ | --------- | ------------
Microsoft-Windows-MediaPlayer-Package~31bf3856ad364e35~amd64~~10.0.22621.1     | Installed | OnDemand Pack
Microsoft-Windows-Foundation-Package~31bf3856ad364e35~amd64~~10.0.22621.1      | Installed | Foundation
"""

EXPORT_SIZE = 4096


class FakeWindows(ToolRunner):
    """In-memory simulation of the Windows servicing tools."""

    def __init__(self) -> None:
        super().__init__()
        self.commands: list[list[str]] = []
        self.mounts: dict[str, str] = {}
        self.loaded_hives: set[str] = set()
        self._failures: list[list] = []

    def fail(self, fragment: str, times: int | None = None, exit_code: int = 1) -> None:
        """Fail commands containing ``fragment``; ``times=None`` fails forever."""
        self._failures.append([fragment, times, exit_code])

    def ran(self, fragment: str) -> list[list[str]]:
        """Commands whose joined text contains ``fragment``."""
        return [cmd for cmd in self.commands if fragment in " ".join(cmd)]

    def run(self, cmd: list[str], check: bool = True, timeout: int | None = None) -> ToolResult:
        self.commands.append(list(cmd))
        text = " ".join(cmd)
        for rule in self._failures:
            fragment, times, exit_code = rule
            if fragment in text and (times is None or times > 0):
                if times is not None:
                    rule[1] = times - 1
                message = f"Error: simulated failure of {fragment}"
                return self._result(cmd, exit_code, message, check)

        tool = Path(cmd[0]).name.lower()
        if tool == "dism":
            return self._dism(cmd, check)
        if tool == "reg":
            return self._reg(cmd, check)
        if tool == "oscdimg.exe":
            Path(cmd[-1]).write_bytes(b"CD001" * 100)
            return self._result(cmd, 0, "Done.", check)
        return self._result(cmd, 0, "SUCCESS", check)

    def _result(self, cmd: list[str], exit_code: int, output: str, check: bool) -> ToolResult:
        if check and exit_code != 0:
            raise ExternalToolError(
                f"{cmd[0]} failed with exit code {exit_code}",
                exit_code=exit_code,
                output=output,
                code="tool_failed",
            )
        return ToolResult(command=list(cmd), exit_code=exit_code, output=output)

    @staticmethod
    def _arg(cmd: list[str], prefix: str) -> str | None:
        for arg in cmd:
            if arg.startswith(prefix):
                return arg[len(prefix) :]
        return None

    def _dism(self, cmd: list[str], check: bool) -> ToolResult:
        ok = "The operation completed successfully."
        if "/Get-WimInfo" in cmd:
            index = self._arg(cmd, "/Index:")
            output = INDEX_INFO.format(index=index) if index else WIM_INFO
            return self._result(cmd, 0, output, check)
        if "/Mount-Image" in cmd:
            mount_dir = self._arg(cmd, "/MountDir:") or ""
            if mount_dir in self.mounts:
                return self._result(cmd, 1, "Error: 0xc1420127 already mounted", check)
            self._populate(Path(mount_dir))
            self.mounts[mount_dir] = self._arg(cmd, "/ImageFile:") or ""
            return self._result(cmd, 0, ok, check)
        if "/Unmount-Image" in cmd:
            mount_dir = self._arg(cmd, "/MountDir:") or ""
            if mount_dir not in self.mounts:
                return self._result(cmd, 1, "Error: 0xc1420126 not mounted", check)
            del self.mounts[mount_dir]
            path = Path(mount_dir)
            if path.exists():
                shutil.rmtree(path)
                path.mkdir()
            return self._result(cmd, 0, ok, check)
        if "/Get-MountedImageInfo" in cmd:
            lines = [f"Mount Dir : {d}\nImage File : {i}" for d, i in self.mounts.items()]
            return self._result(cmd, 0, "\n\n".join(lines) or "No mounted images found.", check)
        if "/Cleanup-Mountpoints" in cmd:
            self.mounts.clear()
            return self._result(cmd, 0, ok, check)
        if "/Export-Image" in cmd:
            destination = Path(self._arg(cmd, "/DestinationImageFile:") or "")
            destination.write_bytes(b"\0" * EXPORT_SIZE)
            return self._result(cmd, 0, ok, check)
        if "/Get-Intl" in cmd:
            return self._result(cmd, 0, "Default system UI language : en-GB\n" + ok, check)
        if "/Get-ProvisionedAppxPackages" in cmd:
            return self._result(cmd, 0, PROVISIONED, check)
        if "/Get-Packages" in cmd:
            return self._result(cmd, 0, PACKAGES, check)
        return self._result(cmd, 0, ok, check)

    def _reg(self, cmd: list[str], check: bool) -> ToolResult:
        verb = cmd[1]
        if verb == "load":
            if not Path(cmd[3]).is_file():
                return self._result(cmd, 1, "ERROR: The system cannot find the file", check)
            self.loaded_hives.add(cmd[2])
        elif verb == "unload":
            if cmd[2] not in self.loaded_hives:
                return self._result(cmd, 1, "ERROR: The parameter is incorrect.", check)
            self.loaded_hives.discard(cmd[2])
        return self._result(cmd, 0, "The operation completed successfully.", check)

    @staticmethod
    def _populate(mount_dir: Path) -> None:
        """Lay out the parts of an offline Windows tree the builder touches."""
        config = mount_dir / "Windows" / "System32" / "config"
        config.mkdir(parents=True, exist_ok=True)
        for hive in ("COMPONENTS", "default", "SOFTWARE", "SYSTEM"):
            (config / hive).write_bytes(b"regf")
        default_user = mount_dir / "Users" / "Default"
        default_user.mkdir(parents=True, exist_ok=True)
        (default_user / "ntuser.dat").write_bytes(b"regf")

        winsxs = mount_dir / "Windows" / "WinSxS"
        (winsxs / "Manifests").mkdir(parents=True, exist_ok=True)
        (winsxs / "Manifests" / "keep.manifest").write_text("manifest")
        (winsxs / "amd64_bloat_31bf3856ad364e35").mkdir(exist_ok=True)
        (winsxs / "amd64_bloat_31bf3856ad364e35" / "bloat.dll").write_bytes(b"MZ")

        edge = mount_dir / "Program Files (x86)" / "Microsoft" / "Edge"
        edge.mkdir(parents=True, exist_ok=True)
        (edge / "msedge.exe").write_bytes(b"MZ")
        (mount_dir / "Windows" / "System32" / "OneDriveSetup.exe").write_bytes(b"MZ")
        recovery = mount_dir / "Windows" / "System32" / "Recovery"
        recovery.mkdir(parents=True, exist_ok=True)
        (recovery / "winre.wim").write_bytes(b"\0" * 64)


def make_source_tree(root: Path, esd: bool = False) -> Path:
    """Create a minimal installation source under ``root``."""
    sources = root / "sources"
    sources.mkdir(parents=True)
    (sources / "boot.wim").write_bytes(b"\0" * 2048)
    image = "install.esd" if esd else "install.wim"
    (sources / image).write_bytes(b"\0" * 8192)
    (sources / "sxs").mkdir()
    (sources / "sxs" / "microsoft-windows-netfx3.cab").write_bytes(b"MSCF")
    (root / "boot").mkdir()
    (root / "boot" / "etfsboot.com").write_bytes(b"\xeb" * 512)
    efi_boot = root / "efi" / "microsoft" / "boot"
    efi_boot.mkdir(parents=True)
    (efi_boot / "efisys.bin").write_bytes(b"\0" * 1024)
    (root / "bootmgr").write_bytes(b"\0" * 256)
    (root / "setup.exe").write_bytes(b"MZ")
    (root / "autorun.inf").write_text("[AutoRun]\n")
    return root


@pytest.fixture
def fake_windows() -> FakeWindows:
    return FakeWindows()


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    return make_source_tree(tmp_path / "iso")


@pytest.fixture
def esd_source_tree(tmp_path: Path) -> Path:
    return make_source_tree(tmp_path / "esd-iso", esd=True)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in tmp_path with every wait set to zero."""
    oscdimg = tmp_path / "adk" / "oscdimg.exe"
    oscdimg.parent.mkdir()
    oscdimg.write_bytes(b"MZ")
    return Settings(
        work_dir=tmp_path / "work",
        oscdimg_path=oscdimg,
        offline=True,
        max_copy_concurrency=2,
        export_backoff_seconds=0,
        export_space_margin_bytes=0,
        export_min_size_bytes=1,
        hive_unload_wait_seconds=0,
        mount_settle_seconds=0,
    )


class FakeSession:
    """BuildSession stand-in whose outcome is chosen by the request's theme.

    ``theme="missing-source"`` raises a NotFoundError, ``theme="crash"``
    raises a RuntimeError; anything else succeeds with one warning.
    """

    def __init__(self, request, settings=None, build_id=None, status_callback=None, **kwargs):
        self.request = request
        self.build_id = build_id
        self.status_callback = status_callback or (lambda phase, percent, message: None)

    def build(self) -> BuildResult:
        self.status_callback(BuildPhase.VALIDATING, 5.0, "Validate installation source")
        if self.request.theme == "missing-source":
            raise NotFoundError("Source not found", context={"path": str(self.request.source)})
        if self.request.theme == "crash":
            raise RuntimeError("unexpected")
        self.status_callback(BuildPhase.DONE, 100.0, "Build complete")
        return BuildResult(
            build_id=self.build_id,
            variant=self.request.variant,
            started_at=datetime.now(timezone.utc),
            output_path=self.request.source / "tiny11.iso",
            warnings=["Cleanup image: failed"],
        )


@pytest.fixture
def session_factory() -> type[FakeSession]:
    return FakeSession


@pytest.fixture
def elevated():
    """Elevation check that always reports administrator rights."""
    return lambda: True

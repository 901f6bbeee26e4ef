"""DISM command wrappers.

Thin, typed wrappers around ``dism.exe`` subcommands used by the builder.
Each method composes the argument vector and delegates to a ToolRunner;
interpretation of the output is left to callers.
"""

from __future__ import annotations

from pathlib import Path

from tiny11_builder.tools.runner import ToolResult, ToolRunner

DISM = "dism"


class Dism:
    """Image-servicing tool collaborator."""

    def __init__(self, runner: ToolRunner, executable: str = DISM) -> None:
        self.runner = runner
        self.executable = executable

    def _run(self, *args: str, check: bool = True) -> ToolResult:
        return self.runner.run([self.executable, "/English", *args], check=check)

    def get_wim_info(self, image_file: Path, index: int | None = None) -> str:
        """Return ``/Get-WimInfo`` output, for one index when given."""
        args = ["/Get-WimInfo", f"/WimFile:{image_file}"]
        if index is not None:
            args.append(f"/Index:{index}")
        return self._run(*args).output

    def mount_image(
        self,
        image_file: Path,
        index: int,
        mount_dir: Path,
        read_only: bool = False,
    ) -> ToolResult:
        args = [
            "/Mount-Image",
            f"/ImageFile:{image_file}",
            f"/Index:{index}",
            f"/MountDir:{mount_dir}",
        ]
        if read_only:
            args.append("/ReadOnly")
        return self._run(*args)

    def unmount_image(self, mount_dir: Path, commit: bool) -> ToolResult:
        return self._run(
            "/Unmount-Image",
            f"/MountDir:{mount_dir}",
            "/Commit" if commit else "/Discard",
        )

    def get_mounted_image_info(self) -> str:
        return self._run("/Get-MountedImageInfo").output

    def cleanup_mountpoints(self) -> ToolResult:
        return self._run("/Cleanup-Mountpoints")

    def export_image(
        self,
        source: Path,
        index: int,
        destination: Path,
        compression: str,
        check_integrity: bool = True,
    ) -> ToolResult:
        args = [
            "/Export-Image",
            f"/SourceImageFile:{source}",
            f"/SourceIndex:{index}",
            f"/DestinationImageFile:{destination}",
            f"/Compress:{compression}",
        ]
        if check_integrity:
            args.append("/CheckIntegrity")
        return self._run(*args)

    def cleanup_image(self, mount_dir: Path, reset_base: bool = True) -> ToolResult:
        args = [f"/Image:{mount_dir}", "/Cleanup-Image", "/StartComponentCleanup"]
        if reset_base:
            args.append("/ResetBase")
        return self._run(*args)

    def get_intl(self, mount_dir: Path) -> str:
        return self._run(f"/Image:{mount_dir}", "/Get-Intl").output

    def get_provisioned_packages(self, mount_dir: Path) -> str:
        return self._run(f"/Image:{mount_dir}", "/Get-ProvisionedAppxPackages").output

    def remove_provisioned_package(self, mount_dir: Path, package: str) -> ToolResult:
        return self._run(
            f"/Image:{mount_dir}",
            "/Remove-ProvisionedAppxPackage",
            f"/PackageName:{package}",
        )

    def get_packages(self, mount_dir: Path) -> str:
        return self._run(f"/Image:{mount_dir}", "/Get-Packages", "/Format:Table").output

    def remove_package(self, mount_dir: Path, package: str) -> ToolResult:
        return self._run(f"/Image:{mount_dir}", "/Remove-Package", f"/PackageName:{package}")

    def enable_feature(self, mount_dir: Path, feature: str, source: Path) -> ToolResult:
        return self._run(
            f"/Image:{mount_dir}",
            "/Enable-Feature",
            f"/FeatureName:{feature}",
            "/All",
            f"/Source:{source}",
        )


__all__ = ["DISM", "Dism"]

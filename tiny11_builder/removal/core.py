"""Component removal for the core variant.

This module handles:
- Reducing WinSxS to the servicing-stack essentials
- Replacing the WinRE image with an empty placeholder
- Enabling .NET Framework 3.5 from the installation media
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from tiny11_builder.errors import BuildError, NotFoundError
from tiny11_builder.removal.files import delete_path, unlock_quietly
from tiny11_builder.tools.acl import AclTool
from tiny11_builder.tools.dism import Dism
from tiny11_builder.types import RemovalReport

logger = logging.getLogger(__name__)

WINSXS_KEEP_COMMON = ("Catalogs", "FileMaps", "Fusion", "InstallTemp", "Manifests")

_CONTROLS = "microsoft.windows.common-controls_6595b64144ccf1df_*"
_CONTROLS_RES = "microsoft.windows.c..-controls.resources_6595b64144ccf1df_*"
_GDIPLUS = "microsoft.windows.gdiplus_6595b64144ccf1df_*"
_PROXYSTUB = "microsoft.windows.i..utomation.proxystub_6595b64144ccf1df_*"
_ISOLATION = "microsoft.windows.isolationautomation_6595b64144ccf1df_*"
_VC80 = "microsoft.vc80.crt_1fc8b3b9a1e18e3b_*"
_VC90 = "microsoft.vc90.crt_1fc8b3b9a1e18e3b_*"

WINSXS_KEEP_ARCH: dict[str, tuple[str, ...]] = {
    "amd64": (
        f"x86_{_CONTROLS}",
        f"x86_{_GDIPLUS}",
        f"x86_{_PROXYSTUB}",
        f"x86_{_ISOLATION}",
        "x86_microsoft-windows-s..ngstack-onecorebase_31bf3856ad364e35_*",
        "x86_microsoft-windows-s..stack-termsrv-extra_31bf3856ad364e35_*",
        "x86_microsoft-windows-servicingstack_31bf3856ad364e35_*",
        "x86_microsoft-windows-servicingstack-inetsrv_*",
        "x86_microsoft-windows-servicingstack-onecore_*",
        f"x86_{_VC80}",
        f"x86_{_VC90}",
        f"x86_{_CONTROLS_RES}",
        f"amd64_{_VC80}",
        f"amd64_{_VC90}",
        f"amd64_{_CONTROLS_RES}",
        f"amd64_{_CONTROLS}",
        f"amd64_{_GDIPLUS}",
        f"amd64_{_PROXYSTUB}",
        f"amd64_{_ISOLATION}",
        "amd64_microsoft-windows-s..stack-inetsrv-extra_31bf3856ad364e35_*",
        "amd64_microsoft-windows-s..stack-msg.resources_31bf3856ad364e35_*",
        "amd64_microsoft-windows-s..stack-termsrv-extra_31bf3856ad364e35_*",
        "amd64_microsoft-windows-servicingstack_31bf3856ad364e35_*",
        "amd64_microsoft-windows-servicingstack-inetsrv_31bf3856ad364e35_*",
        "amd64_microsoft-windows-servicingstack-msg_31bf3856ad364e35_*",
        "amd64_microsoft-windows-servicingstack-onecore_31bf3856ad364e35_*",
    ),
    "arm64": (
        f"x86_{_VC80}",
        f"x86_{_VC90}",
        f"x86_{_CONTROLS_RES}",
        f"x86_{_CONTROLS}",
        f"x86_{_GDIPLUS}",
        f"x86_{_PROXYSTUB}",
        f"x86_{_ISOLATION}",
        f"arm_{_CONTROLS_RES}",
        f"arm_{_CONTROLS}",
        f"arm_{_GDIPLUS}",
        f"arm_{_PROXYSTUB}",
        f"arm_{_ISOLATION}",
        f"arm64_{_VC80}",
        f"arm64_{_VC90}",
        f"arm64_{_CONTROLS_RES}",
        f"arm64_{_CONTROLS}",
        f"arm64_{_GDIPLUS}",
        f"arm64_{_PROXYSTUB}",
        f"arm64_{_ISOLATION}",
        "arm64_microsoft-windows-servicing-adm_31bf3856ad364e35_*",
        "arm64_microsoft-windows-servicingcommon_31bf3856ad364e35_*",
        "arm64_microsoft-windows-servicing-onecore-uapi_31bf3856ad364e35_*",
        "arm64_microsoft-windows-servicingstack_31bf3856ad364e35_*",
        "arm64_microsoft-windows-servicingstack-inetsrv_31bf3856ad364e35_*",
        "arm64_microsoft-windows-servicingstack-msg_31bf3856ad364e35_*",
        "arm64_microsoft-windows-servicingstack-onecore_31bf3856ad364e35_*",
    ),
}

NETFX3_FEATURE = "NetFX3"


def winsxs_keep_patterns(architecture: str) -> list[str]:
    return [*WINSXS_KEEP_COMMON, *WINSXS_KEEP_ARCH.get(architecture, ())]


def _tree_size(path: Path) -> int:
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += os.path.getsize(os.path.join(root, name))
            except OSError:
                continue
    return total


def reduce_winsxs(
    acl: AclTool,
    mount_dir: Path,
    architecture: str = "amd64",
    log: logging.Logger = logger,
) -> RemovalReport:
    """Replace WinSxS with a copy holding only the keep-list entries.

    Matching entries are copied into ``WinSxS_edit``; then ownership of
    WinSxS is taken, the original is deleted and the copy renamed into place.

    Raises:
        NotFoundError: If the WinSxS directory does not exist.
        OSError: If the original cannot be deleted or the copy renamed.
    """
    winsxs = mount_dir / "Windows" / "WinSxS"
    edit = mount_dir / "Windows" / "WinSxS_edit"
    if not winsxs.is_dir():
        raise NotFoundError(f"WinSxS not found: {winsxs}", context={"path": winsxs})

    size_before = _tree_size(winsxs)
    edit.mkdir(parents=True, exist_ok=True)

    report = RemovalReport()
    for pattern in winsxs_keep_patterns(architecture):
        for match in sorted(winsxs.glob(pattern)):
            destination = edit / match.name
            try:
                if match.is_dir():
                    shutil.copytree(match, destination, dirs_exist_ok=True)
                else:
                    shutil.copy2(match, destination)
            except OSError as e:
                log.warning("Failed to keep %s: %s", match.name, e)
                report.failed += 1
                continue
            report.items.append(match.name)

    log.info("Kept %d WinSxS entries (%d failed)", len(report.items), report.failed)
    unlock_quietly(acl, winsxs, log)
    delete_path(winsxs)
    os.replace(edit, winsxs)

    size_after = _tree_size(winsxs)
    report.removed = 1
    log.info("WinSxS reduced from %d to %d bytes", size_before, size_after)
    return report


def remove_winre(acl: AclTool, mount_dir: Path, log: logging.Logger = logger) -> RemovalReport:
    """Delete ``winre.wim`` and leave an empty placeholder in its place."""
    report = RemovalReport()
    recovery = mount_dir / "Windows" / "System32" / "Recovery"
    winre = recovery / "winre.wim"
    if not winre.is_file():
        log.info("winre.wim not present")
        report.skipped += 1
        return report

    unlock_quietly(acl, recovery, log)
    try:
        delete_path(winre)
    except OSError as e:
        log.warning("Failed to delete %s: %s", winre, e)
        report.failed += 1
        return report
    winre.touch()
    report.removed += 1
    report.items.append(winre.name)
    return report


def enable_netfx3(
    dism: Dism,
    mount_dir: Path,
    staging_dir: Path,
    log: logging.Logger = logger,
) -> None:
    """Enable .NET Framework 3.5 from ``sources/sxs`` of the staged media.

    Raises:
        NotFoundError: If the media carries no ``sources/sxs`` payload.
        ExternalToolError: If DISM fails to enable the feature.
    """
    source = staging_dir / "sources" / "sxs"
    if not source.is_dir():
        raise NotFoundError(f".NET 3.5 payload not found: {source}", context={"path": source})
    log.info("Enabling %s from %s", NETFX3_FEATURE, source)
    try:
        dism.enable_feature(mount_dir, NETFX3_FEATURE, source)
    except BuildError as e:
        e.with_context(feature=NETFX3_FEATURE)
        raise


__all__ = [
    "NETFX3_FEATURE",
    "WINSXS_KEEP_ARCH",
    "WINSXS_KEEP_COMMON",
    "enable_netfx3",
    "reduce_winsxs",
    "remove_winre",
    "winsxs_keep_patterns",
]

"""Aggressive removal for the nano variant.

Every operation here is best-effort: individual entries that cannot be
deleted are logged and counted in the returned RemovalReport.
"""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path

from tiny11_builder.registry.session import (
    SYSTEM,
    ApplyReport,
    RegistryEditSession,
    RegistryKeyDeletion,
)
from tiny11_builder.removal.files import remove_paths, unlock_quietly
from tiny11_builder.tools.acl import AclTool
from tiny11_builder.types import RemovalReport

logger = logging.getLogger(__name__)

# Relative to the mount directory
OWNERSHIP_TARGETS = (
    Path("Windows/System32/DriverStore/FileRepository"),
    Path("Windows/Fonts"),
    Path("Windows/Web"),
    Path("Windows/Help"),
    Path("Windows/Cursors"),
    Path("Program Files (x86)/Microsoft"),
    Path("Program Files/WindowsApps"),
    Path("Windows/System32/Microsoft-Edge-Webview"),
    Path("Windows/System32/Recovery"),
    Path("Windows/WinSxS"),
    Path("Windows/assembly"),
    Path("ProgramData/Microsoft/Windows Defender"),
    Path("Windows/System32/InputMethod"),
    Path("Windows/Speech"),
    Path("Windows/Temp"),
    Path("Windows/System32/OneDriveSetup.exe"),
)

DRIVER_PATTERNS = (
    "prn*",
    "scan*",
    "mfd*",
    "wscsmd.inf*",
    "tapdrv*",
    "rdpbus.inf*",
    "tdibth.inf*",
)

FONT_KEEP_PATTERNS = (
    "segoe*",
    "tahoma*",
    "marlett.ttf",
    "8541oem.fon",
    "segui*",
    "consol*",
    "lucon*",
    "calibri*",
    "arial*",
    "times*",
    "cou*",
    "8*",
)

FONT_REMOVE_PATTERNS = (
    "mingli*",
    "msjh*",
    "msyh*",
    "malgun*",
    "meiryo*",
    "yugoth*",
    "segoeuihistoric.ttf",
)

SYSTEM_FOLDERS = (
    Path("Windows/Speech/Engines/TTS"),
    Path("ProgramData/Microsoft/Windows Defender/Definition Updates"),
    Path("Windows/System32/InputMethod/CHS"),
    Path("Windows/System32/InputMethod/CHT"),
    Path("Windows/System32/InputMethod/JPN"),
    Path("Windows/System32/InputMethod/KOR"),
    Path("Windows/Temp"),
    Path("Windows/Web"),
    Path("Windows/Help"),
    Path("Windows/Cursors"),
)

SERVICES = (
    "Spooler",
    "PrintNotify",
    "Fax",
    "RemoteRegistry",
    "diagsvc",
    "WerSvc",
    "PcaSvc",
    "MapsBroker",
    "WalletService",
    "BthAvctpSvc",
    "BluetoothUserService",
    "wuauserv",
    "UsoSvc",
    "WaaSMedicSvc",
)


def _matches_any(name: str, patterns: tuple[str, ...]) -> bool:
    lowered = name.lower()
    return any(fnmatch.fnmatchcase(lowered, pattern) for pattern in patterns)


def take_ownership(acl: AclTool, mount_dir: Path, log: logging.Logger = logger) -> RemovalReport:
    """Take ownership of everything the nano removals will delete.

    The report counts owned paths as ``removed`` and missing ones as
    ``skipped``.
    """
    report = RemovalReport()
    for relative in OWNERSHIP_TARGETS:
        path = mount_dir / relative
        if not path.exists():
            report.skipped += 1
            continue
        unlock_quietly(acl, path, log)
        report.removed += 1
        report.items.append(str(relative))
    log.info("Took ownership of %d paths", report.removed)
    return report


def remove_native_images(mount_dir: Path, log: logging.Logger = logger) -> RemovalReport:
    """Delete precompiled .NET ``NativeImages_*`` folders."""
    assembly = mount_dir / "Windows" / "assembly"
    report = RemovalReport()
    if not assembly.is_dir():
        return report
    targets = sorted(p for p in assembly.glob("NativeImages_*") if p.is_dir())
    return remove_paths(targets, report, log)


def slim_driver_store(mount_dir: Path, log: logging.Logger = logger) -> RemovalReport:
    """Delete printer, scanner and other non-essential driver packages."""
    repository = mount_dir / "Windows" / "System32" / "DriverStore" / "FileRepository"
    report = RemovalReport()
    if not repository.is_dir():
        log.warning("DriverStore not found: %s", repository)
        return report
    targets = sorted(
        entry
        for entry in repository.iterdir()
        if entry.is_dir() and _matches_any(entry.name, DRIVER_PATTERNS)
    )
    return remove_paths(targets, report, log)


def font_is_kept(name: str) -> bool:
    """A font survives if it matches the keep list and not the remove list."""
    if _matches_any(name, FONT_REMOVE_PATTERNS):
        return False
    return _matches_any(name, FONT_KEEP_PATTERNS)


def slim_fonts(mount_dir: Path, log: logging.Logger = logger) -> RemovalReport:
    """Delete every font file not on the keep list."""
    fonts = mount_dir / "Windows" / "Fonts"
    report = RemovalReport()
    if not fonts.is_dir():
        log.warning("Fonts directory not found: %s", fonts)
        return report
    targets = sorted(
        entry for entry in fonts.iterdir() if entry.is_file() and not font_is_kept(entry.name)
    )
    remove_paths(targets, report, log)
    log.info("Fonts: %d removed, %d failed", report.removed, report.failed)
    return report


def remove_system_folders(mount_dir: Path, log: logging.Logger = logger) -> RemovalReport:
    """Delete speech engines, IMEs, help, web content and similar folders."""
    return remove_paths([mount_dir / relative for relative in SYSTEM_FOLDERS], RemovalReport(), log)


def service_deletions() -> list[RegistryKeyDeletion]:
    return [
        RegistryKeyDeletion(f"{SYSTEM}\\ControlSet001\\Services\\{service}") for service in SERVICES
    ]


def remove_services(registry: RegistryEditSession, log: logging.Logger = logger) -> ApplyReport:
    """Delete service keys from the loaded SYSTEM hive.

    Services that do not exist show up as failures; that is expected on
    editions that never shipped them.
    """
    report = registry.apply(service_deletions())
    log.info("Services: %d removed, %d absent or failed", report.applied, report.failed)
    return report


__all__ = [
    "DRIVER_PATTERNS",
    "FONT_KEEP_PATTERNS",
    "FONT_REMOVE_PATTERNS",
    "OWNERSHIP_TARGETS",
    "SERVICES",
    "SYSTEM_FOLDERS",
    "font_is_kept",
    "remove_native_images",
    "remove_services",
    "remove_system_folders",
    "service_deletions",
    "slim_driver_store",
    "slim_fonts",
    "take_ownership",
]

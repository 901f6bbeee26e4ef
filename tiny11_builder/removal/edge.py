"""Edge, OneDrive and telemetry scheduled task removal."""

from __future__ import annotations

import logging
from pathlib import Path

from tiny11_builder.removal.files import remove_paths
from tiny11_builder.tools.acl import AclTool
from tiny11_builder.types import RemovalReport

logger = logging.getLogger(__name__)

EDGE_PROGRAM_DIRS = ("Edge", "EdgeUpdate", "EdgeCore")

# Relative to Windows/System32/Tasks/Microsoft/Windows
TELEMETRY_TASKS = (
    Path("Application Experience/Microsoft Compatibility Appraiser"),
    Path("Application Experience/ProgramDataUpdater"),
    Path("Customer Experience Improvement Program"),
    Path("Chkdsk/Proxy"),
    Path("Windows Error Reporting/QueueReporting"),
)


def remove_edge(
    acl: AclTool,
    mount_dir: Path,
    architecture: str = "amd64",
    log: logging.Logger = logger,
) -> RemovalReport:
    """Delete Edge program folders, the WebView runtime and its WinSxS copies."""
    report = RemovalReport()
    program_root = mount_dir / "Program Files (x86)" / "Microsoft"
    remove_paths([program_root / name for name in EDGE_PROGRAM_DIRS], report, log)

    webview = mount_dir / "Windows" / "System32" / "Microsoft-Edge-Webview"
    remove_paths([webview], report, log, acl=acl)

    winsxs = mount_dir / "Windows" / "WinSxS"
    if winsxs.is_dir():
        pattern = f"{architecture}_microsoft-edge-webview_*"
        matches = sorted(winsxs.glob(pattern))
        log.info("Found %d WinSxS entries matching %s", len(matches), pattern)
        remove_paths(matches, report, log, acl=acl)

    log.info("Edge removal: %d removed, %d failed", report.removed, report.failed)
    return report


def remove_onedrive(acl: AclTool, mount_dir: Path, log: logging.Logger = logger) -> RemovalReport:
    """Delete the OneDrive setup stub from System32."""
    report = remove_paths(
        [mount_dir / "Windows" / "System32" / "OneDriveSetup.exe"],
        RemovalReport(),
        log,
        acl=acl,
    )
    if report.skipped:
        log.info("OneDriveSetup.exe not present")
    return report


def remove_scheduled_tasks(mount_dir: Path, log: logging.Logger = logger) -> RemovalReport:
    """Delete telemetry scheduled task definitions."""
    tasks_root = mount_dir / "Windows" / "System32" / "Tasks" / "Microsoft" / "Windows"
    report = remove_paths([tasks_root / task for task in TELEMETRY_TASKS], RemovalReport(), log)
    log.info(
        "Scheduled tasks: %d removed, %d failed, %d absent",
        report.removed,
        report.failed,
        report.skipped,
    )
    return report


__all__ = [
    "EDGE_PROGRAM_DIRS",
    "TELEMETRY_TASKS",
    "remove_edge",
    "remove_onedrive",
    "remove_scheduled_tasks",
]

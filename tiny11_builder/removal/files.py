"""Filesystem deletion helpers shared by the removal operations."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path

from tiny11_builder.errors import BuildError
from tiny11_builder.tools.acl import AclTool
from tiny11_builder.types import RemovalReport


def make_writable(root: Path) -> None:
    """Clear the read-only flag on every entry under ``root``."""
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            entry = os.path.join(dirpath, name)
            os.chmod(entry, os.stat(entry).st_mode | stat.S_IWRITE)


def unlock_quietly(acl: AclTool | None, path: Path, logger: logging.Logger) -> None:
    """Take ownership of ``path``; failures are logged only."""
    if acl is None:
        return
    try:
        acl.unlock(path, recursive=path.is_dir())
    except BuildError as e:
        logger.warning("Cannot take ownership of %s: %s", path, e)


def delete_path(path: Path) -> None:
    """Delete a file or directory tree, clearing read-only flags as needed."""
    if path.is_dir() and not path.is_symlink():
        try:
            shutil.rmtree(path)
        except PermissionError:
            make_writable(path)
            shutil.rmtree(path)
    else:
        try:
            path.unlink()
        except PermissionError:
            os.chmod(path, stat.S_IWRITE)
            path.unlink()


def remove_paths(
    paths: list[Path],
    report: RemovalReport,
    logger: logging.Logger,
    acl: AclTool | None = None,
) -> RemovalReport:
    """Delete each path, counting removed, failed and missing entries.

    Args:
        paths: Files or directories to delete.
        report: Report to update.
        logger: Logger for per-item outcomes.
        acl: When given, ownership is taken before each delete.

    Returns:
        The updated report.
    """
    for path in paths:
        if not path.exists():
            report.skipped += 1
            continue
        unlock_quietly(acl, path, logger)
        try:
            delete_path(path)
        except OSError as e:
            logger.warning("Failed to remove %s: %s", path, e)
            report.failed += 1
            continue
        logger.debug("Removed %s", path)
        report.removed += 1
        report.items.append(path.name)
    return report


__all__ = ["delete_path", "make_writable", "remove_paths", "unlock_quietly"]

"""Mount lifecycle for the single scratch mount point.

This module handles:
- Tracking the MountState of the scratch directory
- Preparing the directory (discarding stale mounts, taking ownership)
- Mounting and unmounting with commit-or-discard semantics
- Emergency cleanup when a build leaves the mount or hives active

No code path may return to the caller with a stale mount or a loaded hive:
every mounting call site runs inside ``ImageMountGuard.mounted()`` or a
``CleanupGuard``.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING

from tiny11_builder.errors import BuildError, MountStateError, PermissionDeniedError
from tiny11_builder.removal.files import delete_path
from tiny11_builder.types import MountState

if TYPE_CHECKING:
    from tiny11_builder.registry.session import RegistryEditSession
    from tiny11_builder.tools.acl import AclTool
    from tiny11_builder.tools.dism import Dism

# Subdirectory whose presence marks a populated Windows mount
MARKER_DIR = "Windows"


def remediation_hint(mount_dir: Path) -> str:
    """Operator instructions for a mount that could not be released."""
    return (
        f"Run 'dism /Cleanup-Mountpoints' and delete {mount_dir}, "
        "or reboot and delete it afterwards."
    )


class ImageMountGuard:
    """Owns the scratch mount point and its MountState."""

    def __init__(
        self,
        dism: Dism,
        acl: AclTool,
        mount_dir: Path,
        settle_seconds: float = 2.0,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.dism = dism
        self.acl = acl
        self.mount_dir = mount_dir
        self.settle_seconds = settle_seconds
        self._log = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._state = MountState.UNMOUNTED
        self._image: Path | None = None
        self._index: int | None = None

    @property
    def state(self) -> MountState:
        return self._state

    @property
    def is_active(self) -> bool:
        """True when this guard believes an image is mounted."""
        return self._state is not MountState.UNMOUNTED

    @property
    def image(self) -> Path | None:
        return self._image

    def mount(self, image_path: Path, index: int, read_only: bool = False) -> None:
        """Mount an image index into the scratch directory.

        Args:
            image_path: WIM file to mount.
            index: Image index inside the WIM.
            read_only: Mount read-only (changes are always discarded).

        Raises:
            MountStateError: If an image is already mounted.
            PermissionDeniedError: If the scratch directory cannot be cleared.
            ExternalToolError: If DISM fails to mount.
        """
        if self.is_active:
            raise MountStateError(
                f"Cannot mount {image_path}: {self._image} is already mounted",
                mount_dir=self.mount_dir,
                state=self._state.value,
            )

        self._prepare_mount_dir()

        if not read_only:
            self._unlock_image(image_path)

        self._log.info(
            "Mounting %s index %d at %s%s",
            image_path,
            index,
            self.mount_dir,
            " (read-only)" if read_only else "",
        )
        self.dism.mount_image(image_path, index, self.mount_dir, read_only=read_only)
        self._state = MountState.MOUNTED_READ_ONLY if read_only else MountState.MOUNTED_EDITABLE
        self._image = image_path
        self._index = index

    def unmount(self, commit: bool) -> None:
        """Unmount the current image, committing or discarding changes.

        A no-op when nothing is mounted. Read-only mounts always discard.
        The scratch directory itself is left in place.

        Raises:
            ExternalToolError: If DISM fails; the state stays mounted.
        """
        if not self.is_active:
            return
        if self._state is MountState.MOUNTED_READ_ONLY:
            commit = False
        self._log.info("Unmounting %s (%s)", self.mount_dir, "commit" if commit else "discard")
        self.dism.unmount_image(self.mount_dir, commit=commit)
        self._mark_unmounted()

    def is_mounted(self) -> bool:
        """Check with DISM and the filesystem whether the mount is live.

        Both must agree: the directory holds the Windows marker and DISM
        lists the mount directory among mounted images.
        """
        try:
            if not self.mount_dir.is_dir() or not any(self.mount_dir.iterdir()):
                return False
        except OSError:
            return False
        if not (self.mount_dir / MARKER_DIR).is_dir():
            return False
        try:
            listing = self.dism.get_mounted_image_info()
        except BuildError as e:
            self._log.debug("Mounted image query failed: %s", e)
            return False
        return str(self.mount_dir).lower() in listing.lower()

    def emergency_unmount(self) -> bool:
        """Force-discard the mount after an abnormal exit.

        Returns:
            True if the scratch directory is no longer mounted.
        """
        if not self.is_active and not self.is_mounted():
            return True

        self._log.warning("Emergency unmount of %s (discarding changes)", self.mount_dir)
        try:
            self.dism.unmount_image(self.mount_dir, commit=False)
            self._mark_unmounted()
            return True
        except BuildError as e:
            self._log.error("Discard unmount failed: %s", e)

        try:
            self.dism.cleanup_mountpoints()
        except BuildError as e:
            self._log.error("Mount point cleanup failed: %s", e)

        if self.is_mounted():
            self._log.error(
                "Image is still mounted at %s. %s",
                self.mount_dir,
                remediation_hint(self.mount_dir),
            )
            return False
        self._mark_unmounted()
        return True

    @contextmanager
    def mounted(
        self,
        image_path: Path,
        index: int,
        read_only: bool = False,
    ) -> Iterator[Path]:
        """Mount for the duration of a block.

        Commits on a clean exit of an editable mount; discards otherwise,
        including when the block raises.

        Yields:
            The mount directory.
        """
        self.mount(image_path, index, read_only=read_only)
        clean_exit = False
        try:
            yield self.mount_dir
            clean_exit = True
        finally:
            if clean_exit:
                self.unmount(commit=not read_only)
            else:
                self.emergency_unmount()

    def _mark_unmounted(self) -> None:
        self._state = MountState.UNMOUNTED
        self._image = None
        self._index = None

    def _prepare_mount_dir(self) -> None:
        path = self.mount_dir
        if path.exists() and any(path.iterdir()):
            self._log.warning("Mount directory %s is not empty, clearing it", path)
            try:
                self.dism.unmount_image(path, commit=False)
            except BuildError as e:
                self._log.debug("No stale mount to discard at %s: %s", path, e)
            self._sleep(self.settle_seconds)
            try:
                shutil.rmtree(path)
            except OSError as first_error:
                self._log.warning("Clearing %s failed (%s), taking ownership", path, first_error)
                try:
                    self.acl.unlock(path, recursive=True)
                except BuildError as e:
                    self._log.warning("Taking ownership of %s failed: %s", path, e)
                try:
                    delete_path(path)
                except OSError as e:
                    raise PermissionDeniedError(
                        f"Cannot clear mount directory {path}. {remediation_hint(path)}",
                        context={"path": path},
                    ) from e

        path.mkdir(parents=True, exist_ok=True)
        if any(path.iterdir()):
            raise PermissionDeniedError(
                f"Mount directory {path} is not empty. {remediation_hint(path)}",
                context={"path": path},
            )

    def _unlock_image(self, image_path: Path) -> None:
        try:
            mode = image_path.stat().st_mode
            if not mode & stat.S_IWRITE:
                os.chmod(image_path, mode | stat.S_IWRITE)
        except OSError as e:
            self._log.warning("Cannot clear read-only flag on %s: %s", image_path, e)
        try:
            self.acl.unlock(image_path)
        except BuildError as e:
            self._log.warning("Cannot take ownership of %s: %s", image_path, e)


class CleanupGuard:
    """Scoped guard that releases the mount and hives on abnormal exit.

    Set ``clean_exit`` once the guarded work has finished in order. On exit
    the guard unloads hives and discards the mount unless ``clean_exit`` is
    set and nothing is left active. Exceptions from the block propagate.
    """

    def __init__(
        self,
        guard: ImageMountGuard,
        registry: RegistryEditSession | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.guard = guard
        self.registry = registry
        self.clean_exit = False
        self.triggered = False
        self._log = logger or logging.getLogger(__name__)

    def __enter__(self) -> CleanupGuard:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        hives_left = bool(self.registry and self.registry.loaded_aliases)
        if self.clean_exit and not hives_left and not self.guard.is_active:
            return
        self.triggered = True
        self._log.warning("Running emergency cleanup")
        if self.registry is not None and self.registry.loaded_aliases:
            try:
                self.registry.unload()
            except BuildError as e:
                self._log.error("Hive unload during cleanup failed: %s", e)
        self.guard.emergency_unmount()


__all__ = ["MARKER_DIR", "CleanupGuard", "ImageMountGuard", "remediation_hint"]

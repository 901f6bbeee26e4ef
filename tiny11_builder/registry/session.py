"""Offline registry hive editing against the mounted image.

A session loads the image's hives under temporary ``HKLM\\z*`` aliases,
applies a list of tweaks and unloads them again. It only operates while
the mount guard reports an active mount, and every loaded alias is tracked
so the cleanup guard can unload whatever is left after a failure.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Union

from tiny11_builder.errors import BuildError, ExternalToolError, HiveUnloadError, MountStateError

if TYPE_CHECKING:
    from tiny11_builder.image.mount import ImageMountGuard
    from tiny11_builder.tools.reg import RegTool

COMPONENTS = "HKLM\\zCOMPONENTS"
DEFAULT = "HKLM\\zDEFAULT"
NTUSER = "HKLM\\zNTUSER"
SOFTWARE = "HKLM\\zSOFTWARE"
SYSTEM = "HKLM\\zSYSTEM"

# Alias -> hive file relative to the mount directory
HIVE_FILES: dict[str, Path] = {
    COMPONENTS: Path("Windows/System32/config/COMPONENTS"),
    DEFAULT: Path("Windows/System32/config/default"),
    NTUSER: Path("Users/Default/ntuser.dat"),
    SOFTWARE: Path("Windows/System32/config/SOFTWARE"),
    SYSTEM: Path("Windows/System32/config/SYSTEM"),
}

DEFAULT_UNLOAD_ATTEMPTS = 3
DEFAULT_UNLOAD_WAIT_SECONDS = 2.0


def hive_of(path: str) -> str:
    """Return the hive alias a registry path lives under."""
    parts = path.split("\\")
    return "\\".join(parts[:2])


@dataclass(frozen=True)
class RegistryValue:
    """Set one value: ``reg add <path> /v <name> /t <type> /d <value> /f``."""

    path: str
    name: str
    value_type: str
    value: str

    @property
    def hive(self) -> str:
        return hive_of(self.path)


@dataclass(frozen=True)
class RegistryKeyDeletion:
    """Delete a key and its subtree: ``reg delete <path> /f``."""

    path: str

    @property
    def hive(self) -> str:
        return hive_of(self.path)


Tweak = Union[RegistryValue, RegistryKeyDeletion]


@dataclass
class ApplyReport:
    """Counts for one ``apply()`` call."""

    applied: int = 0
    failed: int = 0
    skipped: int = 0
    failures: list[str] = field(default_factory=list)


class RegistryEditSession:
    """Load, edit and unload the hives of the mounted image."""

    def __init__(
        self,
        reg: RegTool,
        guard: ImageMountGuard,
        attempts: int = DEFAULT_UNLOAD_ATTEMPTS,
        wait_seconds: float = DEFAULT_UNLOAD_WAIT_SECONDS,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.reg = reg
        self.guard = guard
        self.attempts = max(1, attempts)
        self.wait_seconds = wait_seconds
        self._log = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._loaded: list[str] = []
        self.unload_failures: list[str] = []

    @property
    def loaded_aliases(self) -> frozenset[str]:
        return frozenset(self._loaded)

    def load(self, aliases: Iterable[str] | None = None) -> list[str]:
        """Load hives from the mounted image.

        Args:
            aliases: Aliases to load; all known hives when None.

        Returns:
            Aliases loaded by this call.

        Raises:
            MountStateError: If no image is mounted.
            ExternalToolError: If not a single hive could be loaded.
        """
        if not self.guard.is_active:
            raise MountStateError(
                "Cannot load registry hives: no image is mounted",
                mount_dir=self.guard.mount_dir,
            )

        wanted = list(aliases) if aliases is not None else list(HIVE_FILES)
        loaded = []
        last_error: BuildError | None = None
        for alias in wanted:
            if alias in self._loaded:
                continue
            hive_file = self.guard.mount_dir / HIVE_FILES[alias]
            try:
                self.reg.load(alias, hive_file)
            except BuildError as e:
                self._log.warning("Failed to load hive %s from %s: %s", alias, hive_file, e)
                last_error = e
                continue
            self._loaded.append(alias)
            loaded.append(alias)

        if not loaded and not self._loaded:
            raise ExternalToolError(
                "No registry hive could be loaded",
                code="hive_load",
                context={"mount_dir": self.guard.mount_dir},
            ) from last_error

        self._log.info("Loaded registry hives: %s", ", ".join(loaded) or "none")
        return loaded

    def apply(self, tweaks: Iterable[Tweak]) -> ApplyReport:
        """Apply tweaks to the loaded hives.

        Tweaks targeting a hive that is not loaded are skipped. Individual
        failures are logged and counted, never raised.
        """
        report = ApplyReport()
        for tweak in tweaks:
            if tweak.hive not in self._loaded:
                report.skipped += 1
                continue
            try:
                if isinstance(tweak, RegistryValue):
                    self.reg.add(tweak.path, tweak.name, tweak.value_type, tweak.value)
                else:
                    self.reg.delete(tweak.path)
            except BuildError as e:
                self._log.warning("Registry tweak failed on %s: %s", tweak.path, e)
                report.failed += 1
                report.failures.append(tweak.path)
                continue
            report.applied += 1

        self._log.info(
            "Registry tweaks: %d applied, %d failed, %d skipped",
            report.applied,
            report.failed,
            report.skipped,
        )
        return report

    def unload(self) -> None:
        """Unload every loaded hive, retrying locked ones.

        If hives are still loaded after the last round, the session is
        marked unloaded anyway so later cleanup passes do not loop on them,
        and the leftovers are recorded in ``unload_failures``.

        Raises:
            HiveUnloadError: If some hives could not be unloaded.
        """
        if not self._loaded:
            return

        for attempt in range(1, self.attempts + 1):
            if attempt > 1:
                self._log.info("Waiting before hive unload retry %d/%d", attempt, self.attempts)
                self._sleep(self.wait_seconds)
            for alias in list(self._loaded):
                try:
                    self.reg.unload(alias)
                except BuildError as e:
                    self._log.warning(
                        "Failed to unload hive %s (attempt %d/%d): %s",
                        alias,
                        attempt,
                        self.attempts,
                        e,
                    )
                    continue
                self._loaded.remove(alias)
            if not self._loaded:
                self._log.info("Registry hives unloaded")
                return

        remaining = list(self._loaded)
        self._loaded.clear()
        self.unload_failures.extend(remaining)
        self._log.error(
            "Hives still loaded after %d attempts: %s", self.attempts, ", ".join(remaining)
        )
        raise HiveUnloadError(remaining, self.attempts)


__all__ = [
    "COMPONENTS",
    "DEFAULT",
    "HIVE_FILES",
    "NTUSER",
    "SOFTWARE",
    "SYSTEM",
    "ApplyReport",
    "RegistryEditSession",
    "RegistryKeyDeletion",
    "RegistryValue",
    "Tweak",
    "hive_of",
]

"""Software staged into the image for installation on first boot.

The manifest ``<work_dir>/preinstall/preinstall.json`` (or ``.yaml``) lists
installers relative to that directory. Staging copies each selected
installer to ``Windows/Setup/PreInstall`` and appends its command to
``Windows/Setup/Scripts/SetupComplete.cmd``, which Windows setup runs once
installation finishes.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from tiny11_builder.errors import InvalidInputError
from tiny11_builder.io import find_document, load_document
from tiny11_builder.types import RemovalReport

logger = logging.getLogger(__name__)

MANIFEST_DOCUMENT = "preinstall"
SILENT_SWITCHES = " /S /Silent"


class PreinstallApp(BaseModel):
    """One installer entry of the manifest."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    description: str = ""
    version: str = ""
    source: str
    install_cmd: str = ""
    silent: bool = False

    @property
    def command(self) -> str:
        """Command line run by SetupComplete.cmd."""
        command = self.install_cmd or Path(self.source).name
        if self.silent:
            command += SILENT_SWITCHES
        return command


class PreinstallManifest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    apps: list[PreinstallApp] = Field(default_factory=list)

    def filter_apps(self, selected: Iterable[str] | None = None) -> list[PreinstallApp]:
        """Return the apps to stage.

        An empty selection means every app in the manifest. Unknown ids in
        the selection raise.

        Raises:
            InvalidInputError: If a selected id is not in the manifest.
        """
        wanted = list(selected or [])
        if not wanted:
            return list(self.apps)
        known = {app.id for app in self.apps}
        unknown = [app_id for app_id in wanted if app_id not in known]
        if unknown:
            raise InvalidInputError(
                f"Unknown preinstall apps: {', '.join(unknown)}",
                context={"unknown": unknown, "available": sorted(known)},
            )
        return [app for app in self.apps if app.id in wanted]


def load_manifest(preinstall_dir: Path) -> PreinstallManifest:
    """Load the preinstall manifest.

    A missing manifest is an empty, disabled one.

    Raises:
        InvalidInputError: If the manifest cannot be parsed or validated.
    """
    document = find_document(preinstall_dir, MANIFEST_DOCUMENT)
    if document is None:
        logger.debug("No preinstall manifest in %s", preinstall_dir)
        return PreinstallManifest()
    try:
        return PreinstallManifest.model_validate(load_document(document))
    except (ValueError, ValidationError) as e:
        raise InvalidInputError(
            f"Invalid preinstall manifest: {e}", context={"path": document}
        ) from e


def setup_complete_entry(app: PreinstallApp) -> str:
    return (
        "@echo off\n"
        f"echo Installing {app.name or app.id}...\n"
        "cd %SystemRoot%\\Setup\\PreInstall\n"
        f"{app.command}\n"
    )


def stage_apps(
    mount_dir: Path,
    preinstall_dir: Path,
    apps: Iterable[PreinstallApp],
    log: logging.Logger = logger,
) -> RemovalReport:
    """Copy installers into the image and register their setup commands.

    Apps whose installer is missing or cannot be copied are logged and
    counted as failed; the others are still staged.

    Returns:
        RemovalReport where ``removed`` counts staged apps.
    """
    target_dir = mount_dir / "Windows" / "Setup" / "PreInstall"
    script = mount_dir / "Windows" / "Setup" / "Scripts" / "SetupComplete.cmd"
    report = RemovalReport()

    for app in apps:
        source = preinstall_dir / app.source
        if not source.is_file():
            log.warning("Installer for %s not found: %s", app.id, source)
            report.failed += 1
            continue
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target_dir / source.name)
            script.parent.mkdir(parents=True, exist_ok=True)
            with script.open("a", encoding="utf-8", newline="\r\n") as f:
                f.write(setup_complete_entry(app))
        except OSError as e:
            log.warning("Failed to stage %s: %s", app.id, e)
            report.failed += 1
            continue
        log.info("Staged %s %s", app.name or app.id, app.version)
        report.removed += 1
        report.items.append(app.id)
    return report


__all__ = [
    "PreinstallApp",
    "PreinstallManifest",
    "load_manifest",
    "setup_complete_entry",
    "stage_apps",
]

"""Unattended-setup answer file.

The answer file hides the OOBE screens, creates a local administrator,
disables dynamic update and installs compact. An operator-supplied
``<resources_dir>/autounattend.xml`` wins over one shipped with the theme,
which wins over the rendered default.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from jinja2 import Environment, PackageLoader, select_autoescape

logger = logging.getLogger(__name__)

ANSWER_FILE = "autounattend.xml"
DEFAULT_ACCOUNT = "Admin"

_env = Environment(
    loader=PackageLoader("tiny11_builder", "templates"),
    autoescape=select_autoescape(enabled_extensions=("xml",)),
    keep_trailing_newline=True,
)


def render_autounattend(
    architecture: str = "amd64",
    account: str = DEFAULT_ACCOUNT,
    image_index: int = 1,
    compact: bool = True,
) -> str:
    """Render the default answer file for an architecture."""
    template = _env.get_template(ANSWER_FILE)
    return template.render(
        architecture=architecture,
        account=account,
        image_index=image_index,
        compact=compact,
    )


def install_autounattend(
    mount_dir: Path,
    iso_root: Path,
    resources_dir: Path,
    theme_dir: Path | None = None,
    architecture: str = "amd64",
    log: logging.Logger = logger,
) -> Path | None:
    """Place the answer file in the image's Sysprep folder and the ISO root.

    Returns:
        The file that was copied, or None when the default was rendered.
    """
    candidates = [resources_dir / ANSWER_FILE]
    if theme_dir is not None:
        candidates.append(theme_dir / ANSWER_FILE)
    source = next((candidate for candidate in candidates if candidate.is_file()), None)

    targets = [mount_dir / "Windows" / "System32" / "Sysprep" / ANSWER_FILE, iso_root / ANSWER_FILE]
    if source is None:
        log.info("Using the default %s for %s", ANSWER_FILE, architecture)
        content = render_autounattend(architecture)
        for target in targets:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return None

    log.info("Using %s", source)
    for target in targets:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
    return source


__all__ = ["ANSWER_FILE", "install_autounattend", "render_autounattend"]

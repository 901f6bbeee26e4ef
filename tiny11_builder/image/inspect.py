"""Source validation and image inspection.

This module handles:
- Checking that an installation source tree has the expected images
- Listing and describing the indexes of a WIM/ESD file
- Detecting the default UI language through a read-only mount
- Choosing a default index when none is requested
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from tiny11_builder.errors import BuildError, InvalidInputError, NotFoundError
from tiny11_builder.tools.parse import extract_all, extract_field, parse_size
from tiny11_builder.types import ImageInfo

if TYPE_CHECKING:
    from tiny11_builder.image.mount import ImageMountGuard
    from tiny11_builder.tools.dism import Dism

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en-US"

ARCHITECTURE_ALIASES = {
    "x64": "amd64",
    "amd64": "amd64",
    "arm64": "arm64",
    "x86": "x86",
}


def boot_wim_path(root: Path) -> Path:
    return root / "sources" / "boot.wim"


def install_wim_path(root: Path) -> Path:
    return root / "sources" / "install.wim"


def install_esd_path(root: Path) -> Path:
    return root / "sources" / "install.esd"


def validate_source(root: Path) -> Path:
    """Check that ``root`` looks like a Windows installation source.

    Args:
        root: Root of the mounted ISO or extracted installation media.

    Returns:
        Path of the install image (``install.wim`` preferred over ``.esd``).

    Raises:
        NotFoundError: If the tree, boot.wim or both install images are missing.
    """
    if not root.is_dir():
        raise NotFoundError(f"Source directory not found: {root}", context={"path": root})

    boot = boot_wim_path(root)
    if not boot.is_file():
        raise NotFoundError(
            f"boot.wim not found in {root / 'sources'}",
            context={"path": boot},
        )

    for candidate in (install_wim_path(root), install_esd_path(root)):
        if candidate.is_file():
            return candidate

    raise NotFoundError(
        f"Neither install.wim nor install.esd found in {root / 'sources'}",
        context={"path": root / "sources"},
    )


def normalize_architecture(value: str | None) -> str:
    if not value:
        return "amd64"
    return ARCHITECTURE_ALIASES.get(value.strip().lower(), value.strip().lower())


def parse_indexes(output: str) -> list[int]:
    """Return every ``Index : N`` value in ``/Get-WimInfo`` output."""
    indexes = []
    for value in extract_all(output, "Index"):
        try:
            indexes.append(int(value))
        except ValueError:
            continue
    return indexes


def list_images(dism: Dism, image_file: Path) -> list[ImageInfo]:
    """List the images stored in a WIM/ESD file.

    Args:
        dism: DISM collaborator.
        image_file: WIM or ESD file.

    Returns:
        One ImageInfo per index, with name and description filled in.
    """
    output = dism.get_wim_info(image_file)
    images: list[ImageInfo] = []
    current: ImageInfo | None = None
    for line in output.splitlines():
        index = extract_field(line, "Index")
        if index is not None:
            try:
                current = ImageInfo(index=int(index))
            except ValueError:
                current = None
                continue
            images.append(current)
            continue
        if current is None:
            continue
        name = extract_field(line, "Name")
        if name is not None:
            current.name = name
            continue
        description = extract_field(line, "Description")
        if description is not None:
            current.description = description
            continue
        size = extract_field(line, "Size")
        if size is not None:
            current.size_bytes = parse_size(size)
    return images


def inspect_image(dism: Dism, image_file: Path, index: int) -> ImageInfo:
    """Describe one image index.

    Raises:
        InvalidInputError: If ``index`` is not present in the file.
    """
    available = parse_indexes(dism.get_wim_info(image_file))
    if index not in available:
        raise InvalidInputError(
            f"Image index {index} not found in {image_file.name}",
            context={"index": index, "available": available},
        )

    output = dism.get_wim_info(image_file, index=index)
    return ImageInfo(
        index=index,
        name=extract_field(output, "Name") or "",
        description=extract_field(output, "Description") or "",
        architecture=normalize_architecture(extract_field(output, "Architecture")),
        size_bytes=parse_size(extract_field(output, "Size")),
    )


def parse_language(output: str) -> str | None:
    """Extract the default UI language from ``/Get-Intl`` output."""
    for key in ("Default system UI language", "Default language"):
        value = extract_field(output, key)
        if value:
            return value
    return None


def detect_language(guard: ImageMountGuard, dism: Dism, image_file: Path, index: int) -> str:
    """Detect the default system UI language of an image.

    Mounts the image read-only for the duration of the query. Any failure
    falls back to en-US.
    """
    try:
        with guard.mounted(image_file, index, read_only=True) as mount_dir:
            language = parse_language(dism.get_intl(mount_dir))
    except BuildError as e:
        logger.warning("Language detection failed, assuming %s: %s", DEFAULT_LANGUAGE, e)
        return DEFAULT_LANGUAGE
    return language or DEFAULT_LANGUAGE


def select_default_index(images: list[ImageInfo]) -> int:
    """Pick the index to build when none was given.

    Returns:
        The first image whose name ends with "Pro", otherwise 1.
    """
    for image in images:
        if image.name.strip().endswith("Pro"):
            return image.index
    return 1


__all__ = [
    "DEFAULT_LANGUAGE",
    "boot_wim_path",
    "detect_language",
    "inspect_image",
    "install_esd_path",
    "install_wim_path",
    "list_images",
    "normalize_architecture",
    "parse_indexes",
    "parse_language",
    "select_default_index",
    "validate_source",
]

"""ISO packaging: oscdimg discovery and invocation, answer file."""

from tiny11_builder.iso.autounattend import install_autounattend, render_autounattend
from tiny11_builder.iso.oscdimg import (
    create_iso,
    download_oscdimg,
    ensure_oscdimg,
    find_oscdimg,
    prune_iso_root,
)

__all__ = [
    "create_iso",
    "download_oscdimg",
    "ensure_oscdimg",
    "find_oscdimg",
    "install_autounattend",
    "prune_iso_root",
    "render_autounattend",
]

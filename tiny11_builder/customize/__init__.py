"""Optional image customisation: themes and preinstalled software."""

from tiny11_builder.customize.preinstall import (
    PreinstallApp,
    PreinstallManifest,
    load_manifest,
    stage_apps,
)
from tiny11_builder.customize.theme import (
    Theme,
    ThemeReport,
    apply_theme,
    is_default_theme,
    list_themes,
    load_theme,
)

__all__ = [
    "PreinstallApp",
    "PreinstallManifest",
    "Theme",
    "ThemeReport",
    "apply_theme",
    "is_default_theme",
    "list_themes",
    "load_manifest",
    "load_theme",
    "stage_apps",
]

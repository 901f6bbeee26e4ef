"""Theme loading and application.

A theme is a directory under ``<work_dir>/themes/<name>`` holding a
``theme.json`` (or ``theme.yaml``) plus the assets it references: wallpapers,
logos, sounds, and optional branding and colour-scheme documents.

Applying a theme copies assets into the mounted image and writes registry
values through the active RegistryEditSession, so it must run while the
hives are loaded. Every section is best-effort: a failing section is logged
and counted, and the remaining sections still run.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from tiny11_builder.errors import BuildError, InvalidInputError, NotFoundError
from tiny11_builder.io import find_document, load_document
from tiny11_builder.registry.session import (
    NTUSER,
    SOFTWARE,
    SYSTEM,
    RegistryEditSession,
    RegistryValue,
    Tweak,
)

logger = logging.getLogger(__name__)

DEFAULT_THEME = "default"
THEME_DOCUMENT = "theme"

CURRENT_VERSION = f"{SOFTWARE}\\Microsoft\\Windows NT\\CurrentVersion"
OEM_INFORMATION = f"{SOFTWARE}\\Microsoft\\Windows\\CurrentVersion\\OEMInformation"
PERSONALIZE = f"{NTUSER}\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Themes\\Personalize"
EXPLORER_ADVANCED = f"{NTUSER}\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Explorer\\Advanced"
USER_DWM = f"{NTUSER}\\SOFTWARE\\Microsoft\\Windows\\DWM"
MACHINE_DWM = f"{SOFTWARE}\\Microsoft\\Windows\\DWM"


class _ThemeModel(BaseModel):
    """Base for theme documents: camelCase keys, unknown keys ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class BrandingSection(_ThemeModel):
    enabled: bool = False
    config_file: str = "branding.json"


class WallpapersSection(_ThemeModel):
    enabled: bool = False
    desktop: str = ""
    lockscreen: str = ""
    set_as_default: bool = False


class ColorsSection(_ThemeModel):
    enabled: bool = False
    config_file: str = "colors.json"
    apply_transparency: bool = False


class ImagesSection(_ThemeModel):
    enabled: bool = False
    system_logo: str = ""
    oem_logo: str = ""
    user_tile: str = ""
    brand_icon: str = ""


class BootSection(_ThemeModel):
    enabled: bool = False
    custom_logo: bool = False
    logo_file: str = ""
    background_color: str = ""


class SoundsSection(_ThemeModel):
    enabled: bool = False
    startup: str = ""
    shutdown: str = ""
    logon: str = ""


class AdvancedSettings(_ThemeModel):
    accent_color: str = ""
    taskbar_transparency: bool = False
    rounded_corners: bool = False
    show_file_extensions: bool = False
    show_hidden_files: bool = False


class AdvancedSection(_ThemeModel):
    enabled: bool = False
    settings: AdvancedSettings = Field(default_factory=AdvancedSettings)


class Theme(_ThemeModel):
    """Theme definition loaded from ``theme.json``/``theme.yaml``.

    Attributes:
        name: Display name.
        version: Theme version string.
        author: Theme author.
        description: Free-form description.
        directory: Directory the theme was loaded from; asset paths in the
            sections are relative to it.
    """

    name: str
    version: str = ""
    author: str = ""
    description: str = ""
    enabled: bool = True
    branding: BrandingSection = Field(default_factory=BrandingSection)
    wallpapers: WallpapersSection = Field(default_factory=WallpapersSection)
    colors: ColorsSection = Field(default_factory=ColorsSection)
    images: ImagesSection = Field(default_factory=ImagesSection)
    boot: BootSection = Field(default_factory=BootSection)
    sounds: SoundsSection = Field(default_factory=SoundsSection)
    advanced: AdvancedSection = Field(default_factory=AdvancedSection)
    directory: Path | None = Field(default=None, exclude=True)

    @property
    def slug(self) -> str:
        """Folder name used for the theme's assets inside the image."""
        if self.directory is not None:
            return self.directory.name
        return self.name.replace(" ", "")

    def asset(self, relative: str) -> Path:
        return (self.directory or Path(".")) / relative


class SystemInfo(_ThemeModel):
    registered_owner: str = ""
    registered_organization: str = ""
    manufacturer: str = ""
    model: str = ""
    support_hours: str = ""
    support_phone: str = ""
    support_url: str = Field(default="", alias="supportURL")


class VersionInfo(_ThemeModel):
    display_version: str = ""
    build_branch: str = ""
    build_lab: str = ""


class BrandingData(_ThemeModel):
    """Contents of the theme's branding document."""

    product_name: str = ""
    system_info: SystemInfo = Field(default_factory=SystemInfo)
    version_info: VersionInfo = Field(default_factory=VersionInfo)


class ColorRegistry(_ThemeModel):
    apply_system_wide: bool = False
    accent_color: str = ""
    start_color: str = ""


class ColorScheme(_ThemeModel):
    """Contents of the theme's colour-scheme document."""

    name: str = ""
    description: str = ""
    registry: ColorRegistry = Field(default_factory=ColorRegistry)


ModelT = TypeVar("ModelT", bound=_ThemeModel)


@dataclass
class ThemeReport:
    """Outcome of applying a theme."""

    theme: str
    applied: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    tweaks: int = 0


def is_default_theme(name: str | None) -> bool:
    """True for names that mean "leave the stock look alone"."""
    return not name or name.strip().lower() == DEFAULT_THEME


def list_themes(themes_dir: Path) -> list[str]:
    """Return the names of theme directories that carry a theme document."""
    if not themes_dir.is_dir():
        return []
    return sorted(
        entry.name
        for entry in themes_dir.iterdir()
        if entry.is_dir() and find_document(entry, THEME_DOCUMENT) is not None
    )


def load_theme(themes_dir: Path, name: str) -> Theme:
    """Load and validate a theme by directory name.

    Raises:
        NotFoundError: If the theme directory has no theme document.
        InvalidInputError: If the document cannot be parsed or validated.
    """
    directory = themes_dir / name
    document = find_document(directory, THEME_DOCUMENT)
    if document is None:
        raise NotFoundError(
            f"Theme not found: {name}",
            context={"path": directory, "available": list_themes(themes_dir)},
        )
    try:
        theme = Theme.model_validate(load_document(document))
    except (ValueError, ValidationError) as e:
        raise InvalidInputError(f"Invalid theme {name}: {e}", context={"path": document}) from e
    theme.directory = directory
    logger.info("Loaded theme %s %s by %s", theme.name, theme.version, theme.author or "unknown")
    return theme


def validate_theme(theme: Theme) -> list[str]:
    """Return warnings for assets the theme references but does not ship."""
    referenced: list[tuple[str, str]] = []
    if theme.wallpapers.enabled:
        referenced += [
            ("desktop wallpaper", theme.wallpapers.desktop),
            ("lock screen wallpaper", theme.wallpapers.lockscreen),
        ]
    if theme.images.enabled:
        referenced += [
            ("system logo", theme.images.system_logo),
            ("OEM logo", theme.images.oem_logo),
            ("user tile", theme.images.user_tile),
            ("brand icon", theme.images.brand_icon),
        ]
    if theme.boot.enabled and theme.boot.custom_logo:
        referenced.append(("boot logo", theme.boot.logo_file))
    return [
        f"{label} not found: {relative}"
        for label, relative in referenced
        if relative and not theme.asset(relative).is_file()
    ]


def parse_color(value: str) -> str:
    """Convert ``#RRGGBB`` to the ``0xBBGGRR`` DWORD form Windows stores.

    Values already in ``0x`` form pass through; anything else is black.
    """
    value = value.strip().lstrip("#")
    if value.lower().startswith("0x"):
        return value
    if len(value) == 6:
        return f"0x{value[4:6]}{value[2:4]}{value[0:2]}"
    return "0x000000"


def _sz(path: str, name: str, value: str) -> RegistryValue:
    return RegistryValue(path, name, "REG_SZ", value)


def _dword(path: str, name: str, value: str) -> RegistryValue:
    return RegistryValue(path, name, "REG_DWORD", value)


def _copy_asset(theme: Theme, relative: str, destination: Path, report: ThemeReport) -> bool:
    """Copy one asset; a missing source is a warning, not an error."""
    source = theme.asset(relative)
    if not source.is_file():
        logger.warning("Theme asset not found: %s", relative)
        return False
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, destination)
    report.files.append(str(destination))
    return True


def _load_sub_document(theme: Theme, relative: str, model: type[ModelT]) -> ModelT:
    path = theme.asset(relative)
    if not path.is_file():
        raise NotFoundError(f"Theme document not found: {relative}", context={"path": path})
    try:
        return model.model_validate(load_document(path))
    except (ValueError, ValidationError) as e:
        raise InvalidInputError(f"Invalid theme document {relative}: {e}") from e


def branding_tweaks(branding: BrandingData) -> list[Tweak]:
    """Product, owner and OEM information values for non-empty fields."""
    info = branding.system_info
    version = branding.version_info
    candidates = [
        (CURRENT_VERSION, "ProductName", branding.product_name),
        (CURRENT_VERSION, "DisplayVersion", version.display_version),
        (CURRENT_VERSION, "BuildBranch", version.build_branch),
        (CURRENT_VERSION, "BuildLab", version.build_lab),
        (CURRENT_VERSION, "RegisteredOwner", info.registered_owner),
        (CURRENT_VERSION, "RegisteredOrganization", info.registered_organization),
        (OEM_INFORMATION, "Manufacturer", info.manufacturer),
        (OEM_INFORMATION, "Model", info.model),
        (OEM_INFORMATION, "SupportHours", info.support_hours),
        (OEM_INFORMATION, "SupportPhone", info.support_phone),
        (OEM_INFORMATION, "SupportURL", info.support_url),
    ]
    return [_sz(path, name, value) for path, name, value in candidates if value]


def _branding(theme: Theme, mount_dir: Path, report: ThemeReport) -> list[Tweak]:
    branding = _load_sub_document(theme, theme.branding.config_file, BrandingData)
    return branding_tweaks(branding)


def _wallpapers(theme: Theme, mount_dir: Path, report: ThemeReport) -> list[Tweak]:
    target = mount_dir / "Windows" / "Web" / "Wallpaper" / theme.slug
    in_image = f"%SystemRoot%\\Web\\Wallpaper\\{theme.slug}"
    tweaks: list[Tweak] = []
    section = theme.wallpapers
    if section.desktop and _copy_asset(theme, section.desktop, target / "desktop.jpg", report):
        if section.set_as_default:
            tweaks.append(
                _sz(f"{NTUSER}\\Control Panel\\Desktop", "Wallpaper", f"{in_image}\\desktop.jpg")
            )
    if section.lockscreen and _copy_asset(
        theme, section.lockscreen, target / "lockscreen.jpg", report
    ):
        tweaks.append(
            _sz(
                f"{SOFTWARE}\\Policies\\Microsoft\\Windows\\Personalization",
                "LockScreenImage",
                f"{in_image}\\lockscreen.jpg",
            )
        )
    return tweaks


def _colors(theme: Theme, mount_dir: Path, report: ThemeReport) -> list[Tweak]:
    scheme = _load_sub_document(theme, theme.colors.config_file, ColorScheme)
    registry = scheme.registry
    tweaks: list[Tweak] = []
    if not registry.apply_system_wide:
        logger.info("Colour scheme is not applied system wide")
        return tweaks
    if registry.accent_color:
        tweaks.append(_dword(MACHINE_DWM, "AccentColor", registry.accent_color))
        tweaks.append(_dword(USER_DWM, "AccentColor", registry.accent_color))
    if registry.start_color:
        tweaks.append(_dword(PERSONALIZE, "ColorPrevalence", "1"))
    if theme.colors.apply_transparency:
        tweaks.append(_dword(PERSONALIZE, "EnableTransparency", "1"))
    return tweaks


def _images(theme: Theme, mount_dir: Path, report: ThemeReport) -> list[Tweak]:
    oem_dir = mount_dir / "Windows" / "System32" / "oem"
    section = theme.images
    tweaks: list[Tweak] = []
    if section.oem_logo and _copy_asset(theme, section.oem_logo, oem_dir / "logo.bmp", report):
        tweaks.append(_sz(OEM_INFORMATION, "Logo", "%SystemRoot%\\System32\\oem\\logo.bmp"))
    if section.system_logo:
        _copy_asset(theme, section.system_logo, oem_dir / "systemlogo.png", report)
    if section.brand_icon:
        _copy_asset(theme, section.brand_icon, oem_dir / "brand.ico", report)
    if section.user_tile:
        pictures = mount_dir / "ProgramData" / "Microsoft" / "User Account Pictures"
        _copy_asset(theme, section.user_tile, pictures / "user.png", report)
    return tweaks


def _boot(theme: Theme, mount_dir: Path, report: ThemeReport) -> list[Tweak]:
    section = theme.boot
    if not section.custom_logo or not section.logo_file:
        return []
    destination = mount_dir / "Windows" / "System32" / "bootlogo.bmp"
    if not _copy_asset(theme, section.logo_file, destination, report):
        raise NotFoundError(f"Boot logo not found: {section.logo_file}")
    if not section.background_color:
        return []
    return [
        _dword(
            f"{SYSTEM}\\ControlSet001\\Control\\BootControl",
            "BootProgressColor",
            parse_color(section.background_color),
        )
    ]


# Theme field -> (file name in the image, sound event key)
SOUND_EVENTS = {
    "startup": ("startup.wav", "SystemStart"),
    "shutdown": ("shutdown.wav", "SystemExit"),
    "logon": ("logon.wav", "WindowsLogon"),
}


def _sounds(theme: Theme, mount_dir: Path, report: ThemeReport) -> list[Tweak]:
    media = mount_dir / "Windows" / "Media" / theme.slug
    tweaks: list[Tweak] = []
    for attribute, (filename, event) in SOUND_EVENTS.items():
        relative = getattr(theme.sounds, attribute)
        if not relative or not _copy_asset(theme, relative, media / filename, report):
            continue
        tweaks.append(
            _sz(
                f"{NTUSER}\\AppEvents\\Schemes\\Apps\\.Default\\{event}\\.Current",
                "",
                f"%SystemRoot%\\Media\\{theme.slug}\\{filename}",
            )
        )
    return tweaks


def _advanced(theme: Theme, mount_dir: Path, report: ThemeReport) -> list[Tweak]:
    settings = theme.advanced.settings
    tweaks: list[Tweak] = []
    if settings.taskbar_transparency:
        tweaks.append(_dword(PERSONALIZE, "EnableTransparency", "1"))
    if settings.rounded_corners:
        tweaks.append(_dword(USER_DWM, "UseRoundedCorners", "1"))
    if settings.show_file_extensions:
        tweaks.append(_dword(EXPLORER_ADVANCED, "HideFileExt", "0"))
    if settings.show_hidden_files:
        tweaks.append(_dword(EXPLORER_ADVANCED, "Hidden", "1"))
    if settings.accent_color:
        tweaks.append(_dword(USER_DWM, "ColorizationColor", parse_color(settings.accent_color)))
    return tweaks


Section = Callable[[Theme, Path, ThemeReport], list[Tweak]]


def _sections(theme: Theme) -> list[tuple[str, bool, Section]]:
    return [
        ("branding", theme.branding.enabled, _branding),
        ("wallpapers", theme.wallpapers.enabled, _wallpapers),
        ("colors", theme.colors.enabled, _colors),
        ("images", theme.images.enabled, _images),
        ("boot", theme.boot.enabled, _boot),
        ("sounds", theme.sounds.enabled, _sounds),
        ("advanced", theme.advanced.enabled, _advanced),
    ]


def apply_theme(
    registry: RegistryEditSession,
    mount_dir: Path,
    theme: Theme,
    log: logging.Logger = logger,
) -> ThemeReport:
    """Apply every enabled theme section to the mounted image.

    Args:
        registry: Session with the image hives loaded.
        mount_dir: Mount directory of the editable image.
        theme: Loaded theme.
        log: Logger for progress messages.

    Returns:
        ThemeReport listing applied and failed sections.
    """
    report = ThemeReport(theme=theme.name)
    for warning in validate_theme(theme):
        log.warning("Theme %s: %s", theme.name, warning)

    for label, enabled, section in _sections(theme):
        if not enabled:
            log.debug("Theme section %s disabled", label)
            continue
        try:
            tweaks = section(theme, mount_dir, report)
        except (BuildError, OSError) as e:
            log.warning("Theme section %s failed: %s", label, e)
            report.failed.append(label)
            continue
        if tweaks:
            result = registry.apply(tweaks)
            report.tweaks += result.applied
        report.applied.append(label)

    log.info(
        "Theme %s applied: %d sections, %d failed, %d files, %d registry values",
        theme.name,
        len(report.applied),
        len(report.failed),
        len(report.files),
        report.tweaks,
    )
    return report


__all__ = [
    "DEFAULT_THEME",
    "BrandingData",
    "ColorScheme",
    "Theme",
    "ThemeReport",
    "apply_theme",
    "branding_tweaks",
    "is_default_theme",
    "list_themes",
    "load_theme",
    "parse_color",
    "validate_theme",
]

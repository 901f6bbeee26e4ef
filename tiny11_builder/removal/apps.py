"""Provisioned app and system package removal.

Package names come from DISM listings: ``PackageName :`` lines for
provisioned appx packages and the first column of ``/Get-Packages
/Format:Table`` rows for system packages. Matching is by substring; a
pattern wrapped in ``*`` matches case-insensitively.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from tiny11_builder.errors import BuildError
from tiny11_builder.removal.files import remove_paths
from tiny11_builder.tools.dism import Dism
from tiny11_builder.tools.parse import extract_all
from tiny11_builder.types import RemovalReport

logger = logging.getLogger(__name__)

STANDARD_APP_PREFIXES: tuple[str, ...] = (
    "AppUp.IntelManagementandSecurityStatus",
    "Clipchamp.Clipchamp",
    "DolbyLaboratories.DolbyAccess",
    "DolbyLaboratories.DolbyDigitalPlusDecoderOEM",
    "Microsoft.BingNews",
    "Microsoft.BingSearch",
    "Microsoft.BingWeather",
    "Microsoft.Copilot",
    "Microsoft.Windows.CrossDevice",
    "Microsoft.GamingApp",
    "Microsoft.GetHelp",
    "Microsoft.Getstarted",
    "Microsoft.Microsoft3DViewer",
    "Microsoft.MicrosoftOfficeHub",
    "Microsoft.MicrosoftSolitaireCollection",
    "Microsoft.MicrosoftStickyNotes",
    "Microsoft.MixedReality.Portal",
    "Microsoft.MSPaint",
    "Microsoft.Office.OneNote",
    "Microsoft.OfficePushNotificationUtility",
    "Microsoft.OutlookForWindows",
    "Microsoft.Paint",
    "Microsoft.People",
    "Microsoft.PowerAutomateDesktop",
    "Microsoft.SkypeApp",
    "Microsoft.StartExperiencesApp",
    "Microsoft.Todos",
    "Microsoft.Wallet",
    "Microsoft.Windows.DevHome",
    "Microsoft.Windows.Copilot",
    "Microsoft.Windows.Teams",
    "Microsoft.WindowsAlarms",
    "Microsoft.WindowsCamera",
    "microsoft.windowscommunicationsapps",
    "Microsoft.WindowsFeedbackHub",
    "Microsoft.WindowsMaps",
    "Microsoft.WindowsSoundRecorder",
    "Microsoft.WindowsTerminal",
    "Microsoft.Xbox.TCUI",
    "Microsoft.XboxApp",
    "Microsoft.XboxGameOverlay",
    "Microsoft.XboxGamingOverlay",
    "Microsoft.XboxIdentityProvider",
    "Microsoft.XboxSpeechToTextOverlay",
    "Microsoft.YourPhone",
    "Microsoft.ZuneMusic",
    "Microsoft.ZuneVideo",
    "MicrosoftCorporationII.MicrosoftFamily",
    "MicrosoftCorporationII.QuickAssist",
    "MSTeams",
    "MicrosoftTeams",
    "Microsoft.549981C3F5F10",
)

NANO_APP_PATTERNS: tuple[str, ...] = (
    "*Photos*",
    "*Camera*",
    "*Paint*",
    "*Notepad*",
    "*QuickAssist*",
    "*CoreAI*",
    "*PeopleExperienceHost*",
    "*PinningConfirmationDialog*",
    "*SecureAssessmentBrowser*",
    "*AV1VideoExtension*",
    "*AVCEncoderVideoExtension*",
    "*HEIFImageExtension*",
    "*HEVCVideoExtension*",
    "*RawImageExtension*",
    "*VP9VideoExtensions*",
    "*WebpImageExtension*",
    "*SecHealthUI*",
    "*CompatibilityEnhancements*",
)


def system_package_patterns(language: str) -> list[str]:
    """System packages removed by the core variant."""
    return [
        "Microsoft-Windows-InternetExplorer-Optional-Package~31bf3856ad364e35",
        "Microsoft-Windows-Kernel-LA57-FoD-Package~31bf3856ad364e35~amd64",
        f"Microsoft-Windows-LanguageFeatures-Handwriting-{language}-Package~31bf3856ad364e35",
        f"Microsoft-Windows-LanguageFeatures-OCR-{language}-Package~31bf3856ad364e35",
        f"Microsoft-Windows-LanguageFeatures-Speech-{language}-Package~31bf3856ad364e35",
        f"Microsoft-Windows-LanguageFeatures-TextToSpeech-{language}-Package~31bf3856ad364e35",
        "Microsoft-Windows-MediaPlayer-Package~31bf3856ad364e35",
        "Microsoft-Windows-Wallpaper-Content-Extended-FoD-Package~31bf3856ad364e35",
        "Windows-Defender-Client-Package~31bf3856ad364e35~",
        "Microsoft-Windows-WordPad-FoD-Package~",
        "Microsoft-Windows-TabletPCMath-Package~",
        "Microsoft-Windows-StepsRecorder-Package~",
    ]


def nano_package_patterns(language: str) -> list[str]:
    """Additional system packages removed by the nano variant."""
    return [
        "Microsoft-Windows-InternetExplorer-Optional-Package~",
        "Microsoft-Windows-MediaPlayer-Package~",
        "Microsoft-Windows-WordPad-FoD-Package~",
        "Microsoft-Windows-StepsRecorder-Package~",
        "Microsoft-Windows-MSPaint-FoD-Package~",
        "Microsoft-Windows-SnippingTool-FoD-Package~",
        "Microsoft-Windows-TabletPCMath-Package~",
        "Microsoft-Windows-Xps-Xps-Viewer-Opt-Package~",
        "Microsoft-Windows-PowerShell-ISE-FOD-Package~",
        "OpenSSH-Client-Package~",
        f"Microsoft-Windows-LanguageFeatures-Handwriting-{language}-Package~",
        f"Microsoft-Windows-LanguageFeatures-OCR-{language}-Package~",
        f"Microsoft-Windows-LanguageFeatures-Speech-{language}-Package~",
        f"Microsoft-Windows-LanguageFeatures-TextToSpeech-{language}-Package~",
        "*IME-ja-jp*",
        "*IME-ko-kr*",
        "*IME-zh-cn*",
        "*IME-zh-tw*",
        "Windows-Defender-Client-Package~",
        "Microsoft-Windows-Search-Engine-Client-Package~",
        "Microsoft-Windows-Kernel-LA57-FoD-Package~",
        "Microsoft-Windows-Hello-Face-Package~",
        "Microsoft-Windows-Hello-BioEnrollment-Package~",
        "Microsoft-Windows-BitLocker-DriveEncryption-FVE-Package~",
        "Microsoft-Windows-TPM-WMI-Provider-Package~",
        "Microsoft-Windows-Narrator-App-Package~",
        "Microsoft-Windows-Magnifier-App-Package~",
        "Microsoft-Windows-Printing-PMCPPC-FoD-Package~",
        "Microsoft-Windows-WebcamExperience-Package~",
        "Microsoft-Media-MPEG2-Decoder-Package~",
        "Microsoft-Windows-Wallpaper-Content-Extended-FoD-Package~",
    ]


def matches(name: str, pattern: str) -> bool:
    """Substring match; ``*pattern*`` matches ignoring case."""
    if "*" in pattern:
        return pattern.strip("*").lower() in name.lower()
    return pattern in name


def parse_provisioned_packages(output: str) -> list[str]:
    """Return the ``PackageName`` values of ``/Get-ProvisionedAppxPackages``."""
    return [name for name in extract_all(output, "PackageName") if name and "..." not in name]


def parse_package_table(output: str, patterns: Iterable[str]) -> list[str]:
    """Return first-column identities of table rows matching any pattern."""
    identities: list[str] = []
    patterns = list(patterns)
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        if any(matches(line, pattern) for pattern in patterns):
            identity = line.split()[0]
            if identity not in identities:
                identities.append(identity)
    return identities


def short_name(package: str) -> str:
    """``Microsoft.BingNews_4.2.0_neutral_~_8wekyb3d8bbwe`` -> ``Microsoft.BingNews``."""
    return package.split("_")[0]


def remove_provisioned_apps(
    dism: Dism,
    mount_dir: Path,
    patterns: Iterable[str] = STANDARD_APP_PREFIXES,
    log: logging.Logger = logger,
) -> RemovalReport:
    """Remove provisioned appx packages matching any of ``patterns``.

    Raises:
        ExternalToolError: If the package listing itself fails.
    """
    patterns = list(patterns)
    packages = parse_provisioned_packages(dism.get_provisioned_packages(mount_dir))
    targets = [pkg for pkg in packages if any(matches(pkg, p) for p in patterns)]
    log.info("Found %d provisioned packages, removing %d", len(packages), len(targets))

    report = RemovalReport()
    for pkg in targets:
        try:
            dism.remove_provisioned_package(mount_dir, pkg)
        except BuildError as e:
            log.warning("Failed to remove %s: %s", short_name(pkg), e)
            report.failed += 1
            continue
        report.removed += 1
        report.items.append(short_name(pkg))
    return report


def remove_system_packages(
    dism: Dism,
    mount_dir: Path,
    patterns: Iterable[str],
    log: logging.Logger = logger,
) -> RemovalReport:
    """Remove servicing packages whose table row matches any pattern.

    Raises:
        ExternalToolError: If the package listing itself fails.
    """
    targets = parse_package_table(dism.get_packages(mount_dir), patterns)
    log.info("Removing %d system packages", len(targets))

    report = RemovalReport()
    for identity in targets:
        try:
            dism.remove_package(mount_dir, identity)
        except BuildError as e:
            log.warning("Failed to remove package %s: %s", identity, e)
            report.failed += 1
            continue
        report.removed += 1
        report.items.append(identity)
    return report


def cleanup_windows_apps(
    mount_dir: Path,
    patterns: Iterable[str] = NANO_APP_PATTERNS,
    log: logging.Logger = logger,
) -> RemovalReport:
    """Delete leftover ``Program Files/WindowsApps`` folders of removed apps."""
    report = RemovalReport()
    apps_dir = mount_dir / "Program Files" / "WindowsApps"
    if not apps_dir.is_dir():
        return report
    patterns = list(patterns)
    leftovers = [
        entry
        for entry in sorted(apps_dir.iterdir())
        if entry.is_dir() and any(matches(entry.name, p) for p in patterns)
    ]
    return remove_paths(leftovers, report, log)


__all__ = [
    "NANO_APP_PATTERNS",
    "STANDARD_APP_PREFIXES",
    "cleanup_windows_apps",
    "matches",
    "nano_package_patterns",
    "parse_package_table",
    "parse_provisioned_packages",
    "remove_provisioned_apps",
    "remove_system_packages",
    "short_name",
    "system_package_patterns",
]

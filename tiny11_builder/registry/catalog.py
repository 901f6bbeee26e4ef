"""Static catalog of offline registry tweaks.

Paths are written against the temporary hive aliases loaded by
RegistryEditSession. Groups are applied in declaration order.
"""

from __future__ import annotations

from dataclasses import dataclass

from tiny11_builder.registry.session import (
    DEFAULT,
    NTUSER,
    SOFTWARE,
    SYSTEM,
    RegistryKeyDeletion,
    RegistryValue,
    Tweak,
)


@dataclass(frozen=True)
class TweakGroup:
    """Named set of tweaks applied together."""

    label: str
    tweaks: tuple[Tweak, ...]


def _dword(path: str, name: str, value: int) -> RegistryValue:
    return RegistryValue(path, name, "REG_DWORD", str(value))


def _sz(path: str, name: str, value: str) -> RegistryValue:
    return RegistryValue(path, name, "REG_SZ", value)


_CDM = NTUSER + "\\Software\\Microsoft\\Windows\\CurrentVersion\\ContentDeliveryManager"
_CLOUD_CONTENT = SOFTWARE + "\\Policies\\Microsoft\\Windows\\CloudContent"
_LAB_CONFIG = SYSTEM + "\\Setup\\LabConfig"
_HW_CACHE = "\\Control Panel\\UnsupportedHardwareNotificationCache"
_SERVICES = SYSTEM + "\\ControlSet001\\Services"
_UNINSTALL = SOFTWARE + "\\WOW6432Node\\Microsoft\\Windows\\CurrentVersion\\Uninstall"
_USCHEDULER = SOFTWARE + "\\Microsoft\\Windows\\CurrentVersion\\WindowsUpdate\\Orchestrator"
_DEFENDER = SOFTWARE + "\\Policies\\Microsoft\\Windows Defender"
_WU_POLICY = SOFTWARE + "\\Policies\\Microsoft\\Windows\\WindowsUpdate"
_RUN_ONCE = SOFTWARE + "\\Microsoft\\Windows\\CurrentVersion\\RunOnce"
_EXPLORER_POLICY = SOFTWARE + "\\Microsoft\\Windows\\CurrentVersion\\Policies\\Explorer"

BYPASS_REQUIREMENTS = TweakGroup(
    "Bypass system requirements",
    (
        _dword(DEFAULT + _HW_CACHE, "SV1", 0),
        _dword(DEFAULT + _HW_CACHE, "SV2", 0),
        _dword(NTUSER + _HW_CACHE, "SV1", 0),
        _dword(NTUSER + _HW_CACHE, "SV2", 0),
        _dword(_LAB_CONFIG, "BypassCPUCheck", 1),
        _dword(_LAB_CONFIG, "BypassRAMCheck", 1),
        _dword(_LAB_CONFIG, "BypassSecureBootCheck", 1),
        _dword(_LAB_CONFIG, "BypassStorageCheck", 1),
        _dword(_LAB_CONFIG, "BypassTPMCheck", 1),
        _dword(SYSTEM + "\\Setup\\MoSetup", "AllowUpgradesWithUnsupportedTPMOrCPU", 1),
    ),
)

SPONSORED_APPS = TweakGroup(
    "Disable sponsored apps",
    (
        _dword(_CDM, "OemPreInstalledAppsEnabled", 0),
        _dword(_CDM, "PreInstalledAppsEnabled", 0),
        _dword(_CDM, "SilentInstalledAppsEnabled", 0),
        _dword(_CLOUD_CONTENT, "DisableWindowsConsumerFeatures", 1),
        _dword(_CDM, "ContentDeliveryAllowed", 0),
        _sz(
            SOFTWARE + "\\Microsoft\\PolicyManager\\current\\device\\Start",
            "ConfigureStartPins",
            '{"pinnedList": [{}]}',
        ),
        _dword(_CDM, "FeatureManagementEnabled", 0),
        _dword(_CDM, "PreInstalledAppsEverEnabled", 0),
        _dword(_CDM, "SoftLandingEnabled", 0),
        _dword(_CDM, "SubscribedContentEnabled", 0),
        _dword(_CDM, "SubscribedContent-310093Enabled", 0),
        _dword(_CDM, "SubscribedContent-338388Enabled", 0),
        _dword(_CDM, "SubscribedContent-338389Enabled", 0),
        _dword(_CDM, "SubscribedContent-338393Enabled", 0),
        _dword(_CDM, "SubscribedContent-353694Enabled", 0),
        _dword(_CDM, "SubscribedContent-353696Enabled", 0),
        _dword(_CDM, "SystemPaneSuggestionsEnabled", 0),
        _dword(SOFTWARE + "\\Policies\\Microsoft\\PushToInstall", "DisablePushToInstall", 1),
        _dword(SOFTWARE + "\\Policies\\Microsoft\\MRT", "DontOfferThroughWUAU", 1),
        _dword(_CLOUD_CONTENT, "DisableConsumerAccountStateContent", 1),
        _dword(_CLOUD_CONTENT, "DisableCloudOptimizedContent", 1),
        RegistryKeyDeletion(_CDM + "\\Subscriptions"),
        RegistryKeyDeletion(_CDM + "\\SuggestedApps"),
    ),
)

LOCAL_ACCOUNTS = TweakGroup(
    "Enable local accounts on OOBE",
    (_dword(SOFTWARE + "\\Microsoft\\Windows\\CurrentVersion\\OOBE", "BypassNRO", 1),),
)

RESERVED_STORAGE = TweakGroup(
    "Disable reserved storage",
    (
        _dword(
            SOFTWARE + "\\Microsoft\\Windows\\CurrentVersion\\ReserveManager",
            "ShippedWithReserves",
            0,
        ),
    ),
)

BITLOCKER = TweakGroup(
    "Disable BitLocker device encryption",
    (_dword(SYSTEM + "\\ControlSet001\\Control\\BitLocker", "PreventDeviceEncryption", 1),),
)

CHAT_ICON = TweakGroup(
    "Disable chat icon",
    (
        _dword(SOFTWARE + "\\Policies\\Microsoft\\Windows\\Windows Chat", "ChatIcon", 3),
        _dword(
            NTUSER + "\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Explorer\\Advanced",
            "TaskbarMn",
            0,
        ),
    ),
)

EDGE_UNINSTALL_KEYS = TweakGroup(
    "Remove Edge uninstall entries",
    (
        RegistryKeyDeletion(_UNINSTALL + "\\Microsoft Edge"),
        RegistryKeyDeletion(_UNINSTALL + "\\Microsoft Edge Update"),
    ),
)

ONEDRIVE_BACKUP = TweakGroup(
    "Disable OneDrive folder backup",
    (_dword(SOFTWARE + "\\Policies\\Microsoft\\Windows\\OneDrive", "DisableFileSyncNGSC", 1),),
)

TELEMETRY = TweakGroup(
    "Disable telemetry",
    (
        _dword(
            NTUSER + "\\Software\\Microsoft\\Windows\\CurrentVersion\\AdvertisingInfo", "Enabled", 0
        ),
        _dword(
            NTUSER + "\\Software\\Microsoft\\Windows\\CurrentVersion\\Privacy",
            "TailoredExperiencesWithDiagnosticDataEnabled",
            0,
        ),
        _dword(
            NTUSER + "\\Software\\Microsoft\\Speech_OneCore\\Settings\\OnlineSpeechPrivacy",
            "HasAccepted",
            0,
        ),
        _dword(NTUSER + "\\Software\\Microsoft\\Input\\TIPC", "Enabled", 0),
        _dword(
            NTUSER + "\\Software\\Microsoft\\InputPersonalization",
            "RestrictImplicitInkCollection",
            1,
        ),
        _dword(
            NTUSER + "\\Software\\Microsoft\\InputPersonalization",
            "RestrictImplicitTextCollection",
            1,
        ),
        _dword(
            NTUSER + "\\Software\\Microsoft\\InputPersonalization\\TrainedDataStore",
            "HarvestContacts",
            0,
        ),
        _dword(
            NTUSER + "\\Software\\Microsoft\\Personalization\\Settings", "AcceptedPrivacyPolicy", 0
        ),
        _dword(SOFTWARE + "\\Policies\\Microsoft\\Windows\\DataCollection", "AllowTelemetry", 0),
        _dword(_SERVICES + "\\dmwappushservice", "Start", 4),
    ),
)

DEVHOME_OUTLOOK = TweakGroup(
    "Prevent DevHome and Outlook installation",
    (
        _dword(_USCHEDULER + "\\UScheduler\\OutlookUpdate", "workCompleted", 1),
        _dword(_USCHEDULER + "\\UScheduler\\DevHomeUpdate", "workCompleted", 1),
        RegistryKeyDeletion(
            SOFTWARE + "\\Microsoft\\WindowsUpdate\\Orchestrator\\UScheduler_Oobe\\OutlookUpdate"
        ),
        RegistryKeyDeletion(
            SOFTWARE + "\\Microsoft\\WindowsUpdate\\Orchestrator\\UScheduler_Oobe\\DevHomeUpdate"
        ),
    ),
)

COPILOT = TweakGroup(
    "Disable Copilot",
    (
        _dword(
            SOFTWARE + "\\Policies\\Microsoft\\Windows\\WindowsCopilot", "TurnOffWindowsCopilot", 1
        ),
        _dword(SOFTWARE + "\\Policies\\Microsoft\\Edge", "HubsSidebarEnabled", 0),
        _dword(
            SOFTWARE + "\\Policies\\Microsoft\\Windows\\Explorer", "DisableSearchBoxSuggestions", 1
        ),
    ),
)

TEAMS = TweakGroup(
    "Disable Teams and Mail",
    (
        _dword(SOFTWARE + "\\Policies\\Microsoft\\Teams", "DisableInstallation", 1),
        _dword(SOFTWARE + "\\Policies\\Microsoft\\Windows\\Windows Mail", "PreventRun", 1),
    ),
)

DEFENDER_SERVICES = ("WinDefend", "WdNisSvc", "WdNisDrv", "WdFilter", "Sense")

DEFENDER = TweakGroup(
    "Disable Windows Defender",
    tuple(_dword(f"{_SERVICES}\\{service}", "Start", 4) for service in DEFENDER_SERVICES)
    + (
        _dword(_DEFENDER, "DisableAntiSpyware", 1),
        _dword(_DEFENDER + "\\Real-Time Protection", "DisableRealtimeMonitoring", 1),
        _dword(_DEFENDER + "\\Real-Time Protection", "DisableBehaviorMonitoring", 1),
        _dword(_DEFENDER + "\\Real-Time Protection", "DisableOnAccessProtection", 1),
        _dword(_DEFENDER + "\\Real-Time Protection", "DisableScanOnRealtimeEnable", 1),
    ),
)

WINDOWS_UPDATE = TweakGroup(
    "Disable Windows Update",
    (
        _dword(_SERVICES + "\\wuauserv", "Start", 4),
        _dword(_WU_POLICY, "DoNotConnectToWindowsUpdateInternetLocations", 1),
        _dword(_WU_POLICY, "DisableWindowsUpdateAccess", 1),
        _sz(_WU_POLICY, "WUServer", "localhost"),
        _sz(_WU_POLICY, "WUStatusServer", "localhost"),
        _sz(_WU_POLICY, "UpdateServiceUrlAlternate", "localhost"),
        _dword(_WU_POLICY + "\\AU", "UseWUServer", 1),
        _dword(_WU_POLICY + "\\AU", "NoAutoUpdate", 1),
        _dword(SOFTWARE + "\\Microsoft\\Windows\\CurrentVersion\\OOBE", "DisableOnline", 1),
        RegistryKeyDeletion(_SERVICES + "\\WaaSMedicSVC"),
        RegistryKeyDeletion(_SERVICES + "\\UsoSvc"),
        _sz(_RUN_ONCE, "StopWUPostOOBE1", "net stop wuauserv"),
        _sz(_RUN_ONCE, "StopWUPostOOBE2", "sc stop wuauserv"),
        _sz(_RUN_ONCE, "StopWUPostOOBE3", "sc config wuauserv start= disabled"),
    ),
)

SETTINGS_PAGES = TweakGroup(
    "Hide Defender and Update settings pages",
    (_sz(_EXPLORER_POLICY, "SettingsPageVisibility", "hide:virus;windowsupdate"),),
)

STANDARD_TWEAKS: tuple[TweakGroup, ...] = (
    BYPASS_REQUIREMENTS,
    SPONSORED_APPS,
    LOCAL_ACCOUNTS,
    RESERVED_STORAGE,
    BITLOCKER,
    CHAT_ICON,
    EDGE_UNINSTALL_KEYS,
    ONEDRIVE_BACKUP,
    TELEMETRY,
    DEVHOME_OUTLOOK,
    COPILOT,
    TEAMS,
)

CORE_TWEAKS: tuple[TweakGroup, ...] = (DEFENDER, WINDOWS_UPDATE, SETTINGS_PAGES)

NANO_TWEAKS: tuple[TweakGroup, ...] = (SETTINGS_PAGES,)

BOOT_TWEAKS: tuple[TweakGroup, ...] = (BYPASS_REQUIREMENTS,)


def flatten(groups: tuple[TweakGroup, ...]) -> list[Tweak]:
    """Return the tweaks of several groups in application order."""
    return [tweak for group in groups for tweak in group.tweaks]


__all__ = [
    "BOOT_TWEAKS",
    "CORE_TWEAKS",
    "DEFENDER_SERVICES",
    "NANO_TWEAKS",
    "STANDARD_TWEAKS",
    "TweakGroup",
    "flatten",
]

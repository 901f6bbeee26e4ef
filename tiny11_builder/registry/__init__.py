"""Offline registry editing: hive session and tweak catalog."""

from tiny11_builder.registry.catalog import (
    BOOT_TWEAKS,
    CORE_TWEAKS,
    NANO_TWEAKS,
    STANDARD_TWEAKS,
    TweakGroup,
    flatten,
)
from tiny11_builder.registry.session import (
    HIVE_FILES,
    ApplyReport,
    RegistryEditSession,
    RegistryKeyDeletion,
    RegistryValue,
)

__all__ = [
    "BOOT_TWEAKS",
    "CORE_TWEAKS",
    "HIVE_FILES",
    "NANO_TWEAKS",
    "STANDARD_TWEAKS",
    "ApplyReport",
    "RegistryEditSession",
    "RegistryKeyDeletion",
    "RegistryValue",
    "TweakGroup",
    "flatten",
]

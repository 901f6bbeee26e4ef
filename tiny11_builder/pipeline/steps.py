"""Pipeline step type and the actions steps run.

Every action takes the shared PipelineContext and either completes or
raises. Whether a failure aborts the build is decided by the step's
policy, not by the action.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from tiny11_builder.customize.preinstall import load_manifest, stage_apps
from tiny11_builder.customize.theme import apply_theme, is_default_theme, load_theme
from tiny11_builder.errors import InvalidInputError, NotFoundError
from tiny11_builder.image.export import COMPRESSION_MAX, COMPRESSION_RECOVERY
from tiny11_builder.image.inspect import (
    detect_language,
    inspect_image,
    list_images,
    select_default_index,
    validate_source,
)
from tiny11_builder.iso.autounattend import install_autounattend
from tiny11_builder.iso.oscdimg import create_iso, ensure_oscdimg, prune_iso_root
from tiny11_builder.pipeline.context import PipelineContext
from tiny11_builder.registry.catalog import (
    BOOT_TWEAKS,
    CORE_TWEAKS,
    NANO_TWEAKS,
    STANDARD_TWEAKS,
    TweakGroup,
    flatten,
)
from tiny11_builder.removal import apps, core, edge, nano
from tiny11_builder.removal.files import delete_path
from tiny11_builder.types import BuildPhase, StepPolicy, Variant

StepAction = Callable[[PipelineContext], None]

# Windows Setup image inside boot.wim
BOOT_IMAGE_INDEX = 2


@dataclass(frozen=True)
class PipelineStep:
    """One ordered unit of work in a variant's pipeline."""

    ordinal: int
    label: str
    policy: StepPolicy
    phase: BuildPhase
    action: StepAction

    @property
    def fatal(self) -> bool:
        return self.policy is StepPolicy.FATAL


def tweak_groups(variant: Variant) -> tuple[TweakGroup, ...]:
    """Registry tweak groups applied to the install image of a variant."""
    groups = STANDARD_TWEAKS
    if variant in (Variant.CORE, Variant.NANO):
        groups += CORE_TWEAKS
    if variant is Variant.NANO:
        groups += NANO_TWEAKS
    return tuple(dict.fromkeys(groups))


# Validation


def validate_source_tree(ctx: PipelineContext) -> None:
    image = validate_source(ctx.request.source)
    ctx.log.info("Installation source %s (%s)", ctx.request.source, image.name)


def resolve_customizations(ctx: PipelineContext) -> None:
    """Load the requested theme and preinstall selection before any edits."""
    if not is_default_theme(ctx.request.theme):
        ctx.theme = load_theme(ctx.settings.themes_dir, ctx.request.theme or "")
    if ctx.request.preinstall:
        manifest = load_manifest(ctx.settings.preinstall_dir)
        if not manifest.enabled:
            raise InvalidInputError(
                "Preinstall apps were requested but the preinstall manifest is missing "
                "or disabled",
                context={"path": ctx.settings.preinstall_dir},
            )
        ctx.preinstall_apps = manifest.filter_apps(ctx.request.preinstall)


# Staging


def prepare_workspace(ctx: PipelineContext) -> None:
    for directory in (ctx.staging_dir, ctx.settings.temp_dir):
        if directory.exists():
            ctx.log.info("Removing stale %s", directory)
            delete_path(directory)
        directory.mkdir(parents=True)


def stage_source(ctx: PipelineContext) -> None:
    result = ctx.copier.copy_tree(ctx.request.source, ctx.staging_dir, progress=ctx.copy_progress)
    ctx.reports["copy"] = {"files": result.files, "bytes": result.total_bytes}


def convert_esd(ctx: PipelineContext) -> None:
    """Turn an ESD-only source into an editable install.wim."""
    if ctx.install_wim.is_file():
        return
    if not ctx.install_esd.is_file():
        raise NotFoundError(
            "No install image in the staged tree", context={"path": ctx.staging_dir}
        )

    images = list_images(ctx.tools.dism, ctx.install_esd)
    index = ctx.request.index or select_default_index(images)
    if index not in [image.index for image in images]:
        raise InvalidInputError(
            f"Image index {index} not found in install.esd",
            context={"index": index, "available": [image.index for image in images]},
        )
    ctx.log.info("Converting install.esd index %d to install.wim", index)
    ctx.exporter.export(
        ctx.install_esd,
        index,
        COMPRESSION_MAX,
        target=ctx.install_wim,
        replace_source=False,
    )
    # The converted WIM holds only the selected image
    ctx.index = 1


def remove_staged_esd(ctx: PipelineContext) -> None:
    if ctx.install_esd.exists() and ctx.install_wim.is_file():
        delete_path(ctx.install_esd)
        ctx.log.info("Removed install.esd from the staged tree")


# Inspection


def inspect_install_image(ctx: PipelineContext) -> None:
    if ctx.index is None:
        ctx.index = ctx.request.index or select_default_index(
            list_images(ctx.tools.dism, ctx.install_wim)
        )
    ctx.image = inspect_image(ctx.tools.dism, ctx.install_wim, ctx.index)
    ctx.log.info(
        "Building index %d: %s (%s)", ctx.index, ctx.image.name, ctx.image.architecture
    )


def detect_image_language(ctx: PipelineContext) -> None:
    ctx.language = detect_language(ctx.guard, ctx.tools.dism, ctx.install_wim, ctx.index or 1)
    if ctx.image is not None:
        ctx.image.language = ctx.language
    ctx.log.info("Image language: %s", ctx.language)


# Install image edits


def mount_install_image(ctx: PipelineContext) -> None:
    ctx.guard.mount(ctx.install_wim, ctx.index or 1)


def take_ownership(ctx: PipelineContext) -> None:
    nano.take_ownership(ctx.tools.acl, ctx.mount_dir, ctx.log)


def remove_provisioned_apps(ctx: PipelineContext) -> None:
    ctx.reports["apps"] = apps.remove_provisioned_apps(
        ctx.tools.dism, ctx.mount_dir, log=ctx.log
    )


def remove_extended_apps(ctx: PipelineContext) -> None:
    ctx.reports["extended_apps"] = apps.remove_provisioned_apps(
        ctx.tools.dism, ctx.mount_dir, apps.NANO_APP_PATTERNS, log=ctx.log
    )
    apps.cleanup_windows_apps(ctx.mount_dir, log=ctx.log)


def remove_system_packages(ctx: PipelineContext) -> None:
    if ctx.variant is Variant.NANO:
        patterns = apps.nano_package_patterns(ctx.language)
    else:
        patterns = apps.system_package_patterns(ctx.language)
    ctx.reports["packages"] = apps.remove_system_packages(
        ctx.tools.dism, ctx.mount_dir, patterns, log=ctx.log
    )


def enable_netfx3(ctx: PipelineContext) -> None:
    core.enable_netfx3(ctx.tools.dism, ctx.mount_dir, ctx.staging_dir, ctx.log)


def remove_native_images(ctx: PipelineContext) -> None:
    nano.remove_native_images(ctx.mount_dir, ctx.log)


def slim_driver_store(ctx: PipelineContext) -> None:
    nano.slim_driver_store(ctx.mount_dir, ctx.log)


def slim_fonts(ctx: PipelineContext) -> None:
    nano.slim_fonts(ctx.mount_dir, ctx.log)


def remove_system_folders(ctx: PipelineContext) -> None:
    nano.remove_system_folders(ctx.mount_dir, ctx.log)


def remove_edge(ctx: PipelineContext) -> None:
    edge.remove_edge(ctx.tools.acl, ctx.mount_dir, ctx.architecture, ctx.log)


def remove_onedrive(ctx: PipelineContext) -> None:
    edge.remove_onedrive(ctx.tools.acl, ctx.mount_dir, ctx.log)


def remove_winre(ctx: PipelineContext) -> None:
    core.remove_winre(ctx.tools.acl, ctx.mount_dir, ctx.log)


def remove_scheduled_tasks(ctx: PipelineContext) -> None:
    edge.remove_scheduled_tasks(ctx.mount_dir, ctx.log)


def stage_preinstall_apps(ctx: PipelineContext) -> None:
    ctx.reports["preinstall"] = stage_apps(
        ctx.mount_dir, ctx.settings.preinstall_dir, ctx.preinstall_apps, ctx.log
    )


def cleanup_component_store(ctx: PipelineContext) -> None:
    ctx.tools.dism.cleanup_image(ctx.mount_dir)


def reduce_winsxs(ctx: PipelineContext) -> None:
    core.reduce_winsxs(ctx.tools.acl, ctx.mount_dir, ctx.architecture, ctx.log)


# Registry pass


def load_hives(ctx: PipelineContext) -> None:
    ctx.registry.load()


def apply_registry_tweaks(ctx: PipelineContext) -> None:
    ctx.reports["tweaks"] = ctx.registry.apply(flatten(tweak_groups(ctx.variant)))


def remove_services(ctx: PipelineContext) -> None:
    nano.remove_services(ctx.registry, ctx.log)


def apply_selected_theme(ctx: PipelineContext) -> None:
    if ctx.theme is None:
        return
    ctx.reports["theme"] = apply_theme(ctx.registry, ctx.mount_dir, ctx.theme, ctx.log)


def unload_hives(ctx: PipelineContext) -> None:
    ctx.registry.unload()


def install_answer_file(ctx: PipelineContext) -> None:
    install_autounattend(
        ctx.mount_dir,
        ctx.staging_dir,
        ctx.settings.resources_dir,
        theme_dir=ctx.theme.directory if ctx.theme else None,
        architecture=ctx.architecture,
        log=ctx.log,
    )


def commit_image(ctx: PipelineContext) -> None:
    ctx.guard.unmount(commit=True)


# Export


def export_install_image(ctx: PipelineContext) -> None:
    """Re-export the edited image; nano writes a recovery-compressed ESD."""
    target = ctx.install_esd if ctx.variant is Variant.NANO else None
    ctx.export = ctx.exporter.export(
        ctx.install_wim, ctx.index or 1, COMPRESSION_RECOVERY, target=target
    )


# Boot image


def mount_boot_image(ctx: PipelineContext) -> None:
    ctx.guard.mount(ctx.boot_wim, BOOT_IMAGE_INDEX)


def apply_boot_tweaks(ctx: PipelineContext) -> None:
    ctx.reports["boot_tweaks"] = ctx.registry.apply(flatten(BOOT_TWEAKS))


def compact_boot_image(ctx: PipelineContext) -> None:
    ctx.exporter.export(ctx.boot_wim, BOOT_IMAGE_INDEX, COMPRESSION_MAX)


# Packaging


def prune_iso(ctx: PipelineContext) -> None:
    prune_iso_root(ctx.staging_dir, ctx.log)


def locate_oscdimg(ctx: PipelineContext) -> None:
    ctx.oscdimg = ensure_oscdimg(ctx.settings, client=ctx.http_client)


def create_output_iso(ctx: PipelineContext) -> None:
    if ctx.oscdimg is None:
        raise NotFoundError("oscdimg.exe has not been located")
    ctx.output_path = create_iso(
        ctx.tools.runner, ctx.oscdimg, ctx.staging_dir, ctx.output_iso, ctx.log
    )


def remove_workspace(ctx: PipelineContext) -> None:
    if ctx.request.keep_staging:
        ctx.log.info("Keeping working directories under %s", ctx.settings.work_dir / "build")
        return
    for directory in (ctx.staging_dir, ctx.mount_dir, ctx.settings.temp_dir):
        if directory.exists():
            delete_path(directory)
    ctx.log.info("Working directories removed")


__all__ = ["BOOT_IMAGE_INDEX", "PipelineStep", "StepAction", "tweak_groups"]

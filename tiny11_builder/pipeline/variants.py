"""Declarative step lists for the three reduction variants.

``core`` is ``standard`` with component removal inserted before the
registry pass; ``nano`` is ``core`` with the aggressive removals, service
deletion, ESD export, boot image compaction and ISO root pruning. Extras
are only ever inserted, so the steps of a smaller variant keep their
relative order in a larger one.
"""

from __future__ import annotations

from typing import Any

from tiny11_builder.customize.theme import is_default_theme
from tiny11_builder.pipeline import steps
from tiny11_builder.pipeline.context import BuildRequest
from tiny11_builder.pipeline.steps import PipelineStep, StepAction
from tiny11_builder.types import BuildPhase, StepPolicy, Variant

FATAL = StepPolicy.FATAL
SOFT = StepPolicy.SOFT

VARIANT_DESCRIPTIONS = {
    Variant.STANDARD: "Removes inbox apps, Edge and OneDrive and applies privacy tweaks; "
    "the image stays serviceable.",
    Variant.CORE: "Standard plus component removal, WinSxS reduction, WinRE removal and "
    "disabled Defender and Windows Update; not serviceable.",
    Variant.NANO: "Core plus aggressive removal of drivers, fonts, services and system "
    "folders, with an ESD export; for testing and VMs only.",
}


class _Plan:
    """Accumulates numbered steps under the current phase."""

    def __init__(self) -> None:
        self.steps: list[PipelineStep] = []
        self.phase = BuildPhase.VALIDATING

    def enter(self, phase: BuildPhase) -> None:
        self.phase = phase

    def add(self, label: str, policy: StepPolicy, action: StepAction) -> None:
        self.steps.append(
            PipelineStep(
                ordinal=len(self.steps) + 1,
                label=label,
                policy=policy,
                phase=self.phase,
                action=action,
            )
        )


def build_steps(variant: Variant, request: BuildRequest | None = None) -> list[PipelineStep]:
    """Generate a fresh step list for a variant.

    Args:
        variant: Reduction profile.
        request: Build request; optional steps (theme, preinstall, .NET 3.5)
            are included only when it asks for them.

    Returns:
        Ordered steps, numbered from 1.
    """
    variant = Variant(variant)
    is_core = variant in (Variant.CORE, Variant.NANO)
    is_nano = variant is Variant.NANO
    wants_theme = request is not None and not is_default_theme(request.theme)
    wants_preinstall = request is not None and bool(request.preinstall)
    wants_netfx3 = request is not None and request.enable_netfx3

    plan = _Plan()

    plan.enter(BuildPhase.VALIDATING)
    plan.add("Validate installation source", FATAL, steps.validate_source_tree)
    plan.add("Resolve theme and preinstall selection", FATAL, steps.resolve_customizations)

    plan.enter(BuildPhase.STAGING_FILES)
    plan.add("Prepare working directories", FATAL, steps.prepare_workspace)
    plan.add("Copy installation files", FATAL, steps.stage_source)
    plan.add("Convert install.esd to install.wim", FATAL, steps.convert_esd)
    plan.add("Remove staged install.esd", SOFT, steps.remove_staged_esd)

    plan.enter(BuildPhase.INSPECTING)
    plan.add("Inspect install image", FATAL, steps.inspect_install_image)
    plan.add("Detect image language", SOFT, steps.detect_image_language)

    plan.enter(BuildPhase.EDITING)
    plan.add("Mount install image", FATAL, steps.mount_install_image)
    if is_nano:
        plan.add("Take ownership of removal targets", SOFT, steps.take_ownership)
    plan.add("Remove provisioned apps", FATAL, steps.remove_provisioned_apps)
    if is_nano:
        plan.add("Remove extended apps", SOFT, steps.remove_extended_apps)
    if is_core:
        plan.add("Remove system packages", SOFT, steps.remove_system_packages)
        if wants_netfx3:
            plan.add("Enable .NET Framework 3.5", SOFT, steps.enable_netfx3)
    if is_nano:
        plan.add("Remove .NET native images", SOFT, steps.remove_native_images)
        plan.add("Slim DriverStore", SOFT, steps.slim_driver_store)
        plan.add("Slim fonts", SOFT, steps.slim_fonts)
        plan.add("Remove system folders", SOFT, steps.remove_system_folders)
    plan.add("Remove Edge", SOFT, steps.remove_edge)
    plan.add("Remove OneDrive", SOFT, steps.remove_onedrive)
    if is_core:
        plan.add("Remove WinRE", SOFT, steps.remove_winre)
    plan.add("Remove scheduled tasks", SOFT, steps.remove_scheduled_tasks)
    if wants_preinstall:
        plan.add("Stage preinstall apps", SOFT, steps.stage_preinstall_apps)
    plan.add("Clean up component store", SOFT, steps.cleanup_component_store)
    if is_core:
        plan.add("Reduce WinSxS", FATAL, steps.reduce_winsxs)

    plan.enter(BuildPhase.REGISTRY_PASS)
    plan.add("Load registry hives", FATAL, steps.load_hives)
    plan.add("Apply registry tweaks", SOFT, steps.apply_registry_tweaks)
    if is_nano:
        plan.add("Remove services", SOFT, steps.remove_services)
    if wants_theme:
        plan.add("Apply theme", SOFT, steps.apply_selected_theme)
    plan.add("Unload registry hives", SOFT, steps.unload_hives)
    plan.add("Install answer file", SOFT, steps.install_answer_file)

    plan.enter(BuildPhase.UNMOUNTED)
    plan.add("Commit and unmount install image", FATAL, steps.commit_image)

    plan.enter(BuildPhase.EXPORTING)
    plan.add("Export install image", FATAL, steps.export_install_image)

    plan.enter(BuildPhase.BOOT_IMAGE_EDITING)
    plan.add("Mount boot image", FATAL, steps.mount_boot_image)
    plan.add("Load boot image hives", FATAL, steps.load_hives)
    plan.add("Apply boot image tweaks", SOFT, steps.apply_boot_tweaks)
    plan.add("Unload boot image hives", SOFT, steps.unload_hives)
    plan.add("Commit and unmount boot image", FATAL, steps.commit_image)
    if is_nano:
        plan.add("Compact boot image", SOFT, steps.compact_boot_image)

    plan.enter(BuildPhase.PACKAGING)
    if is_nano:
        plan.add("Prune ISO root", SOFT, steps.prune_iso)
    plan.add("Locate oscdimg", FATAL, steps.locate_oscdimg)
    plan.add("Create ISO", FATAL, steps.create_output_iso)

    plan.enter(BuildPhase.CLEANUP)
    plan.add("Remove working directories", SOFT, steps.remove_workspace)

    return plan.steps


def fatal_labels(variant: Variant) -> list[str]:
    """Labels of the fatal steps of a variant, in order."""
    return [step.label for step in build_steps(variant) if step.fatal]


def describe_variant(variant: Variant) -> dict[str, Any]:
    """Summary of a variant's default step list for frontends."""
    step_list = build_steps(variant)
    return {
        "name": variant.value,
        "description": VARIANT_DESCRIPTIONS[variant],
        "serviceable": variant is Variant.STANDARD,
        "steps": [
            {
                "ordinal": step.ordinal,
                "label": step.label,
                "policy": step.policy.value,
                "phase": step.phase.value,
            }
            for step in step_list
        ],
    }


__all__ = ["VARIANT_DESCRIPTIONS", "build_steps", "describe_variant", "fatal_labels"]

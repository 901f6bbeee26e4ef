"""Build pipeline: request, context, step lists and the build session."""

from tiny11_builder.pipeline.context import BuildRequest, PipelineContext
from tiny11_builder.pipeline.session import BuildResult, BuildSession, new_build_id
from tiny11_builder.pipeline.steps import PipelineStep, tweak_groups
from tiny11_builder.pipeline.variants import build_steps, describe_variant, fatal_labels

__all__ = [
    "BuildRequest",
    "BuildResult",
    "BuildSession",
    "PipelineContext",
    "PipelineStep",
    "build_steps",
    "describe_variant",
    "fatal_labels",
    "new_build_id",
    "tweak_groups",
]

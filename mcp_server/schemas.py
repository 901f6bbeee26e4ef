"""Pydantic schemas for MCP tool responses.

These schemas define the structured output formats for MCP tools,
ensuring consistent JSON responses across all tools.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class StepSummary(BaseModel):
    """One pipeline step of a variant."""

    model_config = ConfigDict(extra="forbid")

    ordinal: int
    label: str
    policy: str
    phase: str


class VariantSummary(BaseModel):
    """Summary of a reduction variant."""

    model_config = ConfigDict(extra="forbid")

    name: str
    description: str
    serviceable: bool
    steps: list[StepSummary]


class ListVariantsResponse(BaseModel):
    """Response for list_variants tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    variants: list[VariantSummary]
    error: dict[str, Any] | None = None


class ThemeSummary(BaseModel):
    """Summary of an installed theme."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str | None = None
    version: str | None = None
    author: str | None = None
    description: str | None = None
    error: dict[str, Any] | None = None


class ListThemesResponse(BaseModel):
    """Response for list_themes tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    themes: list[ThemeSummary]
    total: int
    error: dict[str, Any] | None = None


class BuildSummary(BaseModel):
    """Status snapshot of a submitted build."""

    model_config = ConfigDict(extra="forbid")

    build_id: str
    status: str
    phase: str | None = None
    progress: float = 0.0
    message: str = ""
    variant: str
    source: str
    output_path: str | None = None
    warnings: list[str] = []
    error: dict[str, Any] | None = None
    requested_at: str
    started_at: str | None = None
    finished_at: str | None = None


class StartBuildResponse(BaseModel):
    """Response for start_build tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    build_id: str | None = None
    status: str | None = None
    error: dict[str, Any] | None = None


class GetBuildStatusResponse(BaseModel):
    """Response for get_build_status tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    build: BuildSummary | None = None
    error: dict[str, Any] | None = None


class ListBuildsResponse(BaseModel):
    """Response for list_builds tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    builds: list[BuildSummary]
    total: int
    error: dict[str, Any] | None = None


__all__ = [
    "BuildSummary",
    "GetBuildStatusResponse",
    "ListBuildsResponse",
    "ListThemesResponse",
    "ListVariantsResponse",
    "StartBuildResponse",
    "StepSummary",
    "ThemeSummary",
    "VariantSummary",
]

"""MCP server implementation.

This module creates the FastMCP server and registers all tools.
Tools are thin wrappers around core tiny11_builder services.

- Builds are queued on the process-wide BuildManager, one at a time
- Return structured errors with codes
"""

from pathlib import Path
from typing import Annotated

from mcp.server.fastmcp import FastMCP
from pydantic import Field, ValidationError

from mcp_server.errors import (
    INTERNAL_ERROR,
    build_not_found,
    from_build_error,
    make_error,
    validation_error,
)
from mcp_server.schemas import (
    BuildSummary,
    GetBuildStatusResponse,
    ListBuildsResponse,
    ListThemesResponse,
    ListVariantsResponse,
    StartBuildResponse,
    ThemeSummary,
    VariantSummary,
)
from tiny11_builder.errors import BuildError
from tiny11_builder.service import BuildManager, BuildNotFoundError

# Create the FastMCP server instance
mcp = FastMCP(
    name="tiny11-builder",
)

_manager: BuildManager | None = None


def _get_build_manager() -> BuildManager:
    """Get the process-wide build manager, creating it on first use."""
    global _manager
    if _manager is None:
        _manager = BuildManager()
    return _manager


@mcp.tool()
def list_variants() -> ListVariantsResponse:
    """List the reduction variants and the steps each one runs.

    Returns:
        ListVariantsResponse with one entry per variant.
    """
    from tiny11_builder.pipeline.variants import describe_variant
    from tiny11_builder.types import Variant

    try:
        variants = [VariantSummary(**describe_variant(variant)) for variant in Variant]
        return ListVariantsResponse(success=True, variants=variants)
    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return ListVariantsResponse(success=False, variants=[], error=error.to_dict())


@mcp.tool()
def list_themes() -> ListThemesResponse:
    """List themes installed in the themes directory.

    Themes that fail to load are listed with their error.

    Returns:
        ListThemesResponse with theme summaries.
    """
    from tiny11_builder.config import get_settings
    from tiny11_builder.customize.theme import list_themes as svc_list_themes
    from tiny11_builder.customize.theme import load_theme

    try:
        settings = get_settings()
        themes = []
        for name in svc_list_themes(settings.themes_dir):
            try:
                theme = load_theme(settings.themes_dir, name)
            except BuildError as e:
                themes.append(ThemeSummary(id=name, error=from_build_error(e).to_dict()))
                continue
            themes.append(
                ThemeSummary(
                    id=name,
                    name=theme.name,
                    version=theme.version,
                    author=theme.author,
                    description=theme.description,
                )
            )
        return ListThemesResponse(success=True, themes=themes, total=len(themes))
    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return ListThemesResponse(success=False, themes=[], total=0, error=error.to_dict())


@mcp.tool()
def start_build(
    source: Annotated[str, Field(description="Mounted ISO or extracted media root")],
    variant: Annotated[
        str, Field(description="Reduction variant: standard, core or nano")
    ] = "standard",
    index: Annotated[
        int | None, Field(description="Image index (default: the Pro edition)")
    ] = None,
    output: Annotated[str | None, Field(description="Output ISO path")] = None,
    theme: Annotated[str | None, Field(description="Theme directory name")] = None,
    preinstall: Annotated[
        list[str] | None, Field(description="Preinstall app ids to stage")
    ] = None,
    enable_netfx3: Annotated[
        bool, Field(description="Enable .NET Framework 3.5 (core and nano)")
    ] = False,
    keep_staging: Annotated[
        bool, Field(description="Keep working directories after the build")
    ] = False,
) -> StartBuildResponse:
    """Queue a build of a reduced installation ISO.

    Builds run one at a time in the background; poll get_build_status with
    the returned build_id. The core and nano variants produce images that
    cannot be serviced.

    Returns:
        StartBuildResponse with the build id or a validation error.
    """
    from tiny11_builder.pipeline.context import BuildRequest

    try:
        request = BuildRequest(
            source=Path(source),
            variant=variant.lower(),
            index=index,
            output=Path(output) if output else None,
            theme=theme,
            preinstall=preinstall or [],
            enable_netfx3=enable_netfx3,
            keep_staging=keep_staging,
        )
    except ValidationError as e:
        return StartBuildResponse(
            success=False,
            error=validation_error(
                "Invalid build request", details={"errors": e.errors(include_url=False)}
            ).to_dict(),
        )

    try:
        manager = _get_build_manager()
        build_id = manager.submit(request)
        record = manager.get(build_id)
        return StartBuildResponse(success=True, build_id=build_id, status=record.status.value)
    except BuildError as e:
        return StartBuildResponse(success=False, error=from_build_error(e).to_dict())
    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return StartBuildResponse(success=False, error=error.to_dict())


@mcp.tool()
def get_build_status(
    build_id: Annotated[str, Field(description="Build ID returned by start_build")],
) -> GetBuildStatusResponse:
    """Get the status, phase and progress of a build.

    Returns:
        GetBuildStatusResponse with the build snapshot or error.
    """
    try:
        record = _get_build_manager().get(build_id)
    except BuildNotFoundError:
        return GetBuildStatusResponse(success=False, error=build_not_found(build_id).to_dict())
    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return GetBuildStatusResponse(success=False, error=error.to_dict())
    return GetBuildStatusResponse(success=True, build=BuildSummary(**record.to_dict()))


@mcp.tool()
def list_builds(
    status: Annotated[
        str | None,
        Field(description="Filter by status (pending, running, succeeded, failed)"),
    ] = None,
) -> ListBuildsResponse:
    """List builds submitted to this server.

    Returns:
        ListBuildsResponse with build snapshots, oldest first.
    """
    try:
        records = _get_build_manager().list()
        if status:
            records = [r for r in records if r.status.value == status]
        builds = [BuildSummary(**r.to_dict()) for r in records]
        return ListBuildsResponse(success=True, builds=builds, total=len(builds))
    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return ListBuildsResponse(success=False, builds=[], total=0, error=error.to_dict())


__all__ = [
    "get_build_status",
    "list_builds",
    "list_themes",
    "list_variants",
    "mcp",
    "start_build",
]

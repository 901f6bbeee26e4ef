"""Thin CLI wrapper for tiny11_builder.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn

from tiny11_builder import __version__
from tiny11_builder.config import get_settings, print_settings_json
from tiny11_builder.errors import BuildError
from tiny11_builder.log import setup_logging
from tiny11_builder.privileges import is_elevated, require_elevation
from tiny11_builder.types import BuildPhase, Variant

app = typer.Typer(
    name="tiny11",
    help="Tiny11 Builder - build reduced Windows 11 installation images",
    no_args_is_help=True,
)
console = Console()


def print_json(text: str) -> None:
    """Print JSON without Rich markup, highlighting or line wrapping."""
    console.print(text, markup=False, highlight=False, soft_wrap=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"tiny11-builder version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Tiny11 Builder - build reduced Windows 11 installation images."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        print_json(print_settings_json(settings))
    else:
        oscdimg_display = (
            str(settings.oscdimg_path) if settings.oscdimg_path else "(searched)"
        )
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Work directory:      {settings.work_dir}")
        console.print(f"  Output ISO:          {settings.default_output_iso}")
        console.print(f"  Themes directory:    {settings.themes_dir}")
        console.print(f"  Preinstall dir:      {settings.preinstall_dir}")
        console.print(f"  Logs directory:      {settings.logs_dir}")
        console.print(f"  oscdimg.exe:         {oscdimg_display}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Offline mode:        {settings.offline}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Keep on failure:     {settings.keep_on_failure}")
        console.print()
        console.print("[bold]Concurrency:[/bold]")
        console.print(f"  Max copy workers:    {settings.max_copy_concurrency}")
        console.print()
        console.print("[bold]Export:[/bold]")
        console.print(f"  Attempts:            {settings.export_attempts}")
        console.print(f"  Backoff (seconds):   {settings.export_backoff_seconds}")
        console.print(f"  Space margin:        {settings.export_space_margin_bytes} bytes")
        console.print(f"  Minimum size:        {settings.export_min_size_bytes} bytes")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Tool timeout:        {settings.tool_timeout}")
        console.print(f"  Download timeout:    {settings.download_timeout}")


@app.command()
def images(
    source: Annotated[Path, typer.Argument(help="Mounted ISO or extracted media root")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List the image indexes of an installation source."""
    from tiny11_builder.image.inspect import list_images, select_default_index, validate_source
    from tiny11_builder.tools import ToolRunner, ToolSet

    settings = get_settings()
    tools = ToolSet.from_runner(ToolRunner(timeout=settings.tool_timeout))
    try:
        image_file = validate_source(source)
        found = list_images(tools.dism, image_file)
    except BuildError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    default_index = select_default_index(found) if found else None
    if json_output:
        output = [
            {
                "index": image.index,
                "name": image.name,
                "description": image.description,
                "architecture": image.architecture,
                "size_bytes": image.size_bytes,
                "default": image.index == default_index,
            }
            for image in found
        ]
        print_json(json.dumps(output, indent=2))
        return

    if not found:
        console.print(f"[yellow]No images found in {image_file}[/yellow]")
        return
    console.print(f"[bold]Found {len(found)} image(s) in {image_file}:[/bold]")
    console.print()
    for image in found:
        marker = " [green](default)[/green]" if image.index == default_index else ""
        console.print(f"  [bold]{image.index}[/bold]: {image.name}{marker}")
        if image.description:
            console.print(f"    Description: {image.description}")
        console.print(f"    Architecture: {image.architecture}")


@app.command()
def build(
    source: Annotated[Path, typer.Argument(help="Mounted ISO or extracted media root")],
    variant: Annotated[
        Variant,
        typer.Option("--variant", "-m", help="Reduction variant", case_sensitive=False),
    ] = Variant.STANDARD,
    index: Annotated[
        int | None,
        typer.Option("--index", "-i", min=1, help="Image index (default: the Pro edition)"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output ISO path"),
    ] = None,
    theme: Annotated[
        str | None,
        typer.Option("--theme", "-t", help="Theme directory name"),
    ] = None,
    preinstall: Annotated[
        list[str] | None,
        typer.Option("--preinstall", "-p", help="Preinstall app id (can be repeated)"),
    ] = None,
    netfx3: Annotated[
        bool,
        typer.Option("--netfx3", help="Enable .NET Framework 3.5 (core and nano)"),
    ] = False,
    keep_staging: Annotated[
        bool,
        typer.Option("--keep-staging", help="Keep working directories after the build"),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompts"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Build a reduced installation ISO from SOURCE.

    The core and nano variants remove servicing components; the resulting
    image cannot receive updates or add languages. They ask for
    confirmation unless --yes is given.
    """
    from pydantic import ValidationError

    from tiny11_builder.image.mount import remediation_hint
    from tiny11_builder.pipeline import BuildRequest, BuildSession

    settings = get_settings()
    setup_logging("DEBUG" if verbose else settings.log_level, console=console)

    try:
        request = BuildRequest(
            source=source,
            variant=variant,
            index=index,
            output=output,
            theme=theme,
            preinstall=preinstall or [],
            enable_netfx3=netfx3,
            keep_staging=keep_staging,
        )
    except ValidationError as e:
        console.print("[red]Invalid build request:[/red]")
        console.print(str(e))
        raise typer.Exit(code=1) from None

    try:
        require_elevation(is_elevated)
    except BuildError as e:
        if json_output:
            print_json(json.dumps({"success": False, "error": e.to_dict()}, indent=2))
        else:
            console.print(f"[red]✗ {e.message}[/red]")
        raise typer.Exit(code=1) from None

    if variant is not Variant.STANDARD and not yes:
        console.print(
            f"[bold red]WARNING:[/bold red] The {variant.value} variant removes servicing "
            "components. The image will not be serviceable: no updates, languages or "
            "features can be added later."
        )
        if not typer.confirm("Are you sure you want to continue?", default=False):
            console.print("[yellow]Aborted[/yellow]")
            raise typer.Exit(code=0)

    progress = Progress(
        TextColumn("[bold blue]{task.fields[phase]}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.description}"),
        console=console,
        disable=json_output,
    )
    task_id = progress.add_task("Starting", total=100, phase=BuildPhase.VALIDATING.value)

    def on_status(phase: BuildPhase, percent: float, message: str) -> None:
        progress.update(task_id, completed=percent, description=message, phase=phase.value)

    session = BuildSession(request, settings=settings, status_callback=on_status)
    try:
        with progress:
            result = session.build()
    except BuildError as e:
        if json_output:
            print_json(json.dumps({"success": False, "error": e.to_dict()}, indent=2))
        else:
            console.print(f"[red]✗ Build failed: {e.message}[/red]")
            if e.code:
                console.print(f"  Code: {e.code}")
            console.print(f"  Working directories: {settings.staging_dir.parent}")
            console.print(f"  {remediation_hint(settings.scratch_dir)}")
        raise typer.Exit(code=1) from None

    if json_output:
        print_json(json.dumps({"success": True, **result.to_dict()}, indent=2))
        return

    console.print(f"[green]✓ Build succeeded: {result.output_path}[/green]")
    console.print(f"  Variant: {result.variant.value}")
    console.print(f"  Steps run: {len(result.steps_run)}")
    if result.export is not None:
        console.print(
            f"  Install image: {result.export.size_before} -> "
            f"{result.export.size_after} bytes ({result.export.ratio:.1f}% smaller)"
        )
    if result.warnings:
        console.print(f"  [yellow]Warnings ({len(result.warnings)}):[/yellow]")
        for warning in result.warnings:
            console.print(f"    - {warning}")
    if result.log_path:
        console.print(f"  Log: {result.log_path}")


themes_app = typer.Typer(help="Inspect available themes")
app.add_typer(themes_app, name="themes")


@themes_app.command("list")
def themes_list(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List themes in the themes directory."""
    from tiny11_builder.customize.theme import list_themes, load_theme

    settings = get_settings()
    names = list_themes(settings.themes_dir)
    if json_output:
        print_json(json.dumps(names, indent=2))
        return
    if not names:
        console.print(f"[yellow]No themes found in {settings.themes_dir}[/yellow]")
        return

    console.print(f"[bold]Found {len(names)} theme(s):[/bold]")
    console.print()
    for name in names:
        try:
            theme = load_theme(settings.themes_dir, name)
        except BuildError as e:
            console.print(f"  [red]{name}[/red]: {e.message}")
            continue
        console.print(f"  [green]{name}[/green]")
        console.print(f"    Name: {theme.name}")
        if theme.version:
            console.print(f"    Version: {theme.version}")
        if theme.author:
            console.print(f"    Author: {theme.author}")
        if theme.description:
            console.print(f"    Description: {theme.description}")


preinstall_app = typer.Typer(help="Inspect the preinstall manifest")
app.add_typer(preinstall_app, name="preinstall")


@preinstall_app.command("list")
def preinstall_list(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List apps in the preinstall manifest."""
    from tiny11_builder.customize.preinstall import load_manifest

    settings = get_settings()
    try:
        manifest = load_manifest(settings.preinstall_dir)
    except BuildError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        print_json(manifest.model_dump_json(indent=2))
        return
    if not manifest.apps:
        console.print(f"[yellow]No preinstall apps in {settings.preinstall_dir}[/yellow]")
        return

    state = "enabled" if manifest.enabled else "[yellow]disabled[/yellow]"
    console.print(f"[bold]Found {len(manifest.apps)} app(s), manifest {state}:[/bold]")
    console.print()
    for entry in manifest.apps:
        console.print(f"  [green]{entry.id}[/green]")
        if entry.name:
            console.print(f"    Name: {entry.name}")
        if entry.version:
            console.print(f"    Version: {entry.version}")
        console.print(f"    Command: {entry.command}")


if __name__ == "__main__":
    app()

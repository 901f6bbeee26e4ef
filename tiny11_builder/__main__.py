"""Entry point for ``python -m tiny11_builder``."""

from tiny11_builder.cli import app

app(prog_name="tiny11")

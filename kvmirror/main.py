"""
kvmirror — CLI Entry Point

Usage:
    kvmirror secret create -p app/db -o team -s vendor -u api < data.yml
    kvmirror secret check-sync --all-platforms
    kvmirror secret clean --platform dev --force
    python -m kvmirror.main --log-level DEBUG secret list
"""

from __future__ import annotations

# Load .env FIRST, before anything reads VAULT_TOKEN or LOG_LEVEL
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

from typing import Optional

import click

from . import __version__
from .cli.secret import secret
from .logging_config import setup_logging


@click.group()
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR (default: LOG_LEVEL or INFO)")
@click.option("--log-format", default=None, type=click.Choice(["text", "json"]), help="Log output format")
@click.version_option(__version__, prog_name="kvmirror")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], log_format: Optional[str]) -> None:
    """kvmirror — Versioned secrets with value-free CI mirrors."""
    ctx.ensure_object(dict)
    setup_logging(level=log_level, format_type=log_format)


cli.add_command(secret)


if __name__ == "__main__":
    cli()

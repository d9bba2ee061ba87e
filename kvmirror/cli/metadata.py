"""
CLI metadata commands — custom metadata of a secret.

Usage:
    kvmirror secret metadata get -p app/db
    kvmirror secret metadata create -p app/db -k team -v payments
    kvmirror secret metadata update -p app/db -k team -v billing
    kvmirror secret metadata delete -p app/db -k team [--skip-confirm]

owner, source and usage are mandatory and cannot be deleted.
"""

from __future__ import annotations

import click

from .context import surface_errors
from .output import emit


@click.group()
def metadata() -> None:
    """Read and edit the custom metadata of a secret."""


@metadata.command("get")
@click.option("--path", "-p", required=True, help="Secret path")
@click.pass_context
@surface_errors
def metadata_get(ctx: click.Context, path: str) -> None:
    """Show custom metadata and version history."""
    record = ctx.obj["secrets"].lifecycle().get_metadata(path)
    emit(ctx, {
        "current_version": record.current_version,
        "oldest_version": record.oldest_version,
        "custom_metadata": record.custom_metadata,
        "versions": record.versions,
    })


@metadata.command("create")
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--key", "-k", required=True, help="Metadata key")
@click.option("--value", "-v", required=True, help="Metadata value")
@click.pass_context
@surface_errors
def metadata_create(ctx: click.Context, path: str, key: str, value: str) -> None:
    """Add a custom metadata key."""
    ctx.obj["secrets"].lifecycle().create_metadata_key(path, key, value)
    click.echo(f"metadata {key} has been created")


@metadata.command("update")
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--key", "-k", required=True, help="Metadata key")
@click.option("--value", "-v", required=True, help="Metadata value")
@click.pass_context
@surface_errors
def metadata_update(ctx: click.Context, path: str, key: str, value: str) -> None:
    """Change the value of an existing custom metadata key."""
    ctx.obj["secrets"].lifecycle().update_metadata_key(path, key, value)
    click.echo(f"metadata {key} has been updated")


@metadata.command("delete")
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--key", "-k", required=True, help="Metadata key")
@click.option("--skip-confirm", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
@surface_errors
def metadata_delete(ctx: click.Context, path: str, key: str, skip_confirm: bool) -> None:
    """Remove a custom metadata key."""
    ctx.obj["secrets"].lifecycle().delete_metadata_key(path, key, skip_confirm=skip_confirm)
    click.echo(f"metadata {key} has been deleted")

"""
CLI jwt commands — interservice JWT config secrets.

Usage:
    kvmirror secret -P dev -e de jwt server -p billing/jwt -o payments \\
        -L billing -S ledger -C checkout --client-secret <hex key>
    kvmirror secret jwt client -p checkout/jwt -o payments -L checkout -T ledger [-S <hex key>]
    kvmirror secret jwt lint -p billing/jwt [-v 3]

Keys must be at least 32 hexadecimal characters (HMAC-SHA256). The
client command generates one when --secret is omitted.
"""

from __future__ import annotations

from typing import Optional

import click

from ..engine.jwt import JWTSecrets
from ..errors import InvalidJSONSecretData
from ..models.secret import SecretVersion
from .context import surface_errors
from .output import emit


def _written(ctx: click.Context, record: SecretVersion) -> None:
    emit(ctx, {
        "version": record.version,
        "keys": record.keys(),
        "custom_metadata": record.custom_metadata,
    })


@click.group()
def jwt() -> None:
    """Manage interservice JWT token secrets."""


@jwt.command()
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--owner", "-o", required=True, help="Owner of the secret")
@click.option("--local-name", "-L", required=True, help="Name of the service holding the secret")
@click.option("--service-name", "-S", required=True, help="Service the clients call")
@click.option("--client-name", "-C", required=True, help="Client allowed to call the service")
@click.option("--client-secret", required=True, help="HMAC-SHA256 key of the client")
@click.pass_context
@surface_errors
def server(
    ctx: click.Context,
    path: str,
    owner: str,
    local_name: str,
    service_name: str,
    client_name: str,
    client_secret: str,
) -> None:
    """Create or update the server side JWT config of a service."""
    secrets = JWTSecrets(ctx.obj["secrets"].lifecycle())
    record = secrets.server(path, owner, local_name, service_name, client_name, client_secret)
    _written(ctx, record)


@jwt.command()
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--owner", "-o", required=True, help="Owner of the secret")
@click.option("--local-name", "-L", required=True, help="Name of the calling service")
@click.option("--target-service", "-T", required=True, help="Service being called")
@click.option("--secret", "-S", "key", default=None, help="HMAC-SHA256 key (default: generated)")
@click.pass_context
@surface_errors
def client(
    ctx: click.Context,
    path: str,
    owner: str,
    local_name: str,
    target_service: str,
    key: Optional[str],
) -> None:
    """Create or update the client side JWT config for a target service."""
    secrets = JWTSecrets(ctx.obj["secrets"].lifecycle())
    record = secrets.client(path, owner, local_name, target_service, secret=key)
    _written(ctx, record)


@jwt.command()
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--version", "-v", "version", default=0, type=int, help="Version to check (default: latest)")
@click.pass_context
@surface_errors
def lint(ctx: click.Context, path: str, version: int) -> None:
    """Check that every JSON config held by a secret parses."""
    secrets = JWTSecrets(ctx.obj["secrets"].lifecycle())
    invalid = secrets.lint(path, version or None)
    if invalid:
        raise InvalidJSONSecretData(f"invalid JSON in key(s) {', '.join(invalid)}")
    click.echo("No JSON errors found in secret")

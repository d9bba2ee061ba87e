"""
CLI secret commands — lifecycle, mirror sync and retention of KV secrets.

Usage:
    kvmirror secret [-c secret.yml] [-P platform] [-e env] create -p app/db -o team -s vendor -u api < data.yml
    kvmirror secret get -p app/db [-v 2] [-K pass]
    kvmirror secret update -p app/db < changes.yml
    kvmirror secret update -p app/db --remove -k old_key
    kvmirror secret delete -p app/db [-v 2] [--skip-confirm]
    kvmirror secret undelete -p app/db -v 2 [--skip-confirm]
    kvmirror secret destroy -p app/db
    kvmirror secret resync -p app/db [-v 2]
    kvmirror secret check-sync [-P dev | -A]
    kvmirror secret clean [-P dev | -A] [--force]
    kvmirror secret list [-p app]
    kvmirror secret diff -p app/db --base-version 1 [--diff-version 3]
    kvmirror secret list-duplicates [-p app]
    kvmirror secret jwt server|client|lint ...
"""

from __future__ import annotations

from typing import Dict, List, Optional

import click
import yaml

from ..config.models import COMMON, SecretScope
from ..engine.resync import resync as resync_version
from ..engine.retention import RetentionSweeper
from ..engine.sync_check import check_sync as audit_sync
from ..errors import SecretsNotSynced, SweepFailed
from ..models.secret import DriftInfo
from .context import SecretContext, surface_errors
from .jwt import jwt
from .metadata import metadata
from .output import emit

RESYNC_MESSAGES = {
    "already_synced": "Nothing to do, CI secret version already in sync",
    "deleted": "CI secret successfully resynchronized (deleted)",
    "created_and_deleted": "CI secret successfully resynchronized (created & deleted)",
    "undeleted": "CI secret successfully resynchronized (undeleted)",
    "created": "CI secret successfully resynchronized",
}


# ─── Input helpers ──────────────────────────────────────────


def read_stdin_mapping() -> Dict[str, str]:
    """Read a flat YAML mapping of key: value from stdin."""
    raw = click.get_text_stream("stdin").read()
    try:
        loaded = yaml.safe_load(raw) if raw.strip() else None
    except yaml.YAMLError as e:
        raise click.ClickException(f"invalid YAML input: {e}")

    if not loaded:
        raise click.ClickException("input is empty")
    if not isinstance(loaded, dict):
        raise click.ClickException("input must be a YAML mapping of key: value")

    return {str(k): "" if v is None else str(v) for k, v in loaded.items()}


def prompt_mapping(keys_only: bool = False) -> Dict[str, Optional[str]]:
    """Ask for key (and value) pairs until an empty key is entered."""
    data: Dict[str, Optional[str]] = {}
    while True:
        key = click.prompt("Key (empty to finish)", default="", show_default=False)
        if not key:
            break
        if keys_only:
            data[key] = None
            continue
        data[key] = click.prompt(f"Value for {key}", hide_input=True)

    if not data:
        raise click.ClickException("input is empty")
    return data


def split_keys(values: List[str]) -> List[str]:
    keys: List[str] = []
    for value in values:
        keys.extend(k.strip() for k in value.split(",") if k.strip())
    return keys


def drift_summary(info: DriftInfo) -> Dict[str, object]:
    if info.error is not None:
        return {"error": info.error}
    return {
        "secret_version": info.secret_version,
        "ci_version": info.mirror_version,
        "secret_deletions": info.secret_deletions(),
        "ci_deletions": info.mirror_deletions(),
    }


def _flags(deletions: Dict[int, bool]) -> str:
    return " ".join(f"{v}:{str(d).lower()}" for v, d in deletions.items())


def _target_scopes(sc: SecretContext, platform: Optional[str], all_platforms: bool) -> List[SecretScope]:
    if all_platforms:
        return [sc.scope(name, None) for name in sc.config.platform_names()]
    return [sc.scope(platform or sc.platform or COMMON, None)]


# ─── Group ──────────────────────────────────────────────────


@click.group()
@click.option("--config", "-c", "config_path", default=None, help="Config file (default: secret.yml)")
@click.option("--platform", "-P", default=None, help="Platform under which the secret is stored")
@click.option("--environment", "-e", default=None, help="Environment under which the secret is stored")
@click.option("--json", "as_json", is_flag=True, help="Format output in JSON")
@click.option("--yaml", "as_yaml", is_flag=True, help="Format output in YAML (default)")
@click.pass_context
def secret(
    ctx: click.Context,
    config_path: Optional[str],
    platform: Optional[str],
    environment: Optional[str],
    as_json: bool,
    as_yaml: bool,
) -> None:
    """Manage versioned secrets and their CI mirrors."""
    ctx.ensure_object(dict)
    ctx.obj["json"] = as_json and not as_yaml
    ctx.obj["secrets"] = SecretContext(config_path, platform, environment)


secret.add_command(metadata)
secret.add_command(jwt)


# ─── Lifecycle ──────────────────────────────────────────────


@secret.command()
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--owner", "-o", required=True, help="Owner of the secret")
@click.option("--source", "-s", required=True, help="Source of the secret")
@click.option("--usage", "-u", required=True, help="Where the secret is used")
@click.option("--interactive", "-i", is_flag=True, help="Prompt for key/value pairs")
@click.pass_context
@surface_errors
def create(
    ctx: click.Context,
    path: str,
    owner: str,
    source: str,
    usage: str,
    interactive: bool,
) -> None:
    """Create a secret from a YAML mapping on stdin."""
    data = prompt_mapping() if interactive else read_stdin_mapping()
    lifecycle = ctx.obj["secrets"].lifecycle()

    record = lifecycle.create(
        path,
        data,
        {"owner": owner, "source": source, "usage": usage},
    )
    emit(ctx, {
        "version": record.version,
        "keys": record.keys(),
        "custom_metadata": record.custom_metadata,
    })


@secret.command()
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--version", "-v", "version", default=0, type=int, help="Version to read (default: latest)")
@click.option("--data-key", "-K", default=None, help="Only keys containing this substring")
@click.pass_context
@surface_errors
def get(ctx: click.Context, path: str, version: int, data_key: Optional[str]) -> None:
    """Read one version of a secret."""
    lifecycle = ctx.obj["secrets"].lifecycle()
    record = lifecycle.get(path, version or None, key_filter=data_key)
    emit(ctx, {
        "version": record.version,
        "data": record.data,
        "deletion_time": record.deletion_time,
        "destroyed": record.destroyed,
        "custom_metadata": record.custom_metadata,
    })


@secret.command()
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--interactive", "-i", is_flag=True, help="Prompt for key/value pairs")
@click.option("--remove", is_flag=True, help="Remove the provided keys from the secret")
@click.option("--keys", "-k", multiple=True, help="Comma-separated keys to remove (needs --remove)")
@click.pass_context
@surface_errors
def update(
    ctx: click.Context,
    path: str,
    interactive: bool,
    remove: bool,
    keys: tuple,
) -> None:
    """Write a new version merging stdin YAML into the latest one."""
    if keys and not remove:
        raise click.ClickException("--keys needs --remove")
    if keys and interactive:
        raise click.ClickException("--keys and --interactive are mutually exclusive")

    changes: Dict[str, Optional[str]]
    if remove:
        names = split_keys(list(keys)) if keys else list(prompt_mapping(keys_only=True))
        changes = {name: None for name in names}
    elif interactive:
        changes = prompt_mapping()
    else:
        changes = dict(read_stdin_mapping())

    lifecycle = ctx.obj["secrets"].lifecycle()
    record = lifecycle.update(path, changes)
    emit(ctx, {
        "version": record.version,
        "keys": record.keys(),
        "custom_metadata": record.custom_metadata,
    })


@secret.command()
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--version", "-v", "version", default=0, type=int, help="Version to delete (default: latest)")
@click.option("--skip-confirm", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
@surface_errors
def delete(ctx: click.Context, path: str, version: int, skip_confirm: bool) -> None:
    """Soft-delete one version of a secret and its mirror."""
    lifecycle = ctx.obj["secrets"].lifecycle()
    deleted = lifecycle.delete(path, version or None, skip_confirm=skip_confirm)
    if deleted is None:
        click.echo("no version left to delete")
    else:
        click.echo(f"secret version {deleted} has been deleted (if it existed)")


@secret.command()
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--version", "-v", "version", required=True, type=int, help="Version to undelete")
@click.option("--skip-confirm", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
@surface_errors
def undelete(ctx: click.Context, path: str, version: int, skip_confirm: bool) -> None:
    """Restore a soft-deleted version of a secret and its mirror."""
    lifecycle = ctx.obj["secrets"].lifecycle()
    restored = lifecycle.undelete(path, version, skip_confirm=skip_confirm)
    click.echo(f"secret version {restored} has been undeleted (if it existed)")


@secret.command()
@click.option("--path", "-p", required=True, help="Secret path")
@click.pass_context
@surface_errors
def destroy(ctx: click.Context, path: str) -> None:
    """Delete every version and schedule permanent destruction."""
    lifecycle = ctx.obj["secrets"].lifecycle()
    not_before = lifecycle.destroy(path)
    click.echo("all available versions of the secret have been deleted.")
    click.secho(f"secret has been marked for destruction on {not_before}.", fg="yellow")


# ─── Mirror sync ────────────────────────────────────────────


@secret.command()
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--version", "-v", "version", default=0, type=int, help="Version to resync (default: current)")
@click.pass_context
@surface_errors
def resync(ctx: click.Context, path: str, version: int) -> None:
    """Rebuild one CI mirror version from the secret."""
    sc: SecretContext = ctx.obj["secrets"]
    lifecycle = sc.lifecycle()
    outcome = resync_version(
        lifecycle.replicas,
        lifecycle.path_of(path),
        version or None,
        mirror_prefix=lifecycle.scope.mirror_prefix,
        ledger=lifecycle.ledger,
    )
    click.echo(RESYNC_MESSAGES[outcome.value])


@secret.command("check-sync")
@click.option("--platform", "-P", "platform", default=None, help="Platform to check")
@click.option("--all-platforms", "-A", is_flag=True, help="Check every configured platform")
@click.pass_context
@surface_errors
def check_sync(ctx: click.Context, platform: Optional[str], all_platforms: bool) -> None:
    """Report secrets whose CI mirror is out of sync."""
    sc: SecretContext = ctx.obj["secrets"]
    total = 0
    results: Dict[str, Dict[str, object]] = {}

    for scope in _target_scopes(sc, platform, all_platforms):
        drift = audit_sync(sc.replicas(scope), "", mirror_prefix=scope.mirror_prefix)
        total += len(drift)
        results[scope.platform] = {path: drift_summary(info) for path, info in drift.items()}

        if ctx.obj["json"]:
            continue
        if not drift:
            click.echo(f"All secrets are synced on {scope.platform} platform")
            continue

        click.echo(
            f"Secrets are not synced on {scope.platform} platform "
            "(version -1 means that secret has not been found)"
        )
        for path, info in drift.items():
            if info.error is not None:
                click.echo(f"  {path} - {info.error}")
                continue
            click.echo(
                f"  {path} - secret current version is {info.secret_version} "
                f"while ci current version is {info.mirror_version}"
            )
            click.echo(f"    secret version deletion: {_flags(info.secret_deletions())}")
            click.echo(f"    ci version deletion: {_flags(info.mirror_deletions())}")
        click.echo("")

    if ctx.obj["json"]:
        emit(ctx, results)
    if total:
        raise SecretsNotSynced(total)


@secret.command()
@click.option("--force", is_flag=True, help="Actually destroy secrets instead of a dry run")
@click.option("--platform", "-P", "platform", default=None, help="Platform to clean")
@click.option("--all-platforms", "-A", is_flag=True, help="Clean every configured platform")
@click.pass_context
@surface_errors
def clean(ctx: click.Context, force: bool, platform: Optional[str], all_platforms: bool) -> None:
    """Destroy secrets whose scheduled destruction date has passed."""
    sc: SecretContext = ctx.obj["secrets"]
    if not force:
        click.echo("dry-run execution. No secret will be destroyed.")

    errors: Dict[str, str] = {}
    for scope in _target_scopes(sc, platform, all_platforms):
        sweeper = RetentionSweeper(
            sc.replicas(scope),
            mirror_prefix=scope.mirror_prefix,
            ledger=sc.ledger(),
        )
        report = sweeper.clean("", dry_run=not force)

        if not report.candidates:
            click.echo(f"nothing to destroy in platform {scope.platform}")
        for path in report.candidates:
            if not force:
                click.echo(f"secret path {path} in platform {scope.platform} would be destroyed")
            elif path in report.destroyed:
                click.echo(f"destroyed secret path {path} in platform {scope.platform}")
        for path, error in report.errors.items():
            click.secho(f"{scope.platform}:{path}: {error}", fg="red", err=True)
            errors[f"{scope.platform}:{path}"] = error

    if errors:
        raise SweepFailed(errors)


# ─── Browsing ───────────────────────────────────────────────


@secret.command("list")
@click.option("--path", "-p", default="", help="Directory to list (default: scope root)")
@click.pass_context
@surface_errors
def list_secrets(ctx: click.Context, path: str) -> None:
    """List secrets and directories under a path."""
    lifecycle = ctx.obj["secrets"].lifecycle()
    emit(ctx, lifecycle.list_secrets(path))


@secret.command()
@click.option("--path", "-p", required=True, help="Secret path")
@click.option("--base-version", required=True, type=int, help="Base version for the diff")
@click.option("--diff-version", default=None, type=int, help="Version to compare (default: latest)")
@click.pass_context
@surface_errors
def diff(ctx: click.Context, path: str, base_version: int, diff_version: Optional[int]) -> None:
    """Show a unified diff between two versions of a secret."""
    lifecycle = ctx.obj["secrets"].lifecycle()
    text = lifecycle.diff(path, base_version, diff_version)
    if not text:
        click.echo("no difference")
        return
    click.echo(text.rstrip("\n"))


@secret.command("list-duplicates")
@click.option("--path", "-p", default="", help="Directory to search (default: scope root)")
@click.pass_context
@surface_errors
def list_duplicates(ctx: click.Context, path: str) -> None:
    """Find every secret key holding a given value."""
    value = click.prompt("Enter the secret value to check", hide_input=True)
    lifecycle = ctx.obj["secrets"].lifecycle()
    matches = lifecycle.find_duplicates(value, root=path)
    if not matches:
        click.echo("No secret found with the provided value")
        return
    emit(ctx, matches)

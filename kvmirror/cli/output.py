"""
CLI output — YAML (default) or JSON rendering of command results.
"""

from __future__ import annotations

import json
from typing import Any

import click
import yaml
from pydantic import BaseModel


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def render(value: Any, as_json: bool = False) -> str:
    data = _plain(value)
    if as_json:
        return json.dumps(data, indent=2, sort_keys=True, default=str)
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=True).rstrip("\n")


def emit(ctx: click.Context, value: Any) -> None:
    """Print a command result in the format selected on the group."""
    click.echo(render(value, as_json=ctx.obj.get("json", False)))

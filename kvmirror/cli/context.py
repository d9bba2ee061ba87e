"""
CLI context — Config, scope and replicas shared by every secret command.

Group options (-c/-P/-e) are stored on ctx.obj; commands build the
engine objects they need through SecretContext.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Optional

import click

from ..backend.replicas import ReplicaSet, build_replicas
from ..config.loader import load_config, resolve_scope
from ..config.models import KVMirrorConfig, SecretScope
from ..engine.lifecycle import SecretLifecycle
from ..engine.prompts import ConfirmationPrompt
from ..errors import KVMirrorError
from ..persistence.ledger import OperationLedger

logger = logging.getLogger(__name__)


def click_confirm(message: str) -> bool:
    return click.confirm(message, default=False)


def surface_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn engine errors into a one-line CLI error with exit code 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except KVMirrorError as e:
            raise click.ClickException(str(e)) from e

    return wrapper


class SecretContext:
    """Lazily loaded config plus factories for engine objects."""

    def __init__(
        self,
        config_path: Optional[str] = None,
        platform: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        self.config_path = config_path
        self.platform = platform
        self.environment = environment
        self._config: Optional[KVMirrorConfig] = None

    @property
    def config(self) -> KVMirrorConfig:
        if self._config is None:
            self._config = load_config(self.config_path)
        return self._config

    def scope(self, platform: Optional[str] = None, environment: Optional[str] = None) -> SecretScope:
        if platform is None:
            platform, environment = self.platform, self.environment
        return resolve_scope(self.config, platform, environment)

    def replicas(self, scope: SecretScope) -> ReplicaSet:
        """Replicas for scope, closed when the running command finishes."""
        replicas = build_replicas(scope)
        ctx = click.get_current_context(silent=True)
        if ctx is not None:
            ctx.call_on_close(replicas.close)
        return replicas

    def ledger(self) -> Optional[OperationLedger]:
        if self.config.ledger_file is None:
            return None
        return OperationLedger(self.config.ledger_file)

    def lifecycle(self, prompt: Optional[ConfirmationPrompt] = None) -> SecretLifecycle:
        scope = self.scope()
        logger.debug(f"Scope {scope.label} -> {scope.secret_prefix} on {', '.join(scope.endpoints)}")
        return SecretLifecycle(
            scope,
            self.replicas(scope),
            prompt=prompt or click_confirm,
            ledger=self.ledger(),
        )

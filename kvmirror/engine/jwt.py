"""
JWT Secrets — Interservice JWT configuration stored as secret values.

Two kinds of secret carry the HMAC-SHA256 keys services use to sign and
verify interservice tokens:

- server: one JSON config per called service, listing every client
  allowed to call it with its key (INTERSERVICE_SERVER_<SERVICE>_CONFIG)
- client: one JSON config per target service, holding the key the
  client signs with (INTERSERVICE_CLIENT_<SERVICE>_CONFIG)

Both are ordinary secrets. Writes go through SecretLifecycle so the CI
mirror follows: a path without a usable version is created with JWT
metadata, otherwise a new version is written on top of the latest one.

## Usage

    jwt = JWTSecrets(lifecycle)
    jwt.server("billing/jwt", "payments", "billing", "ledger", "checkout", key)
    jwt.client("checkout/jwt", "payments", "checkout", "ledger")
    invalid = jwt.lint("billing/jwt")
"""

from __future__ import annotations

import json
import logging
import re
import secrets
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from ..errors import InvalidJSONSecretData, InvalidJWTSecret, InvalidMetadata, OwnerMismatch
from ..models.secret import SecretVersion
from .lifecycle import SecretLifecycle
from .versions import get_latest_version

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
SERVER_KEY_PREFIX = "INTERSERVICE_SERVER"
CLIENT_KEY_PREFIX = "INTERSERVICE_CLIENT"
JWT_SOURCE = "JWT token"
JWT_USAGE = "JWT interservice communication"

MIN_SECRET_LENGTH = 32
GENERATED_SECRET_BYTES = 64

_HEX = re.compile(r"^[a-fA-F0-9]+$")
_JSON_OBJECT = re.compile(r"^\s*{", re.MULTILINE)


class JWTServerSpec(BaseModel):
    """Server side config: the clients allowed to call service_name."""

    service_name: str
    local_name: str
    algorithm: str = JWT_ALGORITHM
    clients: Dict[str, str] = Field(default_factory=dict)


class JWTClientSpec(BaseModel):
    """Client side config: how local_name signs calls to target_service."""

    target_service: str
    algorithm: str = JWT_ALGORITHM
    local_name: str
    secret: str


def validate_client_secret(secret: str) -> None:
    if len(secret) < MIN_SECRET_LENGTH or not _HEX.match(secret):
        raise InvalidJWTSecret()


def generate_client_secret() -> str:
    return secrets.token_hex(GENERATED_SECRET_BYTES)


def config_key(prefix: str, service: str) -> str:
    """INTERSERVICE_<SIDE>_<SERVICE>_CONFIG, service upper-cased with '-' as '_'."""
    return "_".join((prefix, service.upper().replace("-", "_"), "CONFIG"))


def invalid_json_keys(data: Mapping[str, object]) -> List[str]:
    """Keys whose value looks like a JSON object but does not parse."""
    invalid = []
    for key, value in data.items():
        if not isinstance(value, str) or not _JSON_OBJECT.search(value):
            continue
        try:
            json.loads(value)
        except ValueError:
            invalid.append(key)
    return sorted(invalid)


def jwt_metadata(owner: str) -> Dict[str, str]:
    return {"owner": owner, "source": JWT_SOURCE, "usage": JWT_USAGE}


class JWTSecrets:
    """JWT config writers and linter on top of a SecretLifecycle."""

    def __init__(self, lifecycle: SecretLifecycle):
        self.lifecycle = lifecycle

    def server(
        self,
        path: str,
        owner: str,
        local_name: str,
        service_name: str,
        client_name: str,
        client_secret: str,
    ) -> SecretVersion:
        """
        Allow client_name to call service_name with client_secret.

        An existing config for the service keeps its other clients; a
        client already listed gets its key replaced.
        """
        if not owner:
            raise InvalidMetadata("owner can't be empty")
        validate_client_secret(client_secret)

        key = config_key(SERVER_KEY_PREFIX, service_name)
        spec = JWTServerSpec(
            service_name=service_name,
            local_name=local_name,
            clients={client_name: client_secret},
        )
        full = self.lifecycle.path_of(path)

        with self.lifecycle.locks.hold(full):
            latest = get_latest_version(self.lifecycle.replicas, full)
            if latest is None:
                return self._create(path, {key: spec.model_dump_json()}, owner)

            current = self.lifecycle.get(path, latest)
            raw = current.data.get(key)
            if raw is not None:
                try:
                    existing = JWTServerSpec.model_validate_json(raw)
                except ValidationError as e:
                    raise InvalidJSONSecretData(
                        f"invalid JSON in existing secret data (key {key})", path=full
                    ) from e
                existing.clients.update(spec.clients)
                spec = existing

            record = self.lifecycle.update(path, {key: spec.model_dump_json()})

        logger.info(
            f"Granted {client_name} access to {service_name} in {full}",
            extra={"secret_path": full, "version": record.version},
        )
        return record

    def client(
        self,
        path: str,
        owner: str,
        local_name: str,
        target_service: str,
        secret: Optional[str] = None,
    ) -> SecretVersion:
        """
        Store the key local_name signs calls to target_service with.

        Without secret a random 64-byte hex key is generated. Updating an
        existing secret requires the same owner.
        """
        if not owner:
            raise InvalidMetadata("owner can't be empty")
        if secret:
            validate_client_secret(secret)
        else:
            secret = generate_client_secret()

        spec = JWTClientSpec(target_service=target_service, local_name=local_name, secret=secret)
        data = {config_key(CLIENT_KEY_PREFIX, target_service): spec.model_dump_json()}
        full = self.lifecycle.path_of(path)

        with self.lifecycle.locks.hold(full):
            latest = get_latest_version(self.lifecycle.replicas, full)
            if latest is None:
                return self._create(path, data, owner)

            metadata = self.lifecycle.get_metadata(path)
            if metadata.custom_metadata.get("owner") != owner:
                raise OwnerMismatch(full)
            return self.lifecycle.update(path, data)

    def lint(self, path: str, version: Optional[int] = None) -> List[str]:
        """Keys of one version (latest by default) holding malformed JSON."""
        record = self.lifecycle.get(path, version)
        invalid = invalid_json_keys(record.data)
        if invalid:
            logger.warning(
                f"Invalid JSON in {len(invalid)} key(s) of {self.lifecycle.path_of(path)}",
                extra={"secret_path": self.lifecycle.path_of(path), "version": record.version},
            )
        return invalid

    def _create(self, path: str, data: Dict[str, object], owner: str) -> SecretVersion:
        return self.lifecycle.create(path, data, jwt_metadata(owner))

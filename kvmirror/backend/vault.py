"""
Vault Replica — KV v2 over the HTTP API.

Talks to one Vault endpoint with httpx. Authentication is not handled
here: the token is supplied by the caller (VAULT_TOKEN by default).

## Endpoints used

    GET    /v1/<mount>/data/<path>[?version=N]
    POST   /v1/<mount>/data/<path>            {"data": ..., "options": {"cas": N}}
    GET    /v1/<mount>/metadata/<path>
    GET    /v1/<mount>/metadata/<path>?list=true
    POST   /v1/<mount>/metadata/<path>        {"custom_metadata": ...}
    PATCH  /v1/<mount>/metadata/<path>        (merge-patch)
    DELETE /v1/<mount>/metadata/<path>
    POST   /v1/<mount>/delete/<path>          {"versions": [N]}
    POST   /v1/<mount>/undelete/<path>        {"versions": [N]}
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..errors import BackendError, VersionConflict
from ..models.secret import SecretMetadata, SecretVersion
from .base import SecretReplica

logger = logging.getLogger(__name__)

CAS_MISMATCH_MARKER = "check-and-set"


class VaultReplica(SecretReplica):
    """Real KV v2 replica using httpx."""

    def __init__(
        self,
        address: str,
        token: Optional[str] = None,
        namespace: Optional[str] = None,
        mount: str = "kv",
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self._address = address.rstrip("/")
        self._token = token
        self._namespace = namespace
        self._mount = mount.strip("/")
        self._client = client or httpx.Client(base_url=self._address, timeout=timeout)

    @property
    def address(self) -> str:
        return self._address

    def close(self) -> None:
        self._client.close()

    # ─── HTTP plumbing ──────────────────────────────────────

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["X-Vault-Token"] = self._token
        if self._namespace:
            headers["X-Vault-Namespace"] = self._namespace
        return headers

    def _url(self, kind: str, path: str) -> str:
        return f"/v1/{self._mount}/{kind}/{path.strip('/')}"

    def _request(
        self,
        method: str,
        url: str,
        action: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        try:
            return self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise BackendError(
                f"error while {action} {path} on {self.address}: {e}",
                address=self.address,
                path=path,
            ) from e

    @staticmethod
    def _body(response: httpx.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _fail(self, response: httpx.Response, action: str, path: str) -> BackendError:
        errors = self._body(response).get("errors") or []
        detail = "; ".join(str(e) for e in errors) or f"HTTP {response.status_code}"
        return BackendError(
            f"error while {action} {path} on {self.address}: {detail}",
            address=self.address,
            path=path,
        )

    # ─── Reads ──────────────────────────────────────────────

    def read_version(self, path: str, version: Optional[int] = None) -> Optional[SecretVersion]:
        params = {"version": str(version)} if version else None
        response = self._request("GET", self._url("data", path), "reading", path, params=params)

        body = self._body(response)
        payload = body.get("data") or {}

        if response.status_code == 404:
            # Deleted or destroyed versions answer 404 but still carry metadata
            if not payload.get("metadata"):
                return None
        elif response.status_code != 200:
            raise self._fail(response, "reading", path)

        meta = payload.get("metadata") or {}
        return SecretVersion(
            version=int(meta.get("version") or version or 0),
            data=payload.get("data") or {},
            created_time=meta.get("created_time"),
            deletion_time=meta.get("deletion_time"),
            destroyed=bool(meta.get("destroyed")),
            custom_metadata=meta.get("custom_metadata") or {},
        )

    def read_metadata(self, path: str) -> Optional[SecretMetadata]:
        response = self._request("GET", self._url("metadata", path), "reading metadata of", path)
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise self._fail(response, "reading metadata of", path)
        metadata = SecretMetadata(**(self._body(response).get("data") or {}))
        if metadata.versions and metadata.oldest_version < min(metadata.versions):
            # Mounts without max_versions trimming report oldest_version 0
            metadata = metadata.model_copy(update={"oldest_version": min(metadata.versions)})
        return metadata

    def list_children(self, path: str) -> Optional[List[str]]:
        response = self._request(
            "GET",
            self._url("metadata", path).rstrip("/") + "/",
            "listing",
            path,
            params={"list": "true"},
        )
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise self._fail(response, "listing", path)
        keys = (self._body(response).get("data") or {}).get("keys")
        return list(keys) if keys else None

    # ─── Writes ─────────────────────────────────────────────

    def write_version(
        self,
        path: str,
        data: Dict[str, object],
        cas: Optional[int] = None,
    ) -> int:
        payload: Dict[str, Any] = {"data": data}
        if cas is not None:
            payload["options"] = {"cas": cas}

        response = self._request("POST", self._url("data", path), "writing", path, json=payload)
        if response.status_code == 400:
            errors = " ".join(str(e) for e in self._body(response).get("errors") or [])
            if CAS_MISMATCH_MARKER in errors:
                raise VersionConflict(path, cas, self.address)
        if response.status_code not in (200, 204):
            raise self._fail(response, "writing", path)

        version = (self._body(response).get("data") or {}).get("version")
        logger.debug(f"Wrote {path} v{version} on {self.address}")
        return int(version or 0)

    def write_metadata(self, path: str, custom_metadata: Dict[str, str]) -> None:
        response = self._request(
            "POST",
            self._url("metadata", path),
            "writing metadata of",
            path,
            json={"custom_metadata": custom_metadata},
        )
        if response.status_code not in (200, 204):
            raise self._fail(response, "writing metadata of", path)

    def patch_metadata(self, path: str, custom_metadata: Dict[str, Optional[str]]) -> None:
        response = self._request(
            "PATCH",
            self._url("metadata", path),
            "patching metadata of",
            path,
            content=json.dumps({"custom_metadata": custom_metadata}),
            headers={"Content-Type": "application/merge-patch+json"},
        )
        if response.status_code not in (200, 204):
            raise self._fail(response, "patching metadata of", path)

    def soft_delete(self, path: str, versions: List[int]) -> None:
        response = self._request(
            "POST", self._url("delete", path), "deleting", path, json={"versions": versions}
        )
        if response.status_code not in (200, 204):
            raise self._fail(response, "deleting", path)

    def undelete(self, path: str, versions: List[int]) -> None:
        response = self._request(
            "POST", self._url("undelete", path), "undeleting", path, json={"versions": versions}
        )
        if response.status_code not in (200, 204):
            raise self._fail(response, "undeleting", path)

    def destroy_metadata(self, path: str) -> None:
        response = self._request("DELETE", self._url("metadata", path), "destroying", path)
        if response.status_code not in (200, 204, 404):
            raise self._fail(response, "destroying", path)

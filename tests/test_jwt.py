"""
Tests for interservice JWT config secrets.

These tests verify:
- server configs merge new clients into the existing JSON config
- client configs are created with JWT metadata and guarded by owner
- every write goes through the lifecycle, so the mirror follows
- lint reports values that look like JSON objects but do not parse
"""

from __future__ import annotations

import json

import pytest

from kvmirror.engine.jwt import (
    JWTSecrets,
    JWTServerSpec,
    config_key,
    generate_client_secret,
    invalid_json_keys,
    validate_client_secret,
)
from kvmirror.errors import (
    InvalidJSONSecretData,
    InvalidJWTSecret,
    InvalidMetadata,
    OwnerMismatch,
    SecretNotFound,
)

from conftest import METADATA

PATH = "billing/jwt"
FULL = "common/billing/jwt"
MIRROR = "ci/common/billing/jwt"
SERVER_KEY = "INTERSERVICE_SERVER_LEDGER_API_CONFIG"
CLIENT_KEY = "INTERSERVICE_CLIENT_LEDGER_API_CONFIG"
KEY_A = "a" * 64
KEY_B = "0123456789abcdef" * 4


@pytest.fixture
def jwt(lifecycle) -> JWTSecrets:
    return JWTSecrets(lifecycle)


class TestHelpers:

    def test_config_key_normalizes_service(self):
        assert config_key("INTERSERVICE_SERVER", "ledger-api") == SERVER_KEY
        assert config_key("INTERSERVICE_CLIENT", "ledger_api") == CLIENT_KEY

    @pytest.mark.parametrize("secret", ["abc123", "g" * 40, "a" * 31, ""])
    def test_invalid_client_secret(self, secret):
        with pytest.raises(InvalidJWTSecret):
            validate_client_secret(secret)

    def test_generated_secret_is_valid(self):
        secret = generate_client_secret()
        assert len(secret) == 128
        validate_client_secret(secret)

    def test_invalid_json_keys(self):
        data = {
            "GOOD": '{"a": 1}',
            "BROKEN": '{"a": 1',
            "NESTED": 'prefix\n  {"a":',
            "PLAIN": "not json at all",
        }
        assert invalid_json_keys(data) == ["BROKEN", "NESTED"]


class TestServer:

    def test_creates_secret_with_jwt_metadata(self, jwt, primary):
        record = jwt.server(PATH, "payments", "billing", "ledger-api", "checkout", KEY_A)

        assert record.version == 1
        stored = primary.read_version(FULL).data
        assert json.loads(stored[SERVER_KEY]) == {
            "service_name": "ledger-api",
            "local_name": "billing",
            "algorithm": "HS256",
            "clients": {"checkout": KEY_A},
        }
        assert primary.read_metadata(FULL).custom_metadata == {
            "owner": "payments",
            "source": "JWT token",
            "usage": "JWT interservice communication",
        }
        assert primary.read_version(MIRROR).data == {SERVER_KEY: ""}

    def test_new_client_is_merged(self, jwt, primary):
        jwt.server(PATH, "payments", "billing", "ledger-api", "checkout", KEY_A)

        record = jwt.server(PATH, "payments", "billing", "ledger-api", "invoicing", KEY_B)

        assert record.version == 2
        spec = JWTServerSpec.model_validate_json(primary.read_version(FULL).data[SERVER_KEY])
        assert spec.clients == {"checkout": KEY_A, "invoicing": KEY_B}
        assert primary.read_metadata(MIRROR).current_version == 2

    def test_existing_client_key_replaced(self, jwt, primary):
        jwt.server(PATH, "payments", "billing", "ledger-api", "checkout", KEY_A)
        jwt.server(PATH, "payments", "billing", "ledger-api", "checkout", KEY_B)

        spec = JWTServerSpec.model_validate_json(primary.read_version(FULL).data[SERVER_KEY])
        assert spec.clients == {"checkout": KEY_B}

    def test_other_keys_kept(self, jwt, lifecycle, primary):
        lifecycle.create(PATH, {"DATABASE_URL": "postgres://db"}, METADATA)

        jwt.server(PATH, "payments", "billing", "ledger-api", "checkout", KEY_A)

        data = primary.read_version(FULL).data
        assert data["DATABASE_URL"] == "postgres://db"
        assert SERVER_KEY in data
        assert primary.read_version(MIRROR).data == {"DATABASE_URL": "", SERVER_KEY: ""}

    def test_malformed_existing_config(self, jwt, lifecycle, primary):
        lifecycle.create(PATH, {SERVER_KEY: "{not json"}, METADATA)

        with pytest.raises(InvalidJSONSecretData):
            jwt.server(PATH, "payments", "billing", "ledger-api", "checkout", KEY_A)

        assert primary.read_metadata(FULL).current_version == 1

    def test_invalid_secret_writes_nothing(self, jwt, primary):
        with pytest.raises(InvalidJWTSecret):
            jwt.server(PATH, "payments", "billing", "ledger-api", "checkout", "short")
        assert primary.mutations == []


class TestClient:

    def test_creates_with_given_secret(self, jwt, primary):
        jwt.client(PATH, "payments", "checkout", "ledger-api", secret=KEY_A)

        assert json.loads(primary.read_version(FULL).data[CLIENT_KEY]) == {
            "target_service": "ledger-api",
            "algorithm": "HS256",
            "local_name": "checkout",
            "secret": KEY_A,
        }
        assert primary.read_version(MIRROR).data == {CLIENT_KEY: ""}

    def test_generates_secret(self, jwt, primary):
        jwt.client(PATH, "payments", "checkout", "ledger-api")

        secret = json.loads(primary.read_version(FULL).data[CLIENT_KEY])["secret"]
        validate_client_secret(secret)

    def test_second_target_adds_key(self, jwt, primary):
        jwt.client(PATH, "payments", "checkout", "ledger-api", secret=KEY_A)
        record = jwt.client(PATH, "payments", "checkout", "search", secret=KEY_B)

        assert record.version == 2
        assert sorted(primary.read_version(FULL).data) == [
            CLIENT_KEY,
            "INTERSERVICE_CLIENT_SEARCH_CONFIG",
        ]

    def test_owner_mismatch(self, jwt, primary):
        jwt.client(PATH, "payments", "checkout", "ledger-api", secret=KEY_A)

        with pytest.raises(OwnerMismatch):
            jwt.client(PATH, "search-team", "checkout", "ledger-api", secret=KEY_B)

        assert primary.read_metadata(FULL).current_version == 1

    def test_owner_required(self, jwt):
        with pytest.raises(InvalidMetadata):
            jwt.client(PATH, "", "checkout", "ledger-api")

    def test_invalid_secret(self, jwt):
        with pytest.raises(InvalidJWTSecret):
            jwt.client(PATH, "payments", "checkout", "ledger-api", secret="xyz")


class TestLint:

    def test_clean_secret(self, jwt):
        jwt.server(PATH, "payments", "billing", "ledger-api", "checkout", KEY_A)
        assert jwt.lint(PATH) == []

    def test_reports_broken_json(self, jwt, lifecycle):
        lifecycle.create(PATH, {"A_CONFIG": '{"x": 1', "B": "plain"}, METADATA)
        assert jwt.lint(PATH) == ["A_CONFIG"]

    def test_specific_version(self, jwt, lifecycle):
        lifecycle.create(PATH, {"A_CONFIG": '{"x": 1'}, METADATA)
        lifecycle.update(PATH, {"A_CONFIG": '{"x": 1}'})

        assert jwt.lint(PATH) == []
        assert jwt.lint(PATH, 1) == ["A_CONFIG"]

    def test_missing_secret(self, jwt):
        with pytest.raises(SecretNotFound):
            jwt.lint(PATH)

"""
Tests for secret lifecycle operations.

These tests verify:
- create / update keep the mirror key set and version number in step
- delete / undelete apply to both trees on every replica
- destroy deletes every version newer than the oldest and schedules destruction
- read helpers (get, list, diff, duplicates) and custom metadata edits
"""

from __future__ import annotations

import threading

import pytest

from kvmirror.backend.memory import MemoryReplica
from kvmirror.backend.replicas import ReplicaSet
from kvmirror.engine.lifecycle import DESTROY_NOT_BEFORE_KEY, SecretLifecycle
from kvmirror.engine.locks import PathLocks
from kvmirror.errors import (
    BackendError,
    ConfirmationDeclined,
    InvalidMetadata,
    InvalidSecretData,
    MandatoryMetadata,
    MetadataEmpty,
    MetadataKeyExists,
    MetadataKeyNotFound,
    MetadataWriteFailure,
    NotASecretDirectory,
    SameVersionDiff,
    SecretAlreadyExists,
    SecretDataKeyNotFound,
    SecretNotFound,
    SecretPathNotFound,
    VersionInvariantViolation,
)
from kvmirror.persistence.ledger import OperationLedger

from conftest import METADATA, RecordingPrompt, seed

PATH = "app/db"
FULL = "common/app/db"
MIRROR = "ci/common/app/db"


def deletion_flags(replica: MemoryReplica, path: str):
    return replica.read_metadata(path).deletion_flags()


class TestCreate:

    def test_creates_version_one_with_empty_mirror(self, lifecycle, primary, secondary):
        record = lifecycle.create(PATH, {"user": "admin", "password": "s3cr3t"}, METADATA)

        assert record.version == 1
        for replica in (primary, secondary):
            assert replica.read_version(FULL).data == {"user": "admin", "password": "s3cr3t"}
            mirror = replica.read_version(MIRROR)
            assert mirror.version == 1
            assert mirror.data == {"user": "", "password": ""}
            assert replica.read_metadata(FULL).custom_metadata == METADATA

    def test_existing_secret_rejected(self, lifecycle):
        lifecycle.create(PATH, {"a": "1"}, METADATA)

        with pytest.raises(SecretAlreadyExists):
            lifecycle.create(PATH, {"a": "2"}, METADATA)

    def test_recreate_after_every_version_deleted(self, lifecycle, primary):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.delete(PATH, skip_confirm=True)

        record = lifecycle.create(PATH, {"b": "2"}, METADATA)

        assert record.version == 2
        assert primary.read_version(MIRROR, 2).data == {"b": ""}

    def test_leftover_mirror_refused_before_any_write(self, lifecycle, replicas, primary):
        seed(replicas, MIRROR, {"a": ""})
        primary.mutations.clear()

        with pytest.raises(VersionInvariantViolation) as exc:
            lifecycle.create(PATH, {"a": "1"}, METADATA)

        assert "unexpected version 1 for CI secret, expected: 0" in str(exc.value)
        assert primary.read_metadata(FULL) is None
        assert primary.mutations == []

    @pytest.mark.parametrize("missing", ["owner", "source", "usage"])
    def test_mandatory_metadata(self, lifecycle, primary, missing):
        metadata = {k: v for k, v in METADATA.items() if k != missing}

        with pytest.raises(InvalidMetadata):
            lifecycle.create(PATH, {"a": "1"}, metadata)
        assert primary.mutations == []

    @pytest.mark.parametrize("data", [{}, {"a": ""}, {"a": None}])
    def test_empty_data_rejected(self, lifecycle, primary, data):
        with pytest.raises(InvalidSecretData):
            lifecycle.create(PATH, data, METADATA)
        assert primary.mutations == []

    def test_metadata_failure_after_data_written(self, scope, clock, primary):
        class NoMetadataReplica(MemoryReplica):
            def write_metadata(self, path, custom_metadata):
                raise BackendError("metadata endpoint unavailable", address=self.address, path=path)

        broken = NoMetadataReplica("memory://b", clock=clock)
        lifecycle = SecretLifecycle(scope, ReplicaSet([primary, broken]), clock=clock, locks=PathLocks())

        with pytest.raises(MetadataWriteFailure) as exc:
            lifecycle.create(PATH, {"a": "1"}, METADATA)

        assert "secret is created but metadata could not be added" in str(exc.value)
        assert broken.read_version(FULL).data == {"a": "1"}
        assert broken.read_version(MIRROR).data == {"a": ""}

    def test_ledger_event(self, scope, replicas, clock, tmp_path):
        ledger = OperationLedger(tmp_path / "ledger.ndjson")
        lifecycle = SecretLifecycle(scope, replicas, clock=clock, ledger=ledger, locks=PathLocks())

        lifecycle.create(PATH, {"password": "s3cr3t"}, METADATA)

        events = ledger.read_all()
        assert [e["type"] for e in events] == ["secret_created"]
        assert events[0]["secret_path"] == FULL
        assert events[0]["version"] == 1
        assert "s3cr3t" not in (tmp_path / "ledger.ndjson").read_text()


class TestUpdate:

    def test_merges_into_latest(self, lifecycle, primary):
        lifecycle.create(PATH, {"user": "admin", "password": "old"}, METADATA)

        record = lifecycle.update(PATH, {"password": "new", "host": "db.internal"})

        assert record.version == 2
        assert primary.read_version(FULL, 2).data == {
            "user": "admin",
            "password": "new",
            "host": "db.internal",
        }
        assert primary.read_version(MIRROR, 2).data == {"user": "", "password": "", "host": ""}

    def test_none_removes_key(self, lifecycle, primary):
        lifecycle.create(PATH, {"user": "admin", "password": "pw"}, METADATA)

        record = lifecycle.update(PATH, {"user": None})

        assert record.keys() == ["password"]
        assert primary.read_version(MIRROR, 2).data == {"password": ""}

    def test_mirror_follows_every_update(self, lifecycle, primary, secondary):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        steps = [{"b": "2"}, {"a": None}, {"c": "3", "d": "4"}, {"b": "5"}]

        for step in steps:
            lifecycle.update(PATH, step)

        for replica in (primary, secondary):
            current = replica.read_metadata(FULL).current_version
            assert replica.read_metadata(MIRROR).current_version == current == 5
            for version in range(1, current + 1):
                secret_keys = set(replica.read_version(FULL, version).data)
                mirror = replica.read_version(MIRROR, version).data
                assert set(mirror) == secret_keys
                assert set(mirror.values()) <= {""}

    def test_base_skips_deleted_latest(self, lifecycle, primary):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.update(PATH, {"a": "2"})
        lifecycle.delete(PATH, 2, skip_confirm=True)

        record = lifecycle.update(PATH, {"b": "3"})

        assert record.version == 3
        assert primary.read_version(FULL, 3).data == {"a": "1", "b": "3"}

    def test_missing_secret(self, lifecycle):
        with pytest.raises(SecretNotFound):
            lifecycle.update(PATH, {"a": "1"})

    def test_no_changes(self, lifecycle):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        with pytest.raises(InvalidSecretData):
            lifecycle.update(PATH, {})

    def test_empty_value_rejected(self, lifecycle):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        with pytest.raises(InvalidSecretData):
            lifecycle.update(PATH, {"a": ""})

    def test_cannot_remove_every_key(self, lifecycle):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        with pytest.raises(InvalidSecretData):
            lifecycle.update(PATH, {"a": None})

    def test_drifted_mirror_refused(self, lifecycle, replicas):
        seed(replicas, FULL, {"a": "1"}, {"a": "2"})
        seed(replicas, MIRROR, {"a": ""})

        with pytest.raises(VersionInvariantViolation):
            lifecycle.update(PATH, {"a": "3"})

        assert replicas.read_metadata(MIRROR).current_version == 1
        assert replicas.read_metadata(FULL).current_version == 2

    def test_concurrent_updates_serialize(self, lifecycle, primary):
        lifecycle.create(PATH, {"n": "0"}, METADATA)

        def worker(tag):
            for i in range(10):
                lifecycle.update(PATH, {tag: str(i)})

        threads = [threading.Thread(target=worker, args=(t,)) for t in ("x", "y")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert primary.read_metadata(FULL).current_version == 21
        assert primary.read_metadata(MIRROR).current_version == 21
        assert primary.read_version(FULL).data == {"n": "0", "x": "9", "y": "9"}


class TestDelete:

    def test_deletes_latest_on_both_trees(self, lifecycle, primary, secondary, prompt):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.update(PATH, {"a": "2"})

        assert lifecycle.delete(PATH) == 2

        for replica in (primary, secondary):
            assert deletion_flags(replica, FULL) == {1: False, 2: True}
            assert deletion_flags(replica, MIRROR) == {1: False, 2: True}
        assert len(prompt.messages) == 1
        assert "version 2" in prompt.messages[0]
        assert "[platform:common,path:app/db]" in prompt.messages[0]

    def test_explicit_version(self, lifecycle, primary):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.update(PATH, {"a": "2"})

        assert lifecycle.delete(PATH, 1, skip_confirm=True) == 1
        assert deletion_flags(primary, FULL) == {1: True, 2: False}

    def test_idempotent(self, lifecycle, primary):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.update(PATH, {"a": "2"})

        lifecycle.delete(PATH, 1, skip_confirm=True)
        before = primary.read_metadata(FULL)
        lifecycle.delete(PATH, 1, skip_confirm=True)

        assert primary.read_metadata(FULL) == before

    def test_nothing_left_to_delete(self, lifecycle, primary, prompt):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.delete(PATH, skip_confirm=True)
        writes = len(primary.mutations)

        assert lifecycle.delete(PATH) is None
        assert prompt.messages == []
        assert len(primary.mutations) == writes

    def test_declined(self, scope, replicas, clock, primary):
        lifecycle = SecretLifecycle(scope, replicas, prompt=RecordingPrompt(False), clock=clock)
        seed(replicas, FULL, {"a": "1"})

        with pytest.raises(ConfirmationDeclined):
            lifecycle.delete(PATH)
        assert ("soft_delete", FULL) not in primary.mutations

    def test_skip_confirm(self, lifecycle, prompt):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.delete(PATH, skip_confirm=True)
        assert prompt.messages == []


class TestUndelete:

    def test_round_trip(self, lifecycle, primary, secondary):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.update(PATH, {"a": "2"})
        before = {r.address: deletion_flags(r, FULL) for r in (primary, secondary)}

        lifecycle.delete(PATH, 1, skip_confirm=True)
        lifecycle.undelete(PATH, 1, skip_confirm=True)

        for replica in (primary, secondary):
            assert deletion_flags(replica, FULL) == before[replica.address]
            assert deletion_flags(replica, MIRROR) == {1: False, 2: False}
        assert primary.read_version(FULL, 1).data == {"a": "1"}

    def test_version_required(self, lifecycle):
        with pytest.raises(InvalidSecretData):
            lifecycle.undelete(PATH, 0)

    def test_asks_confirmation(self, lifecycle, prompt):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.delete(PATH, skip_confirm=True)

        lifecycle.undelete(PATH, 1)

        assert "undelete the version 1" in prompt.messages[0]


class TestDestroy:

    def test_deletes_newer_versions_and_schedules(self, lifecycle, primary, secondary, prompt):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.update(PATH, {"a": "2"})
        lifecycle.update(PATH, {"a": "3"})

        not_before = lifecycle.destroy(PATH)

        assert not_before == "2026-03-18"
        for replica in (primary, secondary):
            assert deletion_flags(replica, FULL) == {1: False, 2: True, 3: True}
            assert deletion_flags(replica, MIRROR) == {1: False, 2: True, 3: True}
            custom = replica.read_metadata(FULL).custom_metadata
            assert custom[DESTROY_NOT_BEFORE_KEY] == "2026-03-18"
            assert custom["owner"] == "payments"
        assert len(prompt.messages) == 2

    def test_second_confirmation_declined(self, scope, replicas, clock, primary):
        lifecycle = SecretLifecycle(scope, replicas, prompt=RecordingPrompt(True, False), clock=clock)
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.update(PATH, {"a": "2"})
        writes = list(primary.mutations)

        with pytest.raises(ConfirmationDeclined):
            lifecycle.destroy(PATH)
        assert primary.mutations == writes

    def test_missing_secret(self, lifecycle):
        with pytest.raises(SecretNotFound):
            lifecycle.destroy(PATH)


class TestReads:

    def test_get_latest_and_version(self, lifecycle):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.update(PATH, {"a": "2"})

        assert lifecycle.get(PATH).data == {"a": "2"}
        assert lifecycle.get(PATH, 1).data == {"a": "1"}

    def test_get_skips_deleted_latest(self, lifecycle):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.update(PATH, {"a": "2"})
        lifecycle.delete(PATH, skip_confirm=True)

        record = lifecycle.get(PATH)
        assert record.version == 1
        assert record.data == {"a": "1"}

    def test_get_key_filter(self, lifecycle):
        lifecycle.create(PATH, {"db_password": "x", "db_user": "y", "token": "z"}, METADATA)

        assert lifecycle.get(PATH, key_filter="db_").data == {"db_password": "x", "db_user": "y"}
        with pytest.raises(SecretDataKeyNotFound):
            lifecycle.get(PATH, key_filter="nope")

    def test_get_missing(self, lifecycle):
        with pytest.raises(SecretNotFound):
            lifecycle.get(PATH)
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        with pytest.raises(SecretNotFound):
            lifecycle.get(PATH, 7)

    def test_list(self, lifecycle):
        lifecycle.create("app/db", {"a": "1"}, METADATA)
        lifecycle.create("app/api", {"a": "1"}, METADATA)
        lifecycle.create("top", {"a": "1"}, METADATA)

        assert lifecycle.list_secrets() == ["app/", "top"]
        assert lifecycle.list_secrets("app") == ["api", "db"]

    def test_list_errors(self, lifecycle):
        lifecycle.create(PATH, {"a": "1"}, METADATA)

        with pytest.raises(NotASecretDirectory):
            lifecycle.list_secrets(PATH)
        with pytest.raises(SecretPathNotFound):
            lifecycle.list_secrets("nowhere")

    def test_diff(self, lifecycle):
        lifecycle.create(PATH, {"a": "alpha"}, METADATA)
        lifecycle.update(PATH, {"a": "beta", "b": "gamma"})

        text = lifecycle.diff(PATH, 1)

        assert "--- version 1" in text
        assert "+++ version 2" in text
        assert "-a: alpha" in text
        assert "+a: beta" in text
        assert "+b: gamma" in text

    def test_diff_same_version(self, lifecycle):
        lifecycle.create(PATH, {"a": "alpha"}, METADATA)
        lifecycle.update(PATH, {"a": "beta"})

        with pytest.raises(SameVersionDiff):
            lifecycle.diff(PATH, 1, 1)
        with pytest.raises(SameVersionDiff):
            lifecycle.diff(PATH, 2)

    def test_diff_missing_version(self, lifecycle):
        lifecycle.create(PATH, {"a": "alpha"}, METADATA)
        with pytest.raises(SecretNotFound):
            lifecycle.diff(PATH, 9)

    def test_find_duplicates(self, lifecycle):
        lifecycle.create("app/db", {"password": "hunter2"}, METADATA)
        lifecycle.create("app/api", {"token": "hunter2", "other": "x"}, METADATA)
        lifecycle.create("misc", {"value": "nothing"}, METADATA)

        assert lifecycle.find_duplicates("hunter2") == {
            "common/app/api": ["token"],
            "common/app/db": ["password"],
        }
        assert lifecycle.find_duplicates("hunter2", root="app/db") == {}

    def test_find_duplicates_uses_latest_usable_version(self, lifecycle):
        lifecycle.create(PATH, {"a": "s3"}, METADATA)
        lifecycle.update(PATH, {"a": "rotated"})
        lifecycle.delete(PATH, 2, skip_confirm=True)

        assert lifecycle.find_duplicates("s3") == {FULL: ["a"]}
        assert lifecycle.find_duplicates("rotated") == {}

    def test_find_duplicates_empty_value(self, lifecycle):
        with pytest.raises(InvalidSecretData):
            lifecycle.find_duplicates("")


class TestCustomMetadata:

    def test_create_key(self, lifecycle, primary):
        lifecycle.create(PATH, {"a": "1"}, METADATA)

        lifecycle.create_metadata_key(PATH, "team", "core")

        assert primary.read_metadata(FULL).custom_metadata["team"] == "core"

    def test_create_existing_key(self, lifecycle):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        with pytest.raises(MetadataKeyExists):
            lifecycle.create_metadata_key(PATH, "owner", "someone")

    def test_create_on_empty_metadata(self, lifecycle, replicas):
        seed(replicas, FULL, {"a": "1"})
        with pytest.raises(MetadataEmpty):
            lifecycle.create_metadata_key(PATH, "team", "core")

    def test_create_empty_value(self, lifecycle):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        with pytest.raises(InvalidMetadata):
            lifecycle.create_metadata_key(PATH, "team", "")

    def test_update_key(self, lifecycle, secondary):
        lifecycle.create(PATH, {"a": "1"}, METADATA)

        lifecycle.update_metadata_key(PATH, "owner", "platform")

        assert secondary.read_metadata(FULL).custom_metadata["owner"] == "platform"

    def test_update_missing_key(self, lifecycle):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        with pytest.raises(MetadataKeyNotFound):
            lifecycle.update_metadata_key(PATH, "team", "core")

    @pytest.mark.parametrize("key", ["owner", "source", "usage"])
    def test_mandatory_key_not_deletable(self, lifecycle, key):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        with pytest.raises(MandatoryMetadata):
            lifecycle.delete_metadata_key(PATH, key, skip_confirm=True)

    def test_delete_key(self, lifecycle, primary, prompt):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        lifecycle.create_metadata_key(PATH, "team", "core")

        lifecycle.delete_metadata_key(PATH, "team")

        assert "team" not in primary.read_metadata(FULL).custom_metadata
        assert "delete the metadata team" in prompt.messages[0]

    def test_delete_missing_key(self, lifecycle):
        lifecycle.create(PATH, {"a": "1"}, METADATA)
        with pytest.raises(MetadataKeyNotFound):
            lifecycle.delete_metadata_key(PATH, "team", skip_confirm=True)

    def test_get_metadata_missing(self, lifecycle):
        with pytest.raises(SecretNotFound):
            lifecycle.get_metadata(PATH)

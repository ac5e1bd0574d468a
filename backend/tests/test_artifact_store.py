"""Tests for the versioned SQLite artifact store."""

import pytest

from models.schemas.artifact import ModelArtifact
from services.artifact_store import SQLiteArtifactStore
from services.errors import ArtifactIOError


def _artifact(payload: bytes, name: str = "match_classifier") -> ModelArtifact:
    return ModelArtifact.build(name, "lightgbm", payload, "abc123", n_examples=12)


class TestSaveLoad:
    def test_empty_store(self, artifact_store):
        assert artifact_store.load("match_classifier") is None
        assert artifact_store.versions("match_classifier") == []

    def test_versions_increment_and_latest_wins(self, artifact_store):
        v1 = artifact_store.save(_artifact(b"one"))
        v2 = artifact_store.save(_artifact(b"two"))
        assert (v1.version, v2.version) == (1, 2)

        latest = artifact_store.load("match_classifier")
        assert latest.payload == b"two"
        assert latest.version == 2
        assert latest.metadata == {"n_examples": 12}
        assert artifact_store.load("match_classifier", version=1).payload == b"one"

    def test_identical_payload_not_duplicated(self, artifact_store):
        artifact_store.save(_artifact(b"same"))
        again = artifact_store.save(_artifact(b"same"))
        assert again.version == 1
        assert artifact_store.versions("match_classifier") == [1]

    def test_names_are_independent(self, artifact_store):
        artifact_store.save(_artifact(b"clf"))
        artifact_store.save(_artifact(b"clusters", name="tutor_clusters"))
        assert artifact_store.load("tutor_clusters").version == 1
        assert artifact_store.load("match_classifier").payload == b"clf"

    def test_rejects_payload_digest_mismatch(self, artifact_store):
        bad = _artifact(b"payload").model_copy(update={"digest": "0" * 64})
        with pytest.raises(ArtifactIOError):
            artifact_store.save(bad)

    def test_corrupt_row_raises_on_load(self, artifact_store):
        artifact_store.save(_artifact(b"good"))
        artifact_store._conn.execute("UPDATE artifacts SET payload = ? WHERE name = ?", (b"evil", "match_classifier"))
        with pytest.raises(ArtifactIOError):
            artifact_store.load("match_classifier")


class TestRollback:
    def test_rollback_moves_head(self, artifact_store):
        artifact_store.save(_artifact(b"one"))
        artifact_store.save(_artifact(b"two"))
        head = artifact_store.rollback("match_classifier")
        assert head.version == 1
        assert artifact_store.load("match_classifier").payload == b"one"
        # history is kept
        assert artifact_store.versions("match_classifier") == [1, 2]

    def test_rollback_without_history(self, artifact_store):
        assert artifact_store.rollback("match_classifier") is None
        artifact_store.save(_artifact(b"only"))
        assert artifact_store.rollback("match_classifier") is None

    def test_save_after_rollback_gets_fresh_version(self, artifact_store):
        artifact_store.save(_artifact(b"one"))
        artifact_store.save(_artifact(b"two"))
        artifact_store.rollback("match_classifier")
        v3 = artifact_store.save(_artifact(b"three"))
        assert v3.version == 3


class TestPersistence:
    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "models" / "artifacts.sqlite3"
        store = SQLiteArtifactStore(path)
        store.save(_artifact(b"persisted"))
        store.close()

        reopened = SQLiteArtifactStore(path)
        assert reopened.load("match_classifier").payload == b"persisted"
        reopened.close()

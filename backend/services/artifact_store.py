"""Versioned, content-addressed model artifact store backed by SQLite.

Every save appends a new ``(name, version)`` row and moves the name's head
pointer inside one transaction, so a reader sees either the previous or the
new artifact, never a half-written one. Older versions stay available for
rollback.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from models.schemas.artifact import ModelArtifact
from services.errors import ArtifactIOError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS artifacts (
    name TEXT NOT NULL,
    version INTEGER NOT NULL,
    kind TEXT NOT NULL,
    digest TEXT NOT NULL,
    schema_fingerprint TEXT NOT NULL,
    metadata TEXT NOT NULL,
    payload BLOB NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (name, version)
);
CREATE TABLE IF NOT EXISTS artifact_heads (
    name TEXT PRIMARY KEY,
    version INTEGER NOT NULL
);
"""


class SQLiteArtifactStore:
    def __init__(self, path: str | Path = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        with self._conn:
            self._conn.executescript(_SCHEMA)

    def save(self, artifact: ModelArtifact) -> ModelArtifact:
        """Persist ``artifact`` as the new head of its name and return it with its version.

        Saving a payload identical to the current head is a no-op.
        """
        if not artifact.verify():
            raise ArtifactIOError(f"refusing to save {artifact.name}: digest does not match payload")

        with self._lock, self._conn:
            head = self._head_row(artifact.name)
            if head is not None and head[3] == artifact.digest:
                logger.info("Artifact %s unchanged (digest %s), keeping v%d", artifact.name, artifact.digest[:12], head[1])
                return self._to_artifact(head)

            row = self._conn.execute(
                "SELECT COALESCE(MAX(version), 0) FROM artifacts WHERE name = ?", (artifact.name,)
            ).fetchone()
            version = int(row[0]) + 1
            self._conn.execute(
                "INSERT INTO artifacts VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    artifact.name,
                    version,
                    artifact.kind,
                    artifact.digest,
                    artifact.schema_fingerprint,
                    json.dumps(artifact.metadata, default=str),
                    artifact.payload,
                    artifact.created_at.isoformat(),
                ),
            )
            self._conn.execute(
                "INSERT INTO artifact_heads (name, version) VALUES (?, ?) "
                "ON CONFLICT(name) DO UPDATE SET version = excluded.version",
                (artifact.name, version),
            )

        logger.info("Saved artifact %s v%d (%d bytes)", artifact.name, version, len(artifact.payload))
        return artifact.model_copy(update={"version": version})

    def load(self, name: str, version: int | None = None) -> ModelArtifact | None:
        """Return the head (or a specific version) of ``name``, ``None`` if absent.

        Raises ArtifactIOError when the stored payload fails its digest check.
        """
        with self._lock:
            if version is None:
                row = self._head_row(name)
            else:
                row = self._conn.execute(
                    "SELECT * FROM artifacts WHERE name = ? AND version = ?", (name, version)
                ).fetchone()
        if row is None:
            return None

        artifact = self._to_artifact(row)
        if not artifact.verify():
            raise ArtifactIOError(f"artifact {name} v{artifact.version} is corrupt (digest mismatch)")
        return artifact

    def versions(self, name: str) -> list[int]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT version FROM artifacts WHERE name = ? ORDER BY version", (name,)
            ).fetchall()
        return [int(r[0]) for r in rows]

    def rollback(self, name: str) -> ModelArtifact | None:
        """Move the head of ``name`` back one version. Returns the new head."""
        with self._lock, self._conn:
            head = self._head_row(name)
            if head is None:
                return None
            prev = self._conn.execute(
                "SELECT * FROM artifacts WHERE name = ? AND version < ? ORDER BY version DESC LIMIT 1",
                (name, head[1]),
            ).fetchone()
            if prev is None:
                return None
            self._conn.execute("UPDATE artifact_heads SET version = ? WHERE name = ?", (prev[1], name))
        logger.info("Rolled back artifact %s to v%d", name, prev[1])
        return self._to_artifact(prev)

    def close(self) -> None:
        self._conn.close()

    def _head_row(self, name: str) -> tuple | None:
        return self._conn.execute(
            "SELECT a.* FROM artifacts a JOIN artifact_heads h "
            "ON a.name = h.name AND a.version = h.version WHERE a.name = ?",
            (name,),
        ).fetchone()

    @staticmethod
    def _to_artifact(row: tuple) -> ModelArtifact:
        name, version, kind, digest, fingerprint, metadata, payload, created_at = row
        return ModelArtifact(
            name=name,
            version=int(version),
            kind=kind,
            digest=digest,
            schema_fingerprint=fingerprint,
            metadata=json.loads(metadata),
            payload=bytes(payload),
            created_at=datetime.fromisoformat(created_at),
        )

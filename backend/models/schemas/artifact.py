"""Persisted model artifacts (classifier and cluster models)."""

import hashlib
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

CLASSIFIER_ARTIFACT = "match_classifier"
TUTOR_CLUSTERS_ARTIFACT = "tutor_clusters"
PARENT_CLUSTERS_ARTIFACT = "parent_clusters"


def content_digest(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


class ModelArtifact(BaseModel):
    """A named, versioned, serialized model.

    ``version`` is assigned by the artifact store on save; ``digest`` is the
    sha256 of ``payload``. ``schema_fingerprint`` identifies the feature
    layout the model was trained on.
    """
    name: str
    version: int = 0
    kind: str = ""  # "lightgbm" | "kmeans"
    payload: bytes = b""
    digest: str = ""
    schema_fingerprint: str = ""
    metadata: dict[str, Any] = {}
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def build(cls, name: str, kind: str, payload: bytes, schema_fingerprint: str, **metadata: Any) -> "ModelArtifact":
        return cls(
            name=name,
            kind=kind,
            payload=payload,
            digest=content_digest(payload),
            schema_fingerprint=schema_fingerprint,
            metadata=metadata,
        )

    def verify(self) -> bool:
        return bool(self.payload) and content_digest(self.payload) == self.digest

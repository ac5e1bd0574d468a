"""Abstract base class for persisted model services (classifier, cluster models)."""

from abc import ABC, abstractmethod
from typing import Any
import logging

import numpy as np

from models.schemas.artifact import ModelArtifact
from services.errors import ArtifactIOError

logger = logging.getLogger(__name__)


class BaseModelService(ABC):
    """Base class for trained models stored as artifacts.

    Subclasses must implement:
        - model_name: artifact name in the artifact store
        - kind: serialization format tag stored with the artifact
        - serialize(): model -> bytes
        - _decode(payload, metadata, schema): bytes -> model
        - predict(X): run inference on a 2-D feature matrix
    """

    model_name: str = ""
    kind: str = ""

    def __init__(self, schema: str) -> None:
        self.schema = schema
        self.version = 0

    @abstractmethod
    def serialize(self) -> bytes:
        """Serialize the fitted model."""

    @classmethod
    @abstractmethod
    def _decode(cls, payload: bytes, metadata: dict[str, Any], schema: str) -> "BaseModelService":
        """Rebuild a model from a serialized payload."""

    @abstractmethod
    def predict(self, X: np.ndarray) -> np.ndarray:
        """Run inference on an ``(n_samples, n_features)`` matrix."""

    def metadata(self) -> dict[str, Any]:
        return {}

    def to_artifact(self, name: str | None = None, **metadata: Any) -> ModelArtifact:
        return ModelArtifact.build(
            name=name or self.model_name,
            kind=self.kind,
            payload=self.serialize(),
            schema_fingerprint=self.schema,
            **{**self.metadata(), **metadata},
        )

    @classmethod
    def from_artifact(cls, artifact: ModelArtifact, expected_schema: str) -> "BaseModelService":
        """Load a model, refusing artifacts of another kind, feature schema or digest."""
        if artifact.kind != cls.kind:
            raise ArtifactIOError(f"{artifact.name}: expected kind {cls.kind!r}, got {artifact.kind!r}")
        if artifact.schema_fingerprint != expected_schema:
            raise ArtifactIOError(
                f"{artifact.name}: trained on feature schema {artifact.schema_fingerprint}, "
                f"current schema is {expected_schema}"
            )
        if not artifact.verify():
            raise ArtifactIOError(f"{artifact.name}: digest mismatch")

        logger.info("Loading model: %s v%d", artifact.name, artifact.version)
        try:
            model = cls._decode(artifact.payload, artifact.metadata, expected_schema)
        except ArtifactIOError:
            raise
        except Exception as e:
            raise ArtifactIOError(f"{artifact.name}: could not decode payload: {e}") from e
        model.model_name = artifact.name
        model.version = artifact.version
        logger.info("Model loaded: %s v%d", artifact.name, artifact.version)
        return model

"""Immutable registry of the currently published models.

A ``ModelRegistry`` is a frozen snapshot. ``RegistryHolder`` swaps the
reference on publish: writers serialize through a lock, readers call
``current()`` once per request and keep using that snapshot, so a publish
in the middle of a request never mixes models from two generations.
"""

import logging
import threading
from dataclasses import dataclass, replace

from models.schemas.artifact import (
    CLASSIFIER_ARTIFACT,
    PARENT_CLUSTERS_ARTIFACT,
    TUTOR_CLUSTERS_ARTIFACT,
    ModelArtifact,
)
from services.errors import ArtifactIOError
from services.pipeline.base import BaseModelService
from services.pipeline.diversifier import ClusterModel
from services.pipeline.features import MATCH_SCHEMA, PARENT_SCHEMA, TUTOR_SCHEMA
from services.pipeline.ml_scorer import MatchClassifier

logger = logging.getLogger(__name__)

# artifact name -> (registry field, model class, expected feature schema)
_SLOTS: dict[str, tuple[str, type[BaseModelService], str]] = {
    CLASSIFIER_ARTIFACT: ("classifier", MatchClassifier, MATCH_SCHEMA),
    TUTOR_CLUSTERS_ARTIFACT: ("tutor_clusters", ClusterModel, TUTOR_SCHEMA),
    PARENT_CLUSTERS_ARTIFACT: ("parent_clusters", ClusterModel, PARENT_SCHEMA),
}
ARTIFACT_NAMES = tuple(_SLOTS)


@dataclass(frozen=True)
class ModelRegistry:
    classifier: MatchClassifier | None = None
    tutor_clusters: ClusterModel | None = None
    parent_clusters: ClusterModel | None = None
    generation: int = 0


def load_model(artifact: ModelArtifact) -> BaseModelService:
    """Decode an artifact into the model class registered for its name."""
    if artifact.name not in _SLOTS:
        raise ArtifactIOError(f"Unknown artifact: {artifact.name}")
    _, model_cls, schema = _SLOTS[artifact.name]
    return model_cls.from_artifact(artifact, schema)


class RegistryHolder:
    def __init__(self, registry: ModelRegistry | None = None) -> None:
        self._registry = registry or ModelRegistry()
        self._lock = threading.Lock()

    def current(self) -> ModelRegistry:
        return self._registry

    def publish(self, name: str, model: BaseModelService | None) -> ModelRegistry:
        """Replace one model (``None`` unloads it) and swap in a new snapshot."""
        if name not in _SLOTS:
            raise ValueError(f"Unknown model: {name}")
        field = _SLOTS[name][0]
        with self._lock:
            self._registry = replace(self._registry, **{field: model, "generation": self._registry.generation + 1})
            logger.info(
                "Published %s v%s (registry generation %d)",
                name, getattr(model, "version", None), self._registry.generation,
            )
            return self._registry

    def publish_artifact(self, artifact: ModelArtifact | None, name: str) -> bool:
        """Load and publish an artifact. A missing or unusable artifact leaves the slot empty.

        Returns True when a model was published.
        """
        if artifact is None:
            logger.info("No %s artifact stored, slot stays empty", name)
            return False
        try:
            model = load_model(artifact)
        except ArtifactIOError as e:
            logger.warning("Failed to load %s: %s", name, e)
            return False
        self.publish(name, model)
        return True

    def clear(self) -> None:
        """Drop every model. Useful for testing."""
        with self._lock:
            self._registry = ModelRegistry(generation=self._registry.generation + 1)

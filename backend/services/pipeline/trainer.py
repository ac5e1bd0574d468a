"""Fit the match classifier and the cluster models from recorded match outcomes.

Each artifact is fitted, persisted and published on its own: a cluster model
that fails to fit never rolls back a classifier that succeeded. Too little
data is a failed ``TrainingResult``, not an exception.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import numpy as np

from models.responses import TrainingResult
from models.schemas.artifact import (
    CLASSIFIER_ARTIFACT,
    PARENT_CLUSTERS_ARTIFACT,
    TUTOR_CLUSTERS_ARTIFACT,
)
from models.schemas.demand_profile import DemandProfile
from models.schemas.match import MatchRecord
from services.errors import MatchingError
from services.pipeline.base import BaseModelService
from services.pipeline.diversifier import ClusterModel
from services.pipeline.features import (
    PARENT_SCHEMA,
    TUTOR_SCHEMA,
    match_features,
    parent_features,
    tutor_features,
)
from services.pipeline.ml_scorer import DEFAULT_NUM_BOOST_ROUND, MatchClassifier
from services.pipeline.model_registry import RegistryHolder
from services.repository import CandidateRepository, call_repository

logger = logging.getLogger(__name__)

MIN_TRAINING_EXAMPLES = 10
MIN_CLUSTER_ENTITIES = 10


@dataclass
class TrainingExample:
    match_id: str
    features: np.ndarray
    label: int


def build_training_examples(matches: list[MatchRecord]) -> list[TrainingExample]:
    """One example per match whose tutor and parent both still exist."""
    examples = []
    skipped = 0
    for m in matches:
        if m.tutor is None or m.parent is None:
            skipped += 1
            continue
        demand = DemandProfile.from_parent(m.parent)
        examples.append(TrainingExample(m.match_id, match_features(m.tutor, demand), int(m.is_successful)))
    if skipped:
        logger.info("Skipped %d matches with a missing tutor or parent", skipped)
    return examples


class ModelTrainer:
    def __init__(
        self,
        repository: CandidateRepository,
        holder: RegistryHolder,
        min_examples: int = MIN_TRAINING_EXAMPLES,
        min_cluster_entities: int = MIN_CLUSTER_ENTITIES,
        timeout: float = 5.0,
        params: dict[str, Any] | None = None,
        num_boost_round: int = DEFAULT_NUM_BOOST_ROUND,
    ) -> None:
        self.repository = repository
        self.holder = holder
        self.min_examples = min_examples
        self.min_cluster_entities = min_cluster_entities
        self.timeout = timeout
        self.params = params
        self.num_boost_round = num_boost_round

    async def train(self) -> TrainingResult:
        matches = await call_repository(self.repository.get_completed_matches_with_outcomes(), self.timeout)
        examples = build_training_examples(matches)
        n = len(examples)

        if n < self.min_examples:
            message = f"Insufficient training data: {n} examples, need at least {self.min_examples}"
            logger.info(message)
            return TrainingResult(success=False, message=message, n_examples=n)

        X = np.vstack([e.features for e in examples])
        y = np.array([e.label for e in examples], dtype=np.int64)
        n_positive = int(y.sum())
        if n_positive in (0, n):
            message = f"Training labels contain a single class ({n_positive}/{n} successful matches)"
            logger.info(message)
            return TrainingResult(success=False, message=message, n_examples=n)

        logger.info("Training match classifier: %d examples, %d successful", n, n_positive)
        result = TrainingResult(success=False, n_examples=n)
        try:
            classifier = await asyncio.to_thread(MatchClassifier.fit, X, y, self.params, self.num_boost_round)
            result.classifier_version = await self._persist(
                CLASSIFIER_ARTIFACT, classifier, n_examples=n, n_positive=n_positive,
            )
            result.success = result.classifier_version is not None
        except Exception:
            logger.exception("Classifier training failed")

        result.tutor_clusters_version = await self._fit_tutor_clusters()
        result.parent_clusters_version = await self._fit_parent_clusters()

        if result.success:
            result.message = f"Trained on {n} examples"
        else:
            result.message = "Classifier training failed; previous model kept"
        return result

    async def _fit_tutor_clusters(self) -> int | None:
        try:
            tutors = await call_repository(self.repository.list_tutors(), self.timeout)
        except MatchingError as e:
            logger.error("Could not read tutors for clustering: %s", e)
            return None
        if len(tutors) < self.min_cluster_entities:
            logger.info("Skipping tutor clusters: %d tutors, need %d", len(tutors), self.min_cluster_entities)
            return None
        X = np.vstack([tutor_features(t) for t in tutors])
        return await self._fit_clusters(TUTOR_CLUSTERS_ARTIFACT, X, TUTOR_SCHEMA)

    async def _fit_parent_clusters(self) -> int | None:
        try:
            parents = await call_repository(self.repository.list_parents(), self.timeout)
        except MatchingError as e:
            logger.error("Could not read parents for clustering: %s", e)
            return None
        if len(parents) < self.min_cluster_entities:
            logger.info("Skipping parent clusters: %d parents, need %d", len(parents), self.min_cluster_entities)
            return None
        X = np.vstack([parent_features(DemandProfile.from_parent(p)) for p in parents])
        return await self._fit_clusters(PARENT_CLUSTERS_ARTIFACT, X, PARENT_SCHEMA)

    async def _fit_clusters(self, name: str, X: np.ndarray, schema: str) -> int | None:
        try:
            model = await asyncio.to_thread(ClusterModel.fit, X, schema, name)
        except Exception:
            logger.exception("Fitting %s failed", name)
            return None
        return await self._persist(name, model, n_entities=len(X))

    async def _persist(self, name: str, model: BaseModelService, **metadata) -> int | None:
        """Save then publish; returns the stored version or None when saving failed."""
        try:
            saved = await call_repository(
                self.repository.save_artifact(name, model.to_artifact(name, **metadata)), self.timeout,
            )
        except MatchingError as e:
            logger.error("Could not persist %s: %s", name, e)
            return None
        model.version = saved.version
        self.holder.publish(name, model)
        return saved.version

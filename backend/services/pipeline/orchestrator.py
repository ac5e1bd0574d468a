"""Recommendation engine: wires geo filtering, scoring and diversification together.

Flow (parent asking for tutors; tutors asking for requests is symmetric):
    parent_id
      ├─ repository.get_parent                 → Parent → DemandProfile
      ├─ GeoFilter.collect(same city ∪ radius) → candidate pool (≤ 2 × pool size)
      ├─ MLScorer.score                        → classifier probability × 100
      │     └─ fallback: rule score ⊕ CollaborativeFilter
      └─ ClusterDiversifier.select             → ≤ limit RankedCandidate

Each request reads one ModelRegistry snapshot, so a concurrent retrain never
mixes models from two generations in one response.
"""

import logging
from collections.abc import Awaitable
from typing import TypeVar

from config import Settings
from models.requests import FeedbackRequest, RecommendOptions
from models.responses import (
    ArtifactInfo,
    FeedbackResult,
    ModelStatus,
    RankedCandidate,
    RecommendationResponse,
    RetrainJob,
    TrainingResult,
)
from models.schemas.demand_profile import DemandProfile
from models.schemas.entities import Tutor, TutoringRequest
from services.errors import ArtifactIOError, NotFoundError
from services.geo import GeoFilter
from services.pipeline.collaborative import CollaborativeFilter
from services.pipeline.diversifier import ClusterDiversifier
from services.pipeline.feedback import FeedbackLoop, RetrainWorker
from services.pipeline.features import parent_features, tutor_features
from services.pipeline.ml_scorer import Candidate, MLScorer, ScoredCandidate
from services.pipeline.model_registry import ARTIFACT_NAMES, RegistryHolder
from services.pipeline.trainer import ModelTrainer
from services.repository import CandidateRepository, Role, call_repository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecommendationEngine:
    def __init__(
        self,
        repository: CandidateRepository,
        holder: RegistryHolder | None = None,
        pool_size: int = 50,
        timeout: float = 5.0,
        min_training_examples: int = 10,
        min_cluster_entities: int = 10,
        retrain_min_rated: int = 20,
        retrain_every: int = 10,
        retrain_max_attempts: int = 3,
        retrain_retry_delay: float = 2.0,
    ) -> None:
        self.repository = repository
        self.holder = holder or RegistryHolder()
        self.geo = GeoFilter(pool_size)
        self.timeout = timeout
        self.trainer = ModelTrainer(
            repository, self.holder, min_training_examples, min_cluster_entities, timeout,
        )
        self.worker = RetrainWorker(self.trainer.train, retrain_max_attempts, retrain_retry_delay)
        self.feedback = FeedbackLoop(repository, self.worker, retrain_min_rated, retrain_every, timeout)

    @classmethod
    def from_settings(cls, repository: CandidateRepository, settings: Settings) -> "RecommendationEngine":
        return cls(
            repository,
            pool_size=settings.candidate_pool_size,
            timeout=settings.repository_timeout_seconds,
            min_training_examples=settings.min_training_examples,
            min_cluster_entities=settings.min_cluster_entities,
            retrain_min_rated=settings.retrain_min_rated_matches,
            retrain_every=settings.retrain_every_n_ratings,
            retrain_max_attempts=settings.retrain_max_attempts,
            retrain_retry_delay=settings.retrain_retry_delay_seconds,
        )

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await call_repository(awaitable, self.timeout)

    # --- Lifecycle ---

    async def start(self) -> None:
        await self.reload_models()
        self.worker.start()

    async def stop(self) -> None:
        await self.worker.stop()

    async def reload_models(self) -> None:
        """Publish the latest stored artifacts; unusable ones leave their slot empty."""
        for name in ARTIFACT_NAMES:
            try:
                artifact = await self._call(self.repository.load_artifact(name))
            except ArtifactIOError as e:
                logger.warning("Stored %s is unusable: %s", name, e)
                continue
            self.holder.publish_artifact(artifact, name)

    # --- Recommendations ---

    async def recommend_for_parent(
        self, parent_id: str, options: RecommendOptions | None = None,
    ) -> RecommendationResponse:
        options = options or RecommendOptions()
        snapshot = self.holder.current()

        parent = await self._call(self.repository.get_parent(parent_id))
        if parent is None:
            raise NotFoundError("Parent", parent_id)
        demand = DemandProfile.from_parent(parent)

        pool: list[Tutor] = await self.geo.collect(
            parent.location.point,
            parent.location.city,
            options.max_distance,
            same_city_source=lambda city, n: self._call(
                self.repository.find_candidates_by_same_city("tutor", city, n)),
            other_city_source=lambda city, n: self._call(
                self.repository.find_candidates_by_other_city("tutor", city, n)),
            point_of=lambda t: t.location.point,
            identity_of=lambda t: t.tutor_id,
        )

        scorer = MLScorer(snapshot.classifier if options.use_ml else None)
        if not pool:
            return RecommendationResponse(scoring_method=scorer.method)

        collaborative = None
        if scorer.classifier is None:
            collaborative = await self._collaborative(parent_id, "parent")
        scored = scorer.score([Candidate(t, t.tutor_id, t, demand) for t in pool], collaborative)

        clusters = snapshot.tutor_clusters if options.use_ml else None
        diversifier = ClusterDiversifier(clusters, lambda s: tutor_features(s.entity))
        selected = diversifier.select(scored, options.limit)

        logger.info(
            "Recommended %d/%d tutors for parent %s (%s)",
            len(selected), len(pool), parent_id, scorer.method,
        )
        return self._response(selected, scorer.method)

    async def recommend_for_tutor(
        self, tutor_id: str, options: RecommendOptions | None = None,
    ) -> RecommendationResponse:
        options = options or RecommendOptions()
        snapshot = self.holder.current()

        tutor = await self._call(self.repository.get_tutor(tutor_id))
        if tutor is None:
            raise NotFoundError("Tutor", tutor_id)

        pool: list[TutoringRequest] = await self.geo.collect(
            tutor.location.point,
            tutor.location.city,
            options.max_distance,
            same_city_source=lambda city, n: self._call(
                self.repository.find_candidates_by_same_city("request", city, n)),
            other_city_source=lambda city, n: self._call(
                self.repository.find_candidates_by_other_city("request", city, n)),
            point_of=lambda r: r.location.point,
            identity_of=lambda r: r.request_id,
        )

        scorer = MLScorer(snapshot.classifier if options.use_ml else None)
        if not pool:
            return RecommendationResponse(scoring_method=scorer.method)

        demands = {r.request_id: DemandProfile.from_request(r) for r in pool}
        collaborative = None
        if scorer.classifier is None:
            collaborative = await self._collaborative(tutor_id, "tutor")
        scored = scorer.score(
            [Candidate(r, r.request_id, tutor, demands[r.request_id]) for r in pool], collaborative,
        )

        clusters = snapshot.parent_clusters if options.use_ml else None
        diversifier = ClusterDiversifier(clusters, lambda s: parent_features(demands[s.identity]))
        selected = diversifier.select(scored, options.limit)

        logger.info(
            "Recommended %d/%d requests for tutor %s (%s)",
            len(selected), len(pool), tutor_id, scorer.method,
        )
        return self._response(selected, scorer.method)

    async def _collaborative(self, user_id: str, role: Role) -> CollaborativeFilter | None:
        own = await self._call(self.repository.get_user_rating_history(user_id, role))
        if not own:
            return None
        others = await self._call(self.repository.get_all_rating_histories(role))
        return CollaborativeFilter(user_id, own, others)

    @staticmethod
    def _response(selected: list[ScoredCandidate], method: str) -> RecommendationResponse:
        data = [
            RankedCandidate(**s.entity.model_dump(mode="json"), matchScore=s.match_score, predicted=s.predicted)
            for s in selected
        ]
        return RecommendationResponse(data=data, count=len(data), scoring_method=method)

    # --- Feedback & training ---

    async def collect_feedback(self, match_id: str, feedback: FeedbackRequest) -> FeedbackResult:
        return await self.feedback.collect(match_id, feedback.rating, feedback.review, feedback.role)

    async def train_models(self) -> TrainingResult:
        return await self.trainer.train()

    async def model_status(self) -> ModelStatus:
        snapshot = self.holder.current()
        loaded = {
            "classifier": snapshot.classifier,
            "tutor_clusters": snapshot.tutor_clusters,
            "parent_clusters": snapshot.parent_clusters,
        }
        status = ModelStatus()
        for name, field in zip(ARTIFACT_NAMES, loaded):
            try:
                artifact = await self._call(self.repository.load_artifact(name))
            except ArtifactIOError as e:
                logger.warning("Stored %s is unusable: %s", name, e)
                continue
            if artifact is None:
                continue
            model = loaded[field]
            setattr(status, field, ArtifactInfo(
                name=artifact.name,
                version=artifact.version,
                digest=artifact.digest,
                created_at=artifact.created_at,
                metadata=artifact.metadata,
                loaded=model is not None and model.version == artifact.version,
            ))
        return status

    def retrain_jobs(self) -> list[RetrainJob]:
        return self.worker.jobs()

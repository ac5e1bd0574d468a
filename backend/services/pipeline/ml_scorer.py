"""Match scoring: LightGBM classifier with transparent rule-based fallback.

With a classifier loaded, score = P(successful match) x 100 and a candidate is
``predicted`` a good match when the probability reaches 0.5. Without one (or
when the caller opts out of ML) the rule score, blended with collaborative
ratings, is used and the threshold is 70 points.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any

import lightgbm as lgb
import numpy as np
from pydantic import BaseModel

from models.schemas.artifact import CLASSIFIER_ARTIFACT
from models.schemas.demand_profile import DemandProfile
from models.schemas.entities import Tutor
from services.pipeline.base import BaseModelService
from services.pipeline.collaborative import CollaborativeFilter
from services.pipeline.features import MATCH_FEATURE_NAMES, MATCH_SCHEMA, match_features
from services.pipeline.rule_scorer import rule_score

logger = logging.getLogger(__name__)

PROBABILITY_THRESHOLD = 0.5
RULE_THRESHOLD = 70.0

# Tuned for the small, noisy training sets a young marketplace produces
DEFAULT_PARAMS = {
    "objective": "binary",
    "metric": "binary_logloss",
    "learning_rate": 0.1,
    "num_leaves": 15,
    "min_data_in_leaf": 1,
    "min_data_in_bin": 1,
    "feature_fraction": 0.9,
    "seed": 42,
    "verbose": -1,
}
DEFAULT_NUM_BOOST_ROUND = 50


def round_half_up(score: float) -> int:
    return int(math.floor(score + 0.5))


class MatchClassifier(BaseModelService):
    model_name = CLASSIFIER_ARTIFACT
    kind = "lightgbm"

    def __init__(self, booster: lgb.Booster, schema: str = MATCH_SCHEMA) -> None:
        super().__init__(schema)
        self._booster = booster

    @classmethod
    def fit(
        cls,
        X: np.ndarray,
        y: np.ndarray,
        params: dict[str, Any] | None = None,
        num_boost_round: int = DEFAULT_NUM_BOOST_ROUND,
    ) -> "MatchClassifier":
        params = {**DEFAULT_PARAMS, **(params or {})}
        train_data = lgb.Dataset(
            X,
            label=y,
            feature_name=list(MATCH_FEATURE_NAMES),
            params={"min_data_in_bin": params["min_data_in_bin"], "verbose": -1},
        )
        booster = lgb.train(params, train_data, num_boost_round=num_boost_round)
        logger.info("Trained match classifier on %d examples (%d trees)", len(y), booster.num_trees())
        return cls(booster)

    def predict(self, X: np.ndarray) -> np.ndarray:
        X = np.atleast_2d(np.asarray(X, dtype=np.float64))
        return np.clip(self._booster.predict(X), 0.0, 1.0)

    def feature_importances(self) -> dict[str, float]:
        raw = self._booster.feature_importance(importance_type="gain")
        return {name: float(imp) for name, imp in zip(MATCH_FEATURE_NAMES, raw)}

    def serialize(self) -> bytes:
        return self._booster.model_to_string().encode("utf-8")

    @classmethod
    def _decode(cls, payload: bytes, metadata: dict[str, Any], schema: str) -> "MatchClassifier":
        booster = lgb.Booster(model_str=payload.decode("utf-8"))
        if booster.num_feature() != len(MATCH_FEATURE_NAMES):
            raise ValueError(f"booster expects {booster.num_feature()} features, have {len(MATCH_FEATURE_NAMES)}")
        return cls(booster, schema)


@dataclass
class Candidate:
    """A tutor/demand pairing to score; ``entity`` is what gets returned to the caller."""
    entity: BaseModel
    identity: str
    tutor: Tutor
    demand: DemandProfile


@dataclass
class ScoredCandidate:
    entity: BaseModel
    identity: str
    score: float
    predicted: bool

    @property
    def match_score(self) -> int:
        return round_half_up(self.score)


class MLScorer:
    def __init__(self, classifier: MatchClassifier | None = None) -> None:
        self.classifier = classifier

    @property
    def method(self) -> str:
        return "ml" if self.classifier is not None else "rule"

    def score(
        self,
        candidates: list[Candidate],
        collaborative: CollaborativeFilter | None = None,
    ) -> list[ScoredCandidate]:
        if not candidates:
            return []
        if self.classifier is not None:
            return self._model_score(candidates)
        return self._fallback_score(candidates, collaborative)

    def _model_score(self, candidates: list[Candidate]) -> list[ScoredCandidate]:
        X = np.vstack([match_features(c.tutor, c.demand) for c in candidates])
        probabilities = self.classifier.predict(X)
        return [
            ScoredCandidate(c.entity, c.identity, float(p) * 100.0, bool(p >= PROBABILITY_THRESHOLD))
            for c, p in zip(candidates, probabilities)
        ]

    def _fallback_score(
        self,
        candidates: list[Candidate],
        collaborative: CollaborativeFilter | None,
    ) -> list[ScoredCandidate]:
        scored = []
        for c in candidates:
            score = rule_score(c.tutor, c.demand)
            if collaborative is not None:
                score = collaborative.blend(c.identity, score)
            scored.append(ScoredCandidate(c.entity, c.identity, score, score >= RULE_THRESHOLD))
        return scored

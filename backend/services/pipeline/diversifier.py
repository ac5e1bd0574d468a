"""K-means cluster models and cluster-based diversification of ranked candidates."""

import json
import logging
from collections.abc import Callable
from typing import Any

import numpy as np
from sklearn.cluster import KMeans
from sklearn.preprocessing import StandardScaler

from services.pipeline.base import BaseModelService
from services.pipeline.ml_scorer import ScoredCandidate

logger = logging.getLogger(__name__)

MAX_CLUSTERS = 5
MAX_ITER = 100


def choose_k(n_entities: int) -> int:
    """k = min(5, n // 3)."""
    return min(MAX_CLUSTERS, n_entities // 3)


class ClusterModel(BaseModelService):
    """Nearest-centroid assignment over standardized features.

    Only the centroids and the standardization parameters are persisted;
    prediction does not need scikit-learn.
    """

    kind = "kmeans"

    def __init__(self, centers: np.ndarray, mean: np.ndarray, scale: np.ndarray, schema: str, name: str = "") -> None:
        super().__init__(schema)
        self.model_name = name
        self.centers = np.asarray(centers, dtype=np.float64)
        self.mean = np.asarray(mean, dtype=np.float64)
        self.scale = np.asarray(scale, dtype=np.float64)

    @property
    def k(self) -> int:
        return len(self.centers)

    @classmethod
    def fit(cls, X: np.ndarray, schema: str, name: str = "", k: int | None = None) -> "ClusterModel":
        X = np.asarray(X, dtype=np.float64)
        k = k if k is not None else choose_k(len(X))
        if k < 1:
            raise ValueError(f"need at least 3 entities to cluster, got {len(X)}")

        scaler = StandardScaler().fit(X)
        kmeans = KMeans(n_clusters=k, n_init=10, max_iter=MAX_ITER, random_state=42)
        kmeans.fit(scaler.transform(X))
        logger.info("Fitted %s: k=%d on %d entities (inertia %.2f)", name or "cluster model", k, len(X), kmeans.inertia_)
        return cls(kmeans.cluster_centers_, scaler.mean_, scaler.scale_, schema, name)

    def predict(self, X: np.ndarray) -> np.ndarray:
        X = np.atleast_2d(np.asarray(X, dtype=np.float64))
        Z = (X - self.mean) / self.scale
        distances = ((Z[:, None, :] - self.centers[None, :, :]) ** 2).sum(axis=2)
        return distances.argmin(axis=1)

    def metadata(self) -> dict[str, Any]:
        return {"k": self.k}

    def serialize(self) -> bytes:
        return json.dumps({
            "centers": self.centers.tolist(),
            "mean": self.mean.tolist(),
            "scale": self.scale.tolist(),
        }).encode("utf-8")

    @classmethod
    def _decode(cls, payload: bytes, metadata: dict[str, Any], schema: str) -> "ClusterModel":
        data = json.loads(payload.decode("utf-8"))
        centers = np.asarray(data["centers"], dtype=np.float64)
        mean = np.asarray(data["mean"], dtype=np.float64)
        scale = np.asarray(data["scale"], dtype=np.float64)
        if centers.ndim != 2 or centers.shape[1] != len(mean) or len(mean) != len(scale):
            raise ValueError(f"inconsistent cluster payload shapes {centers.shape}, {mean.shape}, {scale.shape}")
        return cls(centers, mean, scale, schema)


def top_n(scored: list[ScoredCandidate], limit: int) -> list[ScoredCandidate]:
    """Highest scores first; ties keep pool order."""
    return sorted(scored, key=lambda s: s.score, reverse=True)[:limit]


class ClusterDiversifier:
    """Spread the final list across clusters instead of taking a plain top-N.

    ``featurize`` maps a scored candidate to the feature vector the cluster
    model was trained on.
    """

    def __init__(
        self,
        model: ClusterModel | None,
        featurize: Callable[[ScoredCandidate], np.ndarray],
    ) -> None:
        self.model = model
        self.featurize = featurize

    def select(self, scored: list[ScoredCandidate], limit: int) -> list[ScoredCandidate]:
        if self.model is None or len(scored) <= limit:
            return top_n(scored, limit)

        labels = self.model.predict(np.vstack([self.featurize(s) for s in scored]))
        clusters: dict[int, list[ScoredCandidate]] = {}
        for candidate, label in zip(scored, labels):
            clusters.setdefault(int(label), []).append(candidate)

        per_cluster = max(1, limit // len(clusters))
        selected: list[ScoredCandidate] = []
        for members in clusters.values():
            selected.extend(top_n(members, per_cluster))

        if len(selected) < limit:
            used = {s.identity for s in selected}
            remaining = [s for s in scored if s.identity not in used]
            selected.extend(top_n(remaining, limit - len(selected)))

        logger.debug(
            "Diversified %d candidates over %d clusters (%d per cluster)",
            len(scored), len(clusters), per_cluster,
        )
        return top_n(selected, limit)

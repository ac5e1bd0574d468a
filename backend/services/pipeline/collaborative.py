"""User-user collaborative filtering over explicit match ratings."""

import logging

import numpy as np

from services.repository import RatingHistory

logger = logging.getLogger(__name__)

RULE_WEIGHT = 0.8
# A 1-5 rating maps onto 0-20 points
CONTRIBUTION_SCALE = 20.0
MAX_RATING = 5.0


def _as_ratings(history: RatingHistory) -> dict[str, float]:
    """Collapse repeated ratings of one item into their mean."""
    grouped: dict[str, list[float]] = {}
    for item_id, rating in history:
        grouped.setdefault(item_id, []).append(float(rating))
    return {item_id: sum(r) / len(r) for item_id, r in grouped.items()}


def pearson_similarity(a: dict[str, float], b: dict[str, float]) -> float:
    """Pearson correlation over commonly rated items.

    Returns 0.0 when there are no common items or either side has zero variance.
    """
    common = sorted(set(a) & set(b))
    if not common:
        return 0.0
    x = np.array([a[i] for i in common], dtype=np.float64)
    y = np.array([b[i] for i in common], dtype=np.float64)
    dx = x - x.mean()
    dy = y - y.mean()
    denom = float(np.sqrt((dx ** 2).sum() * (dy ** 2).sum()))
    if denom == 0.0:
        return 0.0
    return float((dx * dy).sum() / denom)


class CollaborativeFilter:
    """Blends a rule score with ratings from similar users.

    ``own_history`` is the querying user's ``(item, rating)`` list and
    ``other_histories`` maps every user to theirs; the querying user is
    dropped from the latter.
    """

    def __init__(self, user_id: str, own_history: RatingHistory, other_histories: dict[str, RatingHistory]) -> None:
        self.user_id = user_id
        own = _as_ratings(own_history)
        self._others: dict[str, dict[str, float]] = {}
        self._similarities: dict[str, float] = {}
        if not own:
            return
        for other_id, history in other_histories.items():
            if other_id == user_id:
                continue
            ratings = _as_ratings(history)
            sim = pearson_similarity(own, ratings)
            if sim > 0:
                self._others[other_id] = ratings
                self._similarities[other_id] = sim
        logger.debug("User %s has %d positively similar peers", user_id, len(self._similarities))

    @property
    def has_peers(self) -> bool:
        return bool(self._similarities)

    def contribution(self, item_id: str) -> float | None:
        """Similarity-weighted peer rating of ``item_id`` on a 0-20 scale, or None if no peer rated it."""
        sim_sum = 0.0
        weighted = 0.0
        for other_id, sim in self._similarities.items():
            rating = self._others[other_id].get(item_id)
            if rating is None:
                continue
            sim_sum += sim
            weighted += sim * (rating / MAX_RATING) * CONTRIBUTION_SCALE
        if sim_sum <= 0:
            return None
        return weighted / sim_sum

    def blend(self, item_id: str, rule_score: float) -> float:
        contribution = self.contribution(item_id)
        if contribution is None:
            return rule_score
        return RULE_WEIGHT * rule_score + contribution

"""Offline evaluation metrics for the match classifier and recommendation ranking.

Provides:
- Classification metrics on held-out matches (ROC AUC, log loss, accuracy)
- Ranking metrics over recommendation lists (NDCG@k, precision@k)
- Rank correlation between predicted scores and observed ratings (Spearman)

All public functions accept plain Python lists or NumPy arrays and return
simple Python scalars or dicts.
"""

from __future__ import annotations

import logging
from typing import Dict, Sequence, Union

import numpy as np
from scipy.stats import spearmanr
from sklearn.metrics import accuracy_score, log_loss, roc_auc_score

logger = logging.getLogger(__name__)

_ArrayLike = Union[Sequence[float], np.ndarray]


def _paired(y_true: _ArrayLike, y_pred: _ArrayLike) -> tuple[np.ndarray, np.ndarray]:
    y_true_arr = np.asarray(y_true, dtype=np.float64)
    y_pred_arr = np.asarray(y_pred, dtype=np.float64)
    if y_true_arr.shape != y_pred_arr.shape:
        raise ValueError(f"Shape mismatch: {y_true_arr.shape} vs {y_pred_arr.shape}")
    if y_true_arr.size == 0:
        raise ValueError("Inputs must not be empty")
    return y_true_arr, y_pred_arr


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classification_metrics(
    y_true: _ArrayLike,
    y_prob: _ArrayLike,
    threshold: float = 0.5,
) -> Dict[str, float]:
    """Summarize a binary classifier on held-out examples.

    Parameters
    ----------
    y_true:
        Observed outcomes (1 = successful match, 0 = otherwise).
    y_prob:
        Predicted probabilities of success.
    threshold:
        Probability at or above which a match is predicted successful.

    Returns
    -------
    dict
        ``{"roc_auc", "log_loss", "accuracy", "positive_rate"}``. ROC AUC is
        ``nan`` when *y_true* contains a single class.
    """
    y_true_arr, y_prob_arr = _paired(y_true, y_prob)
    y_prob_arr = np.clip(y_prob_arr, 1e-7, 1 - 1e-7)
    labels = y_true_arr.astype(int)

    if len(np.unique(labels)) < 2:
        logger.warning("Single-class evaluation set, ROC AUC undefined")
        auc = float("nan")
    else:
        auc = float(roc_auc_score(labels, y_prob_arr))

    return {
        "roc_auc": auc,
        "log_loss": float(log_loss(labels, y_prob_arr, labels=[0, 1])),
        "accuracy": float(accuracy_score(labels, (y_prob_arr >= threshold).astype(int))),
        "positive_rate": float(labels.mean()),
    }


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


def spearman_correlation(
    y_true: _ArrayLike,
    y_pred: _ArrayLike,
) -> Dict[str, float]:
    """Spearman rank correlation between observed ratings and predicted scores.

    Returns
    -------
    dict
        ``{"spearman_rho": float, "p_value": float}``
    """
    y_true_arr, y_pred_arr = _paired(y_true, y_pred)
    rho, p_value = spearmanr(y_true_arr, y_pred_arr)
    return {"spearman_rho": float(rho), "p_value": float(p_value)}


def ndcg_at_k(
    y_true: _ArrayLike,
    y_pred: _ArrayLike,
    k: int = 10,
) -> float:
    """Normalised Discounted Cumulative Gain of the top *k* by predicted score.

    Returns 0.0 when every true relevance is zero.
    """
    y_true_arr, y_pred_arr = _paired(y_true, y_pred)
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")

    def _dcg(relevances: np.ndarray) -> float:
        relevances = relevances[:k]
        discounts = np.log2(np.arange(2, len(relevances) + 2))
        return float(np.sum(relevances / discounts))

    # Stable sort so ties keep input order
    ranked = y_true_arr[np.argsort(-y_pred_arr, kind="stable")]
    idcg = _dcg(np.sort(y_true_arr)[::-1])
    if idcg == 0.0:
        return 0.0
    return _dcg(ranked) / idcg


def precision_at_k(
    y_true: _ArrayLike,
    y_pred: _ArrayLike,
    k: int = 10,
) -> float:
    """Share of the top *k* by predicted score that are true positives (``y_true > 0``)."""
    y_true_arr, y_pred_arr = _paired(y_true, y_pred)
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")
    top = np.argsort(-y_pred_arr, kind="stable")[:k]
    return float((y_true_arr[top] > 0).sum() / len(top))

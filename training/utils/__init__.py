"""Training utility package -- offline evaluation metrics."""

from .metrics import (
    classification_metrics,
    ndcg_at_k,
    precision_at_k,
    spearman_correlation,
)

__all__ = [
    "classification_metrics",
    "ndcg_at_k",
    "precision_at_k",
    "spearman_correlation",
]

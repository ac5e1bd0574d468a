#!/usr/bin/env python3
"""Match classifier training data.

Reads a marketplace JSON export (``{"tutors", "parents", "requests",
"matches"}``), builds one 40-dimensional match feature vector per match whose
tutor and parent both exist, and labels it 1 when the match completed with a
rating of 4 or more from either side.

Output: pandas DataFrame with one column per feature plus ``match_id``,
``parent_id``, ``rating`` (mean of available ratings) and ``label``.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from models.schemas.demand_profile import DemandProfile
from services.pipeline.features import MATCH_FEATURE_NAMES, match_features
from services.repository import InMemoryRepository

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data" / "matches"


def build_frame(repository: InMemoryRepository) -> pd.DataFrame:
    matches = asyncio.run(repository.get_completed_matches_with_outcomes())
    rows = []
    for m in matches:
        if m.tutor is None or m.parent is None:
            continue
        features = match_features(m.tutor, DemandProfile.from_parent(m.parent))
        ratings = [r for r in (m.parent_rating, m.tutor_rating) if r is not None]
        rows.append({
            "match_id": m.match_id,
            "parent_id": m.parent_id,
            **dict(zip(MATCH_FEATURE_NAMES, features.tolist())),
            "rating": float(np.mean(ratings)) if ratings else np.nan,
            "label": int(m.is_successful),
        })

    df = pd.DataFrame(rows, columns=["match_id", "parent_id", *MATCH_FEATURE_NAMES, "rating", "label"])
    logger.info(
        "Built %d examples from %d matches (%d successful)",
        len(df), len(matches), int(df["label"].sum()) if len(df) else 0,
    )
    return df


def split_frame(
    df: pd.DataFrame,
    test_size: float = 0.2,
    seed: int = 42,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Hold out ``test_size`` of the examples, stratified on the label when every class has 2+ rows."""
    counts = df["label"].value_counts()
    stratify = df["label"] if len(counts) > 1 and counts.min() >= 2 else None
    train_df, test_df = train_test_split(df, test_size=test_size, random_state=seed, stratify=stratify)
    return train_df.reset_index(drop=True), test_df.reset_index(drop=True)


def save_frame(df: pd.DataFrame, name: str = "examples.csv") -> Path:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    path = DATA_DIR / name
    df.to_csv(path, index=False)
    logger.info("Saved %d rows to %s", len(df), path)
    return path

"""Train the match classifier and cluster models from a marketplace export.

Evaluates a LightGBM classifier on a held-out split, then refits every model
on the full export and stores the artifacts where the API loads them from.

Usage:
    python training/scripts/train_matcher.py [--config training/configs/matcher.yaml] [--export path.json]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import numpy as np
import yaml

ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(ROOT / "training"))
sys.path.insert(0, str(ROOT / "backend"))

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def load_config(path: str) -> dict:
    with open(path) as f:
        return yaml.safe_load(f)


def main(config_path: str = "training/configs/matcher.yaml", export_path: str | None = None) -> None:
    config = load_config(config_path)
    logger.info("Training %s with config %s", config["model"]["name"], config_path)

    from data_prep.match_data import build_frame, save_frame, split_frame
    from services.artifact_store import SQLiteArtifactStore
    from services.pipeline.features import MATCH_FEATURE_NAMES
    from services.pipeline.ml_scorer import MatchClassifier
    from services.pipeline.model_registry import RegistryHolder
    from services.pipeline.trainer import ModelTrainer
    from services.repository import InMemoryRepository
    from utils.metrics import classification_metrics, ndcg_at_k, precision_at_k, spearman_correlation

    # --- 1. Load data ---
    export_path = export_path or config["data"]["export_path"]
    store = SQLiteArtifactStore(config["output"]["artifact_db"])
    repository = InMemoryRepository.from_json(export_path, store)

    df = build_frame(repository)
    save_frame(df, config["output"]["examples_csv"])
    if df["label"].nunique() < 2:
        logger.error("Need both successful and unsuccessful matches, got %d examples of one class -- aborting.", len(df))
        return

    train_df, test_df = split_frame(df, config["data"]["test_size"], config["data"]["seed"])
    logger.info("Train: %d, Test: %d, Features: %d", len(train_df), len(test_df), len(MATCH_FEATURE_NAMES))

    # --- 2. Holdout evaluation ---
    params = {
        "learning_rate": config["training"]["learning_rate"],
        "num_leaves": config["training"]["num_leaves"],
        "min_data_in_leaf": config["training"]["min_data_in_leaf"],
        "feature_fraction": config["training"]["feature_fraction"],
    }
    X_train = train_df[MATCH_FEATURE_NAMES].to_numpy(dtype=np.float64)
    y_train = train_df["label"].to_numpy()
    X_test = test_df[MATCH_FEATURE_NAMES].to_numpy(dtype=np.float64)
    y_test = test_df["label"].to_numpy()

    if len(np.unique(y_train)) < 2:
        logger.warning("Training split is single-class, skipping holdout evaluation")
    else:
        holdout = MatchClassifier.fit(X_train, y_train, params, config["training"]["num_boost_round"])
        probs = holdout.predict(X_test)

        k = config["evaluation"]["k"]
        metrics = classification_metrics(y_test, probs)
        ndcg = ndcg_at_k(y_test, probs, k=k)
        logger.info(
            "ROC AUC: %.4f  log loss: %.4f  accuracy: %.4f",
            metrics["roc_auc"], metrics["log_loss"], metrics["accuracy"],
        )
        logger.info("NDCG@%d: %.4f  precision@%d: %.4f", k, ndcg, k, precision_at_k(y_test, probs, k=k))

        rated = test_df["rating"].notna().to_numpy()
        if rated.sum() >= 3:
            rho = spearman_correlation(test_df.loc[rated, "rating"], probs[rated])
            logger.info("Spearman vs. observed rating: %.4f (p=%.6f)", rho["spearman_rho"], rho["p_value"])

        targets = config["evaluation"]["targets"]
        for name, value in [("roc_auc", metrics["roc_auc"]), (f"ndcg_at_{k}", ndcg)]:
            if name not in targets:
                continue
            if value >= targets[name]:
                logger.info("%s target %.2f ACHIEVED", name, targets[name])
            else:
                logger.warning("%s target %.2f NOT MET (got %.4f)", name, targets[name], value)

        logger.info("Feature importances (gain):")
        for name, val in sorted(holdout.feature_importances().items(), key=lambda x: -x[1])[:10]:
            logger.info("  %s: %.2f", name, val)

    # --- 3. Refit on everything and store artifacts ---
    trainer = ModelTrainer(
        repository,
        RegistryHolder(),
        min_cluster_entities=config["clusters"]["min_entities"],
        params=params,
        num_boost_round=config["training"]["num_boost_round"],
    )
    result = asyncio.run(trainer.train())
    if result.success:
        logger.info(
            "Stored classifier v%s, tutor clusters v%s, parent clusters v%s in %s",
            result.classifier_version, result.tutor_clusters_version,
            result.parent_clusters_version, store.path,
        )
    else:
        logger.error("Final training failed: %s", result.message)
    store.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Train the match classifier and cluster models")
    parser.add_argument("--config", default="training/configs/matcher.yaml")
    parser.add_argument("--export", default=None, help="Marketplace JSON export (overrides config)")
    args = parser.parse_args()
    main(args.config, args.export)

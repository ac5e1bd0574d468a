"""Shared dependencies for API routes."""

import logging

from config import settings
from services.artifact_store import SQLiteArtifactStore
from services.pipeline.orchestrator import RecommendationEngine
from services.repository import InMemoryRepository

logger = logging.getLogger(__name__)

_engine: RecommendationEngine | None = None


def build_engine() -> RecommendationEngine:
    store = SQLiteArtifactStore(settings.artifact_db_path)
    if settings.seed_data_path:
        repository = InMemoryRepository.from_json(settings.seed_data_path, store)
    else:
        logger.warning("SEED_DATA_PATH not set, starting with an empty repository")
        repository = InMemoryRepository(store)
    return RecommendationEngine.from_settings(repository, settings)


def get_engine() -> RecommendationEngine:
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def set_engine(engine: RecommendationEngine | None) -> None:
    """Replace the process-wide engine. Useful for testing."""
    global _engine
    _engine = engine

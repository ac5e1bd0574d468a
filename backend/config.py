import os
from pydantic_settings import BaseSettings


def _parse_cors_origins() -> list[str] | None:
    """Parse CORS_ORIGINS env var as comma-separated string or JSON list."""
    raw = os.environ.get("CORS_ORIGINS")
    if not raw:
        return None
    if raw.startswith("["):
        import json
        return json.loads(raw)
    return [o.strip() for o in raw.split(",") if o.strip()]


class Settings(BaseSettings):
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]
    debug: bool = False
    log_level: str = "INFO"

    # Data sources
    seed_data_path: str = ""  # JSON export loaded into the in-memory repository
    artifact_db_path: str = "training/models/artifacts.sqlite3"
    repository_timeout_seconds: float = 5.0

    # Recommendation defaults
    candidate_pool_size: int = 50  # per geo branch
    default_limit: int = 10
    max_limit: int = 50
    default_max_distance_km: float = 10.0

    # Training / feedback loop
    min_training_examples: int = 10
    min_cluster_entities: int = 10
    retrain_min_rated_matches: int = 20
    retrain_every_n_ratings: int = 10
    retrain_max_attempts: int = 3
    retrain_retry_delay_seconds: float = 2.0

    rate_limit: str = "60/minute"
    rate_limit_enabled: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "protected_namespaces": ("settings_",)}


_cors_override = _parse_cors_origins()
settings = Settings(**{"cors_origins": _cors_override} if _cors_override else {})

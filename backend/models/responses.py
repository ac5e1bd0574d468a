from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RankedCandidate(BaseModel):
    """Entity fields of a recommended tutor or request plus its match score.

    The entity's own fields are carried as extra attributes so the payload is
    the original document with ``matchScore`` and ``predicted`` added.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    match_score: int = Field(alias="matchScore", ge=0, le=100)
    predicted: bool = False


class RecommendationResponse(BaseModel):
    success: bool = True
    data: list[RankedCandidate] = []
    count: int = 0
    scoring_method: str = "rule"  # "ml" | "rule"


class FeedbackResult(BaseModel):
    success: bool
    message: str = ""
    reason: str | None = None  # "not_found" on a soft failure
    retrain_scheduled: bool = False


class TrainingResult(BaseModel):
    success: bool
    message: str = ""
    n_examples: int = 0
    classifier_version: int | None = None
    tutor_clusters_version: int | None = None
    parent_clusters_version: int | None = None


class ArtifactInfo(BaseModel):
    name: str
    version: int
    digest: str
    created_at: datetime
    metadata: dict = {}
    loaded: bool = False  # held by the in-process registry


class ModelStatus(BaseModel):
    classifier: ArtifactInfo | None = None
    tutor_clusters: ArtifactInfo | None = None
    parent_clusters: ArtifactInfo | None = None


class RetrainJob(BaseModel):
    """A background retraining job and its outcome."""
    job_id: str
    reason: str = ""
    status: str = "queued"  # queued | running | succeeded | skipped | failed
    attempts: int = 0
    submitted_at: datetime
    finished_at: datetime | None = None
    error: str | None = None
    result: TrainingResult | None = None

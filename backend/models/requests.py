from pydantic import BaseModel, Field


class RecommendOptions(BaseModel):
    limit: int = Field(default=10, ge=1, le=50, description="Maximum number of candidates returned")
    max_distance: float = Field(default=10.0, gt=0, description="Cross-city search radius in km")
    use_ml: bool = Field(default=True, description="Use the trained classifier when one is loaded")


class FeedbackRequest(BaseModel):
    # rating and role are range-checked by the feedback loop so that bad values map to 400
    match_id: str = Field(..., min_length=1)
    rating: float
    review: str = Field(default="", max_length=2000)
    role: str

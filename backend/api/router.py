from fastapi import APIRouter, Depends, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from api.dependencies import get_engine
from config import settings
from models.requests import FeedbackRequest, RecommendOptions
from models.responses import (
    FeedbackResult,
    ModelStatus,
    RecommendationResponse,
    RetrainJob,
    TrainingResult,
)
from services.pipeline.orchestrator import RecommendationEngine

router = APIRouter()
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


def recommend_options(
    limit: int = Query(default=settings.default_limit, ge=1, le=settings.max_limit),
    max_distance: float = Query(default=settings.default_max_distance_km, gt=0),
    use_ml: bool = Query(default=True),
) -> RecommendOptions:
    return RecommendOptions(limit=limit, max_distance=max_distance, use_ml=use_ml)


@router.get("/health")
async def health(engine: RecommendationEngine = Depends(get_engine)):
    snapshot = engine.holder.current()
    return {
        "status": "ok",
        "classifier_loaded": snapshot.classifier is not None,
        "retrain_worker_running": engine.worker.running,
    }


@router.get("/recommendations/parent/{parent_id}/tutors", response_model=RecommendationResponse)
@limiter.limit(settings.rate_limit)
async def recommend_tutors(
    request: Request,
    parent_id: str,
    options: RecommendOptions = Depends(recommend_options),
    engine: RecommendationEngine = Depends(get_engine),
):
    return await engine.recommend_for_parent(parent_id, options)


@router.get("/recommendations/tutor/{tutor_id}/requests", response_model=RecommendationResponse)
@limiter.limit(settings.rate_limit)
async def recommend_requests(
    request: Request,
    tutor_id: str,
    options: RecommendOptions = Depends(recommend_options),
    engine: RecommendationEngine = Depends(get_engine),
):
    return await engine.recommend_for_tutor(tutor_id, options)


@router.post("/recommendations/feedback", response_model=FeedbackResult)
@limiter.limit(settings.rate_limit)
async def submit_feedback(
    request: Request,
    body: FeedbackRequest,
    engine: RecommendationEngine = Depends(get_engine),
):
    result = await engine.collect_feedback(body.match_id, body)
    if result.reason == "not_found":
        raise HTTPException(status_code=404, detail=result.message)
    return result


@router.post("/recommendations/train", response_model=TrainingResult)
@limiter.limit("5/minute")
async def train(request: Request, engine: RecommendationEngine = Depends(get_engine)):
    return await engine.train_models()


@router.get("/recommendations/models", response_model=ModelStatus)
async def models(engine: RecommendationEngine = Depends(get_engine)):
    return await engine.model_status()


@router.get("/recommendations/retrain/jobs", response_model=list[RetrainJob])
async def retrain_jobs(engine: RecommendationEngine = Depends(get_engine)):
    return engine.retrain_jobs()

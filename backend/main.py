import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from api.dependencies import get_engine
from api.router import limiter, router
from config import settings
from services.errors import InvalidInputError, MatchingError, NotFoundError, UpstreamDataError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = get_engine()
    await engine.start()
    yield
    await engine.stop()


app = FastAPI(
    title="Tutor Match API",
    description="Tutor/parent matching and recommendation engine",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MatchingError)
async def matching_error_handler(request: Request, exc: MatchingError):
    if isinstance(exc, NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})
    if isinstance(exc, InvalidInputError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})
    if isinstance(exc, UpstreamDataError):
        logger.error("Upstream data error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": "Upstream data source unavailable"})
    logger.exception("Unhandled engine error on %s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


app.include_router(router)

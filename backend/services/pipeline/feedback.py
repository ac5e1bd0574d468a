"""Rating feedback on matches, and the background worker that retrains on it.

``FeedbackLoop.collect`` stores a rating and, every 10th rated match once 20
exist, submits a job to ``RetrainWorker``. The worker consumes an asyncio
queue in its own task, so the caller never waits for training. Job failures
are retried, logged and kept in the job history.
"""

import asyncio
import logging
import math
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from models.responses import FeedbackResult, RetrainJob, TrainingResult
from services.errors import InvalidInputError
from services.repository import CandidateRepository, call_repository

logger = logging.getLogger(__name__)

VALID_ROLES = ("parent", "tutor")
MIN_RATING = 1.0
MAX_RATING = 5.0


def should_retrain(rated_count: int, min_rated: int = 20, every: int = 10) -> bool:
    return rated_count >= min_rated and rated_count % every == 0


def validate_feedback(rating: float, role: str) -> None:
    if isinstance(rating, bool) or not isinstance(rating, (int, float)) or math.isnan(rating):
        raise InvalidInputError(f"rating must be a number, got {rating!r}")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidInputError(f"rating must be between 1 and 5, got {rating}")
    if role not in VALID_ROLES:
        raise InvalidInputError(f"role must be 'parent' or 'tutor', got {role!r}")


class RetrainWorker:
    def __init__(
        self,
        train: Callable[[], Awaitable[TrainingResult]],
        max_attempts: int = 3,
        retry_delay: float = 2.0,
        history_size: int = 50,
    ) -> None:
        self._train = train
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._queue: asyncio.Queue[RetrainJob] = asyncio.Queue()
        self._history: deque[RetrainJob] = deque(maxlen=history_size)
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        # A queue binds to the loop it first waits on; rebuild it for the current loop
        queue: asyncio.Queue[RetrainJob] = asyncio.Queue()
        while not self._queue.empty():
            queue.put_nowait(self._queue.get_nowait())
        self._queue = queue
        self._task = asyncio.create_task(self._run(), name="retrain-worker")
        logger.info("Retrain worker started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Retrain worker stopped")

    def submit(self, reason: str = "") -> RetrainJob:
        """Queue a retraining job; a job still waiting in the queue absorbs new submissions."""
        for job in self._history:
            if job.status == "queued":
                logger.info("Retrain job %s already queued, not submitting another", job.job_id)
                return job
        job = RetrainJob(job_id=uuid.uuid4().hex[:12], reason=reason, submitted_at=datetime.now(timezone.utc))
        self._history.append(job)
        self._queue.put_nowait(job)
        logger.info("Queued retrain job %s (%s)", job.job_id, reason)
        return job

    def jobs(self) -> list[RetrainJob]:
        return list(self._history)

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._process(job)
            finally:
                self._queue.task_done()

    async def _process(self, job: RetrainJob) -> None:
        while job.attempts < self.max_attempts:
            job.attempts += 1
            job.status = "running"
            try:
                result = await self._train()
            except Exception as e:
                job.error = f"{type(e).__name__}: {e}"
                logger.exception("Retrain job %s attempt %d/%d failed", job.job_id, job.attempts, self.max_attempts)
                if job.attempts < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)
                continue
            job.result = result
            job.error = None
            job.status = "succeeded" if result.success else "skipped"
            job.finished_at = datetime.now(timezone.utc)
            logger.info("Retrain job %s %s: %s", job.job_id, job.status, result.message)
            return

        job.status = "failed"
        job.finished_at = datetime.now(timezone.utc)
        logger.error("Retrain job %s gave up after %d attempts", job.job_id, job.attempts)


class FeedbackLoop:
    def __init__(
        self,
        repository: CandidateRepository,
        worker: RetrainWorker | None = None,
        min_rated: int = 20,
        every: int = 10,
        timeout: float = 5.0,
    ) -> None:
        self.repository = repository
        self.worker = worker
        self.min_rated = min_rated
        self.every = every
        self.timeout = timeout

    async def collect(self, match_id: str, rating: float, review: str = "", role: str = "") -> FeedbackResult:
        validate_feedback(rating, role)

        match = await call_repository(self.repository.get_match(match_id), self.timeout)
        if match is None:
            logger.info("Feedback for unknown match %s", match_id)
            return FeedbackResult(success=False, message=f"Match not found: {match_id}", reason="not_found")

        update = {f"{role}_rating": float(rating), f"{role}_review": review}
        await call_repository(self.repository.update_match(match_id, **update), self.timeout)

        rated = await call_repository(self.repository.count_rated_matches(), self.timeout)
        scheduled = False
        if self.worker is not None and should_retrain(rated, self.min_rated, self.every):
            self.worker.submit(reason=f"{rated} rated matches")
            scheduled = True

        return FeedbackResult(success=True, message="Feedback recorded", retrain_scheduled=scheduled)

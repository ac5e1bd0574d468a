"""Candidate repository: the engine's only view of marketplace data.

``CandidateRepository`` is the async interface the engine consumes.
``InMemoryRepository`` keeps documents in dicts and can be seeded from a JSON
export; artifacts are delegated to a ``SQLiteArtifactStore``.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Awaitable
from pathlib import Path
from typing import Any, Literal, TypeVar

from pydantic import ValidationError

from models.schemas.artifact import ModelArtifact
from models.schemas.entities import Parent, Tutor, TutoringRequest
from models.schemas.match import MatchRecord, utcnow
from services.artifact_store import SQLiteArtifactStore
from services.errors import InvalidInputError, MatchingError, UpstreamDataError
from services.geo import normalize_city

logger = logging.getLogger(__name__)

CandidateKind = Literal["tutor", "request"]
Role = Literal["parent", "tutor"]
RatingHistory = list[tuple[str, float]]

# Unrated matches count as a mid-scale rating in rating histories
DEFAULT_HISTORY_RATING = 3.0
OPEN_REQUEST_STATUSES = ("published", "open")

T = TypeVar("T")


async def call_repository(awaitable: Awaitable[T], timeout: float) -> T:
    """Await a repository call, mapping timeouts and driver errors to UpstreamDataError."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error("Repository call timed out after %.1fs", timeout)
        raise UpstreamDataError(f"repository timed out after {timeout}s") from e
    except MatchingError:
        raise
    except Exception as e:
        logger.exception("Repository call failed")
        raise UpstreamDataError(str(e)) from e


class CandidateRepository(ABC):
    @abstractmethod
    async def get_tutor(self, tutor_id: str) -> Tutor | None: ...

    @abstractmethod
    async def get_parent(self, parent_id: str) -> Parent | None: ...

    @abstractmethod
    async def list_tutors(self) -> list[Tutor]: ...

    @abstractmethod
    async def list_parents(self) -> list[Parent]: ...

    @abstractmethod
    async def find_candidates_by_same_city(
        self, kind: CandidateKind, city: str, limit: int
    ) -> list[Tutor] | list[TutoringRequest]:
        """Verified tutors or open requests whose normalized city equals ``city``."""

    @abstractmethod
    async def find_candidates_by_other_city(
        self, kind: CandidateKind, exclude_city: str, limit: int
    ) -> list[Tutor] | list[TutoringRequest]:
        """Verified tutors or open requests outside ``exclude_city``."""

    @abstractmethod
    async def get_user_rating_history(self, user_id: str, role: Role) -> RatingHistory:
        """``(item_id, rating)`` pairs for one user.

        Parents rate tutors; tutors rate requests.
        """

    @abstractmethod
    async def get_all_rating_histories(self, role: Role) -> dict[str, RatingHistory]: ...

    @abstractmethod
    async def get_completed_matches_with_outcomes(self) -> list[MatchRecord]:
        """Every match record, with ``tutor`` and ``parent`` populated where they exist."""

    @abstractmethod
    async def get_match(self, match_id: str) -> MatchRecord | None: ...

    @abstractmethod
    async def update_match(self, match_id: str, **fields: Any) -> MatchRecord: ...

    @abstractmethod
    async def count_rated_matches(self) -> int: ...

    @abstractmethod
    async def load_artifact(self, name: str) -> ModelArtifact | None: ...

    @abstractmethod
    async def save_artifact(self, name: str, artifact: ModelArtifact) -> ModelArtifact: ...


class InMemoryRepository(CandidateRepository):
    def __init__(self, artifact_store: SQLiteArtifactStore | None = None) -> None:
        self.artifact_store = artifact_store or SQLiteArtifactStore()
        self._tutors: dict[str, Tutor] = {}
        self._parents: dict[str, Parent] = {}
        self._requests: dict[str, TutoringRequest] = {}
        self._matches: dict[str, MatchRecord] = {}

    @classmethod
    def from_json(cls, path: str | Path, artifact_store: SQLiteArtifactStore | None = None) -> "InMemoryRepository":
        """Seed from an export shaped ``{"tutors": [], "parents": [], "requests": [], "matches": []}``."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        repo = cls(artifact_store)
        repo.load_documents(data)
        logger.info(
            "Seeded repository from %s: %d tutors, %d parents, %d requests, %d matches",
            path, len(repo._tutors), len(repo._parents), len(repo._requests), len(repo._matches),
        )
        return repo

    def load_documents(self, data: dict[str, list[dict]]) -> None:
        try:
            for doc in data.get("tutors", []):
                self.add_tutor(Tutor.model_validate(doc))
            for doc in data.get("parents", []):
                self.add_parent(Parent.model_validate(doc))
            for doc in data.get("requests", []):
                self.add_request(TutoringRequest.model_validate(doc))
            for doc in data.get("matches", []):
                self.add_match(MatchRecord.model_validate(doc))
        except ValidationError as e:
            raise InvalidInputError(f"invalid seed document: {e}") from e

    def add_tutor(self, tutor: Tutor) -> None:
        self._tutors[tutor.tutor_id] = tutor

    def add_parent(self, parent: Parent) -> None:
        self._parents[parent.parent_id] = parent

    def add_request(self, request: TutoringRequest) -> None:
        self._requests[request.request_id] = request

    def add_match(self, match: MatchRecord) -> None:
        self._matches[match.match_id] = match

    async def get_tutor(self, tutor_id: str) -> Tutor | None:
        return self._tutors.get(tutor_id)

    async def get_parent(self, parent_id: str) -> Parent | None:
        return self._parents.get(parent_id)

    async def list_tutors(self) -> list[Tutor]:
        return list(self._tutors.values())

    async def list_parents(self) -> list[Parent]:
        return list(self._parents.values())

    async def find_candidates_by_same_city(self, kind, city, limit):
        target = normalize_city(city)
        if not target:
            return []
        return [c for c in self._candidates(kind) if normalize_city(c.location.city) == target][:limit]

    async def find_candidates_by_other_city(self, kind, exclude_city, limit):
        excluded = normalize_city(exclude_city)
        candidates = self._candidates(kind)
        if excluded:
            candidates = [c for c in candidates if normalize_city(c.location.city) != excluded]
        return candidates[:limit]

    def _candidates(self, kind: CandidateKind) -> list:
        if kind == "tutor":
            return [t for t in self._tutors.values() if t.is_verified]
        if kind == "request":
            return [
                self._populate_request(r)
                for r in self._requests.values()
                if r.status in OPEN_REQUEST_STATUSES
            ]
        raise ValueError(f"Unknown candidate kind: {kind}")

    def _populate_request(self, request: TutoringRequest) -> TutoringRequest:
        if request.parent is not None or request.parent_id not in self._parents:
            return request
        return request.model_copy(update={"parent": self._parents[request.parent_id]})

    async def get_user_rating_history(self, user_id: str, role: Role) -> RatingHistory:
        histories = await self.get_all_rating_histories(role)
        return histories.get(user_id, [])

    async def get_all_rating_histories(self, role: Role) -> dict[str, RatingHistory]:
        histories: dict[str, RatingHistory] = defaultdict(list)
        for m in self._matches.values():
            if role == "parent":
                rating = m.parent_rating if m.parent_rating is not None else DEFAULT_HISTORY_RATING
                histories[m.parent_id].append((m.tutor_id, float(rating)))
            elif role == "tutor":
                if not m.request_id:
                    continue
                rating = m.tutor_rating if m.tutor_rating is not None else DEFAULT_HISTORY_RATING
                histories[m.tutor_id].append((m.request_id, float(rating)))
            else:
                raise ValueError(f"Unknown role: {role}")
        return dict(histories)

    async def get_completed_matches_with_outcomes(self) -> list[MatchRecord]:
        return [
            m.model_copy(update={
                "tutor": self._tutors.get(m.tutor_id),
                "parent": self._parents.get(m.parent_id),
            })
            for m in self._matches.values()
        ]

    async def get_match(self, match_id: str) -> MatchRecord | None:
        return self._matches.get(match_id)

    async def update_match(self, match_id: str, **fields: Any) -> MatchRecord:
        current = self._matches[match_id]
        updated = MatchRecord.model_validate({**current.model_dump(), **fields, "updated_at": utcnow()})
        self._matches[match_id] = updated
        return updated

    async def count_rated_matches(self) -> int:
        return sum(1 for m in self._matches.values() if m.is_rated)

    async def load_artifact(self, name: str) -> ModelArtifact | None:
        return await asyncio.to_thread(self.artifact_store.load, name)

    async def save_artifact(self, name: str, artifact: ModelArtifact) -> ModelArtifact:
        if artifact.name != name:
            artifact = artifact.model_copy(update={"name": name})
        return await asyncio.to_thread(self.artifact_store.save, artifact)

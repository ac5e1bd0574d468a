"""Shared test configuration, pytest markers and marketplace fixtures."""

import pytest

from models.schemas.entities import Parent, Tutor, TutoringRequest
from models.schemas.match import MatchRecord
from services.artifact_store import SQLiteArtifactStore
from services.pipeline.orchestrator import RecommendationEngine
from services.repository import InMemoryRepository


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "training: fits real LightGBM / k-means models (slower)"
    )


# Beijing, Haidian
HAIDIAN = [116.30, 39.98]
# Beijing, Chaoyang (~14 km from Haidian)
CHAOYANG = [116.44, 39.92]
# Tianjin (~110 km from Beijing)
TIANJIN = [117.20, 39.13]


def tutor_doc(tutor_id: str, **overrides) -> dict:
    doc = {
        "tutor_id": tutor_id,
        "name": f"Tutor {tutor_id}",
        "subjects": [{"name": "math", "grades": ["junior_2", "junior_3"]}],
        "teaching_experience": {"years": 5},
        "rating": 4.5,
        "statistics": {"completion_rate": 0.9, "response_rate": 0.85},
        "teaching_style": "patient",
        "pricing": {"base_price": 250},
        "location": {"city": "北京市", "district": "海淀区", "coordinates": HAIDIAN},
        "is_verified": True,
    }
    doc.update(overrides)
    return doc


def parent_doc(parent_id: str, **overrides) -> dict:
    doc = {
        "parent_id": parent_id,
        "name": f"Parent {parent_id}",
        "children": [
            {
                "name": "Child",
                "grade": "junior_2",
                "subjects": [{"name": "math", "budget": {"min": 100, "max": 300}}],
            }
        ],
        "preferences": {"teaching_style": "patient"},
        "location": {"city": "北京", "district": "海淀区", "coordinates": HAIDIAN},
    }
    doc.update(overrides)
    return doc


def request_doc(request_id: str, parent_id: str, **overrides) -> dict:
    doc = {
        "request_id": request_id,
        "parent_id": parent_id,
        "subject": {"name": "math"},
        "grade": "junior_2",
        "budget": {"min": 100, "max": 300},
        "location": {"city": "北京", "district": "海淀区", "coordinates": HAIDIAN},
        "status": "published",
    }
    doc.update(overrides)
    return doc


def match_doc(match_id: str, parent_id: str, tutor_id: str, **overrides) -> dict:
    doc = {
        "match_id": match_id,
        "parent_id": parent_id,
        "tutor_id": tutor_id,
        "request_id": "",
        "status": "pending",
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def make_tutor():
    def _make(tutor_id: str = "t1", **overrides) -> Tutor:
        return Tutor.model_validate(tutor_doc(tutor_id, **overrides))
    return _make


@pytest.fixture
def make_parent():
    def _make(parent_id: str = "p1", **overrides) -> Parent:
        return Parent.model_validate(parent_doc(parent_id, **overrides))
    return _make


@pytest.fixture
def make_request():
    def _make(request_id: str = "r1", parent_id: str = "p1", **overrides) -> TutoringRequest:
        return TutoringRequest.model_validate(request_doc(request_id, parent_id, **overrides))
    return _make


@pytest.fixture
def artifact_store():
    store = SQLiteArtifactStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def repository(artifact_store):
    """A small Beijing marketplace: 3 tutors, 2 parents, 2 requests, no matches."""
    repo = InMemoryRepository(artifact_store)
    repo.load_documents({
        "tutors": [
            tutor_doc("t1"),
            tutor_doc(
                "t2",
                subjects=[{"name": "english", "grades": ["senior_1"]}],
                pricing={"base_price": 500},
                location={"city": "北京", "district": "朝阳区", "coordinates": CHAOYANG},
            ),
            tutor_doc("t3", location={"city": "天津", "district": "南开区", "coordinates": TIANJIN}),
            tutor_doc("t_unverified", is_verified=False),
        ],
        "parents": [
            parent_doc("p1"),
            parent_doc("p2", location={"city": "天津市", "district": "南开区", "coordinates": TIANJIN}),
        ],
        "requests": [
            request_doc("r1", "p1"),
            request_doc("r2", "p2", location={"city": "天津", "district": "南开区", "coordinates": TIANJIN}),
            request_doc("r_closed", "p1", status="closed"),
        ],
    })
    return repo


def training_documents(n_tutors: int = 12, n_parents: int = 12) -> dict:
    """Enough tutors, parents and rated matches to fit every model.

    Matches with a math tutor priced inside the budget succeed; English
    tutors and overpriced tutors get low ratings.
    """
    tutors = []
    for i in range(n_tutors):
        good = i % 2 == 0
        tutors.append(tutor_doc(
            f"t{i}",
            subjects=[{"name": "math" if good else "english", "grades": ["junior_2"]}],
            pricing={"base_price": 200 if good else 600},
            rating=4.0 + (i % 3) * 0.3,
            teaching_experience={"years": 2 + i},
        ))
    parents = [
        parent_doc(f"p{i}", children=[{
            "name": "Child",
            "grade": "junior_2" if i % 3 else "primary_5",
            "subjects": [{"name": "math", "budget": {"min": 100 + 10 * i, "max": 300 + 10 * i}}],
        }])
        for i in range(n_parents)
    ]

    matches = []
    for i in range(n_parents):
        for j in (i % n_tutors, (i + 1) % n_tutors):
            good = j % 2 == 0
            matches.append(match_doc(
                f"m{i}_{j}",
                f"p{i}",
                f"t{j}",
                status="completed" if good else "cancelled",
                parent_rating=5 if good else 2,
            ))
    return {"tutors": tutors, "parents": parents, "requests": [], "matches": matches}


@pytest.fixture
def training_repository(artifact_store):
    repo = InMemoryRepository(artifact_store)
    repo.load_documents(training_documents())
    return repo


@pytest.fixture
def engine(repository):
    return RecommendationEngine(repository, retrain_retry_delay=0.0)


@pytest.fixture
def match_factory():
    def _make(match_id: str, parent_id: str = "p1", tutor_id: str = "t1", **overrides) -> MatchRecord:
        return MatchRecord.model_validate(match_doc(match_id, parent_id, tutor_id, **overrides))
    return _make

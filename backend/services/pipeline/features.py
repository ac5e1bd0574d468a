"""Fixed-layout feature vectors for tutors, demand profiles and tutor/demand pairs.

The layout is part of every trained artifact: ``SCHEMA_FINGERPRINT`` hashes the
feature names, and a model whose fingerprint differs is refused at load time.
Missing optional fields fall back to neutral values, so extraction never raises.
"""

import hashlib

import numpy as np

from models.schemas.demand_profile import DemandProfile
from models.schemas.entities import Tutor
from services.geo import normalize_city

TEACHING_STYLES = {
    "strict": 1,
    "encouraging": 2,
    "patient": 3,
    "interactive": 4,
    "analytical": 5,
}
SUBJECTS = ["math", "english", "chinese", "physics", "chemistry", "biology", "history", "geography"]
GRADE_BANDS = ["primary", "junior", "senior", "college"]

NEUTRAL_RATING = 3.0
NEUTRAL_COMPLETION_RATE = 0.8
NEUTRAL_RESPONSE_RATE = 0.8

TUTOR_FEATURE_NAMES = [
    "experience_years",
    "rating",
    "completion_rate",
    "response_rate",
    "teaching_style",
    *[f"teaches_{s}" for s in SUBJECTS],
    *[f"tutor_grade_{g}" for g in GRADE_BANDS],
    "base_price",
    "tutor_city_code",
]

PARENT_FEATURE_NAMES = [
    "child_count",
    "avg_budget_min",
    "avg_budget_max",
    "preferred_style",
    *[f"needs_{s}" for s in SUBJECTS],
    *[f"demand_grade_{g}" for g in GRADE_BANDS],
    "demand_city_code",
]

PAIR_FEATURE_NAMES = [
    "subject_overlap",
    "grade_overlap",
    "price_fit",
    "style_match",
]

MATCH_FEATURE_NAMES = TUTOR_FEATURE_NAMES + PARENT_FEATURE_NAMES + PAIR_FEATURE_NAMES


def schema_fingerprint(names: list[str]) -> str:
    return hashlib.sha256(",".join(names).encode("utf-8")).hexdigest()[:16]


MATCH_SCHEMA = schema_fingerprint(MATCH_FEATURE_NAMES)
TUTOR_SCHEMA = schema_fingerprint(TUTOR_FEATURE_NAMES)
PARENT_SCHEMA = schema_fingerprint(PARENT_FEATURE_NAMES)


def style_code(style: str | None) -> float:
    return float(TEACHING_STYLES.get((style or "").strip().lower(), 0))


def city_code(city: str | None) -> float:
    """Coarse region code: first code point of the normalized city, mod 100."""
    normalized = normalize_city(city)
    if not normalized:
        return 0.0
    return float(ord(normalized[0]) % 100)


def _grade_bands(grades: list[str]) -> list[float]:
    return [1.0 if any(band in g for g in grades) else 0.0 for band in GRADE_BANDS]


def _tutor_subjects(tutor: Tutor) -> set[str]:
    return {s.name.strip().lower() for s in tutor.subjects}


def _tutor_grades(tutor: Tutor) -> set[str]:
    return {g.strip().lower() for s in tutor.subjects for g in s.grades}


def price_fit(price: float, budget_min: float, budget_max: float) -> float:
    """1.0 inside the budget, 0.8 below it, 0.5 up to 20% over, else 0."""
    if budget_min <= price <= budget_max:
        return 1.0
    if price < budget_min:
        return 0.8
    if price <= budget_max * 1.2:
        return 0.5
    return 0.0


def average_budget(demand: DemandProfile) -> tuple[float, float]:
    """Mean budget over every requested subject, counting a missing budget as 0."""
    n = len(demand.subjects) or 1
    lo = sum(b.min for b in demand.budgets if b is not None) / n
    hi = sum(b.max for b in demand.budgets if b is not None) / n
    return lo, hi


def tutor_features(tutor: Tutor) -> np.ndarray:
    stats = tutor.statistics
    subjects = _tutor_subjects(tutor)
    grades = list(_tutor_grades(tutor))
    values = [
        float(tutor.teaching_experience.years),
        float(tutor.rating if tutor.rating is not None else NEUTRAL_RATING),
        float(stats.completion_rate if stats.completion_rate is not None else NEUTRAL_COMPLETION_RATE),
        float(stats.response_rate if stats.response_rate is not None else NEUTRAL_RESPONSE_RATE),
        style_code(tutor.teaching_style),
        *[1.0 if s in subjects else 0.0 for s in SUBJECTS],
        *_grade_bands(grades),
        float(tutor.pricing.base_price),
        city_code(tutor.location.city),
    ]
    return np.asarray(values, dtype=np.float64)


def parent_features(demand: DemandProfile) -> np.ndarray:
    budget_min, budget_max = average_budget(demand)
    values = [
        float(demand.child_count or 1),
        budget_min,
        budget_max,
        style_code(demand.teaching_style),
        *[1.0 if s in demand.subjects else 0.0 for s in SUBJECTS],
        *_grade_bands(demand.grades),
        city_code(demand.location.city),
    ]
    return np.asarray(values, dtype=np.float64)


def pair_features(tutor: Tutor, demand: DemandProfile) -> np.ndarray:
    subjects = _tutor_subjects(tutor)
    grades = _tutor_grades(tutor)

    subject_overlap = sum(1 for s in demand.subjects if s in subjects) / max(1, len(demand.subjects))
    grade_overlap = sum(1 for g in demand.grades if g in grades) / max(1, len(demand.grades))
    budget_min, budget_max = average_budget(demand)

    tutor_style = tutor.teaching_style.strip().lower()
    wanted_style = demand.teaching_style.strip().lower()
    style_match = 1.0 if tutor_style and tutor_style == wanted_style else 0.0

    return np.asarray(
        [subject_overlap, grade_overlap, price_fit(tutor.pricing.base_price, budget_min, budget_max), style_match],
        dtype=np.float64,
    )


def match_features(tutor: Tutor, demand: DemandProfile) -> np.ndarray:
    return np.concatenate([tutor_features(tutor), parent_features(demand), pair_features(tutor, demand)])

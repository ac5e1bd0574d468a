"""Weighted rule score for a tutor against a demand profile.

Weights: subject 35, grade 25, price 20, location 20 (max 100).
"""

from models.schemas.demand_profile import DemandProfile
from models.schemas.entities import Tutor
from services.geo import normalize_city
from services.pipeline.features import price_fit

WEIGHTS = {
    "subject": 35.0,
    "grade": 25.0,
    "price": 20.0,
    "location": 20.0,
}
DISTRICT_SHARE = 0.6
CITY_SHARE = 0.4


def subject_score(tutor: Tutor, demand: DemandProfile) -> float:
    if not demand.subjects:
        return 0.0
    offered = {s.name.strip().lower() for s in tutor.subjects}
    matched = sum(1 for s in demand.subjects if s in offered)
    return min(matched / len(demand.subjects) * WEIGHTS["subject"], WEIGHTS["subject"])


def grade_score(tutor: Tutor, demand: DemandProfile) -> float:
    if not demand.grades:
        return 0.0
    covered = {g.strip().lower() for s in tutor.subjects for g in s.grades}
    matched = sum(1 for g in demand.grades if g in covered)
    return min(matched / len(demand.grades) * WEIGHTS["grade"], WEIGHTS["grade"])


def price_score(tutor: Tutor, demand: DemandProfile) -> float:
    price = tutor.pricing.base_price
    if price <= 0:
        return 0.0
    budget_min, budget_max = demand.budget_range()
    return price_fit(price, budget_min, budget_max) * WEIGHTS["price"]


def location_score(tutor: Tutor, demand: DemandProfile) -> float:
    score = 0.0
    district = demand.location.district.strip()
    if district and tutor.location.district.strip() == district:
        score += WEIGHTS["location"] * DISTRICT_SHARE
    city = normalize_city(demand.location.city)
    if city and normalize_city(tutor.location.city) == city:
        score += WEIGHTS["location"] * CITY_SHARE
    return score


def rule_score(tutor: Tutor, demand: DemandProfile) -> float:
    """Pure, deterministic score in [0, 100]."""
    total = (
        subject_score(tutor, demand)
        + grade_score(tutor, demand)
        + price_score(tutor, demand)
        + location_score(tutor, demand)
    )
    return max(0.0, min(100.0, total))

"""Marketplace entities consumed by the matching engine.

Raw documents coming out of the candidate repository are validated here once.
Every nested field is optional with a neutral default so downstream scoring
code never has to guard against missing paths.
"""

from typing import Any

from pydantic import BaseModel, field_validator


class Location(BaseModel):
    city: str = ""
    district: str = ""
    coordinates: list[float] | None = None  # [longitude, latitude]

    @field_validator("coordinates", mode="before")
    @classmethod
    def _coerce_coordinates(cls, value: Any) -> list[float] | None:
        if value is None:
            return None
        # GeoJSON point: {"type": "Point", "coordinates": [lon, lat]}
        if isinstance(value, dict):
            value = value.get("coordinates")
            if value is None:
                return None
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ValueError("coordinates must be a [longitude, latitude] array")
        return [float(v) for v in value]

    @property
    def point(self) -> tuple[float, float] | None:
        if self.coordinates is None:
            return None
        return self.coordinates[0], self.coordinates[1]


class Budget(BaseModel):
    min: float = 0.0
    max: float = 0.0


class SubjectOffering(BaseModel):
    """A subject a tutor teaches, with the grades covered."""
    name: str
    grades: list[str] = []


class TeachingExperience(BaseModel):
    years: float = 0.0


class TutorStatistics(BaseModel):
    completion_rate: float | None = None
    response_rate: float | None = None


class Pricing(BaseModel):
    base_price: float = 0.0


class Tutor(BaseModel):
    tutor_id: str
    name: str = ""
    subjects: list[SubjectOffering] = []
    teaching_experience: TeachingExperience = TeachingExperience()
    rating: float | None = None  # 1-5 overall rating
    statistics: TutorStatistics = TutorStatistics()
    teaching_style: str = ""
    pricing: Pricing = Pricing()
    location: Location = Location()
    is_verified: bool = True


class SubjectNeed(BaseModel):
    """A subject a child needs help with."""
    name: str
    budget: Budget | None = None


class Child(BaseModel):
    name: str = ""
    grade: str = ""
    subjects: list[SubjectNeed] = []


class ParentPreferences(BaseModel):
    teaching_style: str = ""


class Parent(BaseModel):
    parent_id: str
    name: str = ""
    children: list[Child] = []
    preferences: ParentPreferences = ParentPreferences()
    location: Location = Location()


class RequestSubject(BaseModel):
    name: str = ""


class TutoringRequest(BaseModel):
    """A published tutoring request; ``parent`` is populated when known."""
    request_id: str
    parent_id: str = ""
    parent: Parent | None = None
    subject: RequestSubject = RequestSubject()
    grade: str = ""
    budget: Budget | None = None
    location: Location = Location()
    status: str = "published"

"""Pydantic contracts shared by the repository, the engine and the API."""

from models.schemas.artifact import ModelArtifact
from models.schemas.demand_profile import DemandProfile
from models.schemas.entities import Location, Parent, Tutor, TutoringRequest
from models.schemas.match import MatchRecord, MatchStatus

__all__ = [
    "ModelArtifact",
    "DemandProfile",
    "Location",
    "Parent",
    "Tutor",
    "TutoringRequest",
    "MatchRecord",
    "MatchStatus",
]

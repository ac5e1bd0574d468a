"""Normalized demand side of a match: a whole parent or a single request.

Parents (several children, several subjects each) and tutoring requests (one
subject, one grade, one budget) are scored by the same code. Both are folded
into a ``DemandProfile`` once, at the feature-extraction boundary.
"""

from typing import Literal

from pydantic import BaseModel

from models.schemas.entities import Budget, Location, Parent, TutoringRequest


class DemandProfile(BaseModel):
    demand_id: str
    kind: Literal["parent", "request"] = "parent"
    parent_id: str = ""
    child_count: int = 1
    # One entry per requested child subject, lowercased; budgets aligned with subjects
    subjects: list[str] = []
    budgets: list[Budget | None] = []
    # One entry per child, lowercased
    grades: list[str] = []
    teaching_style: str = ""
    location: Location = Location()

    @classmethod
    def from_parent(cls, parent: Parent) -> "DemandProfile":
        subjects: list[str] = []
        budgets: list[Budget | None] = []
        for child in parent.children:
            for need in child.subjects:
                subjects.append(need.name.strip().lower())
                budgets.append(need.budget)
        return cls(
            demand_id=parent.parent_id,
            kind="parent",
            parent_id=parent.parent_id,
            child_count=len(parent.children) or 1,
            subjects=subjects,
            budgets=budgets,
            grades=[c.grade.strip().lower() for c in parent.children if c.grade],
            teaching_style=parent.preferences.teaching_style,
            location=parent.location,
        )

    @classmethod
    def from_request(cls, request: TutoringRequest) -> "DemandProfile":
        parent = request.parent
        subject = request.subject.name.strip().lower()
        return cls(
            demand_id=request.request_id,
            kind="request",
            parent_id=request.parent_id or (parent.parent_id if parent else ""),
            child_count=(len(parent.children) or 1) if parent else 1,
            subjects=[subject] if subject else [],
            budgets=[request.budget] if subject else [],
            grades=[request.grade.strip().lower()] if request.grade else [],
            teaching_style=parent.preferences.teaching_style if parent else "",
            location=request.location,
        )

    def budget_range(self) -> tuple[float, float]:
        """Mean (min, max) over the subjects that carry a budget; (0, 0) if none do."""
        present = [b for b in self.budgets if b is not None]
        if not present:
            return 0.0, 0.0
        return (
            sum(b.min for b in present) / len(present),
            sum(b.max for b in present) / len(present),
        )

"""Error taxonomy of the matching engine.

The API layer maps these to HTTP status codes: NotFoundError -> 404,
InvalidInputError -> 400, UpstreamDataError -> 502. ArtifactIOError never
reaches a caller; it is logged and the engine falls back to rule scoring.
Too little training data is reported as a failed ``TrainingResult``, not raised.
"""


class MatchingError(Exception):
    """Base class for engine errors."""


class NotFoundError(MatchingError):
    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidInputError(MatchingError):
    """Rejected input: bad rating, unknown role, malformed coordinates."""


class ArtifactIOError(MatchingError):
    """A persisted model is missing, corrupt, or trained on another feature schema."""


class UpstreamDataError(MatchingError):
    """The candidate repository failed or timed out."""

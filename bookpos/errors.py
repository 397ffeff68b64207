from typing import Optional


class PosError(Exception):
    """Base class for failures scoped to a single user action."""


class NetworkFailure(PosError):
    """The shop server was unreachable or answered with a non-2xx status."""

    def __init__(self, message: str, status: Optional[int] = None, url: str = ""):
        super().__init__(message)
        self.status = status
        self.url = url


class NotFound(PosError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ValidationFailure(PosError):
    pass

"""Failure kinds raised by the stores, services and identity collaborators.

Only ``main`` turns these into HTTP responses.
"""

from typing import Optional


class ValidationError(ValueError):
    def __init__(self, field: Optional[str], message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class NotFound(LookupError):
    pass


class Conflict(ValueError):
    pass


class Unauthorized(PermissionError):
    pass


class Unavailable(RuntimeError):
    pass


class DatabaseUnavailable(Unavailable):
    def __init__(self, message: str = "Database unavailable") -> None:
        super().__init__(message)


class IdentityUnavailable(Unavailable):
    def __init__(self, message: str = "Authentication service not configured") -> None:
        super().__init__(message)


class RateProviderUnavailable(Unavailable):
    pass

"""
Domain Exceptions

Business-rule failures subclass ValueError and lookups subclass LookupError,
so the API layer can map them the same way it maps plain ValueError/LookupError.
"""

from typing import Optional

from goal_engine.domain.models import ValidationResult


class GoalEngineError(Exception):
    """Base class for goal engine errors"""


class AllocationValidationError(GoalEngineError, ValueError):
    """An allocation change would break a percentage or balance rule"""

    def __init__(self, result: ValidationResult):
        super().__init__(result.message)
        self.result = result

    @classmethod
    def from_message(cls, message: str) -> "AllocationValidationError":
        return cls(ValidationResult.failure(message))


class GoalValidationError(GoalEngineError, ValueError):
    """Goal is missing data an operation requires"""


class NotFoundError(GoalEngineError, LookupError):
    """Goal, allocation or version does not exist"""

    def __init__(self, kind: str, identifier: str, detail: Optional[str] = None):
        message = detail or f"{kind.capitalize()} not found: {identifier}"
        super().__init__(message)
        self.kind = kind
        self.identifier = identifier

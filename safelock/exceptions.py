from django.db import DatabaseError


class UnsupportedConditionKind(DatabaseError):
    """Raised when a safe write is given a condition that is not a plain SQL string."""

    def __init__(self, message: str, condition_type: str):
        super().__init__(message)
        self.condition_type = condition_type


class StaleObjectConflict(DatabaseError):
    """Raised when a version-checked write matched no row (someone else wrote first)."""

    def __init__(self, message: str, model: str | None = None, pk=None, expected_version: int | None = None):
        super().__init__(message)
        self.model = model
        self.pk = pk
        self.expected_version = expected_version

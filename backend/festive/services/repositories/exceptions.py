"""Repository-specific exceptions.

These separate expected data conflicts from general database errors.
"""


class RepositoryError(Exception):
    """Base exception for repository operations."""


class DuplicateError(RepositoryError):
    """Entity already exists (unique constraint violation)."""

    def __init__(self, entity_type: str, field: str, value: str):
        self.entity_type = entity_type
        self.field = field
        self.value = value
        super().__init__(f"{entity_type} with {field} already exists")

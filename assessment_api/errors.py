from __future__ import annotations


class NotFoundError(LookupError):
    """A referenced test, attempt, question or response does not exist."""

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"{resource} not found")


class UnsupportedDatabaseError(RuntimeError):
    """The configured database cannot run an operation; production runs on PostgreSQL."""

    def __init__(self, operation: str, dialect: str) -> None:
        self.operation = operation
        self.dialect = dialect
        super().__init__(f"{operation} needs PostgreSQL (or SQLite in tests), got {dialect}")

"""
Application exception types.

Driver exceptions never leave `core/db.py` unwrapped; everything callers see
derives from `AppError`.
"""

from __future__ import annotations

# PostgreSQL SQLSTATE codes we classify on.
UNIQUE_VIOLATION = "23505"
DUPLICATE_TABLE = "42P07"
DUPLICATE_OBJECT = "42710"


class AppError(RuntimeError):
    pass


class ConfigurationError(AppError):
    pass


class DatabaseError(AppError):
    pass


class DatabaseConnectionError(DatabaseError):
    """
    No pool has been created, or the server could not be reached.
    """


class QueryError(DatabaseError):
    """
    A statement failed on the server. `sqlstate` is the PostgreSQL error code
    when the driver reported one.
    """

    def __init__(self, message: str, *, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate

    @property
    def is_unique_violation(self) -> bool:
        return self.sqlstate == UNIQUE_VIOLATION


class UniqueViolationError(QueryError):
    def __init__(self, message: str, *, sqlstate: str | None = UNIQUE_VIOLATION) -> None:
        super().__init__(message, sqlstate=sqlstate)


class SchemaError(AppError):
    pass


class InitError(AppError):
    """
    Bootstrap failed. The original failure is chained as `__cause__`.
    """


class UnauthorizedError(AppError):
    pass

"""Error hierarchy for the package store.

Lookups that may legitimately find nothing return None; everything below is
a failure. Storage errors are re-raised with the operation that failed as the
message and the driver exception chained as __cause__.

    RepositoryError
    ├── StorageError
    │   └── IntegrityViolationError
    │       ├── UniqueViolationError
    │       └── ForeignKeyViolationError
    ├── AliasExhaustedError
    └── InvariantViolationError
"""
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

# PostgreSQL SQLSTATE codes
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"

_SQLITE_UNIQUE_ERRNAMES = ("SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY")
_SQLITE_UNIQUE_PREFIX = "UNIQUE constraint failed: "


class RepositoryError(Exception):
    """Base class for package store errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class StorageError(RepositoryError):
    """The storage engine rejected or failed an operation."""


class IntegrityViolationError(StorageError):
    pass


class UniqueViolationError(IntegrityViolationError):
    pass


class ForeignKeyViolationError(IntegrityViolationError):
    pass


class AliasExhaustedError(RepositoryError):
    """No free alias was found within the configured number of attempts."""


class InvariantViolationError(RepositoryError):
    """
    A lookup that must succeed did not, e.g. an app that lost a natural-key
    race cannot be read back. Indicates a defect or a corrupted store rather
    than a caller error.
    """


def _sqlstate(orig: Any) -> Optional[str]:
    # asyncpg errors reach us wrapped by SQLAlchemy's DBAPI adapter
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return code
    return None


def _constraint_name(orig: Any) -> Optional[str]:
    for candidate in (orig, getattr(orig, "__cause__", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return name
    return None


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = _sqlstate(orig)
    if code is not None:
        return code == UNIQUE_VIOLATION
    errname = getattr(orig, "sqlite_errorname", None)
    if errname in _SQLITE_UNIQUE_ERRNAMES:
        return True
    if errname not in (None, "SQLITE_CONSTRAINT"):
        return False
    # no extended result code available
    return str(orig).startswith(_SQLITE_UNIQUE_PREFIX)


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = _sqlstate(orig)
    if code is not None:
        return code == FOREIGN_KEY_VIOLATION
    errname = getattr(orig, "sqlite_errorname", None)
    if errname == "SQLITE_CONSTRAINT_FOREIGNKEY":
        return True
    if errname not in (None, "SQLITE_CONSTRAINT"):
        return False
    return "FOREIGN KEY constraint failed" in str(orig)


def violates_unique(exc: IntegrityError, constraint: str, columns: Iterable[str]) -> bool:
    """
    True when exc is a unique violation of exactly this constraint.

    PostgreSQL reports the constraint name; SQLite only lists the offending
    ``table.column`` names, so both forms are checked.
    """
    if not is_unique_violation(exc):
        return False
    orig = exc.orig
    name = _constraint_name(orig)
    if name is not None:
        return name == constraint
    message = str(orig)
    if f'"{constraint}"' in message:
        return True
    if message.startswith(_SQLITE_UNIQUE_PREFIX):
        failed = {col.strip() for col in message[len(_SQLITE_UNIQUE_PREFIX):].split(",")}
        return failed == set(columns)
    return False


def translate_integrity_error(exc: IntegrityError, operation: str, **context: Any) -> IntegrityViolationError:
    context["detail"] = str(exc.orig)
    if is_unique_violation(exc):
        return UniqueViolationError(operation, context)
    if is_foreign_key_violation(exc):
        return ForeignKeyViolationError(operation, context)
    return IntegrityViolationError(operation, context)


@contextmanager
def storage_errors(operation: str, **context: Any) -> Iterator[None]:
    """Re-raise SQLAlchemy errors from the wrapped block as RepositoryErrors."""
    try:
        yield
    except IntegrityError as exc:
        raise translate_integrity_error(exc, operation, **context) from exc
    except SQLAlchemyError as exc:
        context["detail"] = str(exc)
        raise StorageError(operation, context) from exc

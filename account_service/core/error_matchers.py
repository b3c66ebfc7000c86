"""Declarative storage error matchers.

An ErrorMatcher pairs a predicate over a raw SQLAlchemy error with a factory
for the domain error that should replace it. Call sites pass an ordered list
of matchers to ``Connection.execute()``; the first matching predicate wins and
anything unmatched becomes an UnexpectedStorageError.

Usage:
    await conn.execute(
        stmt,
        error_matchers=[
            ErrorMatcher(
                unique_violation("uq_credentials_email", "credentials.email"),
                lambda: DuplicateEmailError(email),
            ),
        ],
    )

Predicates understand both PostgreSQL (SQLSTATE on the driver error) and
SQLite (extended result code, falling back to the message prefix), so the
domain layer never sees driver exception types or error codes.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from account_service.core.errors import AccountError

__all__ = [
    "ErrorMatcher",
    "Predicate",
    "any_of",
    "check_violation",
    "find_matching_error",
    "message_of",
    "not_null_violation",
    "sqlstate_of",
    "string_truncation",
    "unique_violation",
]

# SQLSTATE codes (integrity constraint violation class 23, data exception 22)
UNIQUE_VIOLATION = "23505"
CHECK_VIOLATION = "23514"
NOT_NULL_VIOLATION = "23502"
FOREIGN_KEY_VIOLATION = "23503"
STRING_DATA_RIGHT_TRUNCATION = "22001"

# SQLite extended result codes mapped onto SQLSTATE
_SQLITE_ERRORCODES: dict[int, str] = {
    275: CHECK_VIOLATION,  # SQLITE_CONSTRAINT_CHECK
    787: FOREIGN_KEY_VIOLATION,  # SQLITE_CONSTRAINT_FOREIGNKEY
    1299: NOT_NULL_VIOLATION,  # SQLITE_CONSTRAINT_NOTNULL
    1555: UNIQUE_VIOLATION,  # SQLITE_CONSTRAINT_PRIMARYKEY
    2067: UNIQUE_VIOLATION,  # SQLITE_CONSTRAINT_UNIQUE
}

# Older sqlite3 modules do not expose sqlite_errorcode
_SQLITE_MESSAGE_PREFIXES: dict[str, str] = {
    "CHECK constraint failed": CHECK_VIOLATION,
    "FOREIGN KEY constraint failed": FOREIGN_KEY_VIOLATION,
    "NOT NULL constraint failed": NOT_NULL_VIOLATION,
    "UNIQUE constraint failed": UNIQUE_VIOLATION,
}

Predicate = Callable[[SQLAlchemyError], bool]


@dataclass(frozen=True)
class ErrorMatcher:
    """Maps a raw storage error onto a domain error.

    Attributes:
        predicate: Returns True if the raw error is the expected one.
        error: Builds the domain error to raise instead.
    """

    predicate: Predicate
    error: Callable[[], AccountError]


def message_of(exc: SQLAlchemyError) -> str:
    """Driver-level message of a wrapped storage error."""
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def sqlstate_of(exc: SQLAlchemyError) -> str | None:
    """Normalized SQLSTATE of a wrapped storage error.

    Args:
        exc: Error raised by SQLAlchemy.

    Returns:
        Five-character SQLSTATE, or None if the driver reported nothing
        recognisable.
    """
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None

    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)

    errorcode = getattr(orig, "sqlite_errorcode", None)
    if errorcode in _SQLITE_ERRORCODES:
        return _SQLITE_ERRORCODES[errorcode]

    message = str(orig)
    for prefix, sqlstate in _SQLITE_MESSAGE_PREFIXES.items():
        if message.startswith(prefix):
            return sqlstate
    return None


def _violation(sqlstate: str, names: tuple[str, ...]) -> Predicate:
    def predicate(exc: SQLAlchemyError) -> bool:
        if sqlstate_of(exc) != sqlstate:
            return False
        if not names:
            return True
        message = message_of(exc)
        return any(name in message for name in names)

    return predicate


def unique_violation(*names: str) -> Predicate:
    """Match a unique constraint violation.

    Args:
        *names: Constraint names (PostgreSQL reports these) or
            ``table.column`` pairs (SQLite reports these). Any one appearing in
            the driver message is enough. No names matches every violation.
    """
    return _violation(UNIQUE_VIOLATION, names)


def check_violation(*names: str) -> Predicate:
    """Match a CHECK constraint violation by constraint name."""
    return _violation(CHECK_VIOLATION, names)


def not_null_violation(*names: str) -> Predicate:
    """Match a NOT NULL violation by column name."""
    return _violation(NOT_NULL_VIOLATION, names)


def string_truncation() -> Predicate:
    """Match a value too long for its column.

    Only PostgreSQL enforces VARCHAR lengths; SQLite never raises this.
    """
    return _violation(STRING_DATA_RIGHT_TRUNCATION, ())


def any_of(*predicates: Predicate) -> Predicate:
    """Combine predicates; matches if any of them matches."""

    def predicate(exc: SQLAlchemyError) -> bool:
        return any(p(exc) for p in predicates)

    return predicate


def find_matching_error(
    exc: SQLAlchemyError,
    matchers: Sequence[ErrorMatcher],
) -> AccountError | None:
    """Evaluate matchers in order, first match wins.

    Args:
        exc: Raw storage error.
        matchers: Ordered matchers declared by the call site.

    Returns:
        The domain error of the first matching matcher, or None.
    """
    for matcher in matchers:
        if matcher.predicate(exc):
            return matcher.error()
    return None

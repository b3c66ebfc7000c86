"""Tests for storage error matchers.

Driver errors are simulated: PostgreSQL drivers expose ``sqlstate``/``pgcode``,
sqlite3 exposes ``sqlite_errorcode`` or only a message.
"""

from sqlalchemy.exc import DataError, IntegrityError, OperationalError

from account_service.core.error_matchers import (
    CHECK_VIOLATION,
    NOT_NULL_VIOLATION,
    STRING_DATA_RIGHT_TRUNCATION,
    UNIQUE_VIOLATION,
    ErrorMatcher,
    any_of,
    check_violation,
    find_matching_error,
    message_of,
    not_null_violation,
    sqlstate_of,
    string_truncation,
    unique_violation,
)
from account_service.core.errors import DuplicateEmailError, InvalidEmailError


class _AsyncpgError(Exception):
    def __init__(self, message: str, sqlstate: str) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


class _PsycopgError(Exception):
    def __init__(self, message: str, pgcode: str) -> None:
        super().__init__(message)
        self.pgcode = pgcode


class _SqliteError(Exception):
    def __init__(self, message: str, errorcode: int | None = None) -> None:
        super().__init__(message)
        if errorcode is not None:
            self.sqlite_errorcode = errorcode


def _integrity(orig: Exception) -> IntegrityError:
    return IntegrityError("INSERT INTO credentials ...", {}, orig)


_PG_DUPLICATE_EMAIL = _integrity(
    _AsyncpgError(
        'duplicate key value violates unique constraint "uq_credentials_email"',
        UNIQUE_VIOLATION,
    )
)
_SQLITE_DUPLICATE_EMAIL = _integrity(
    _SqliteError("UNIQUE constraint failed: credentials.email")
)


class TestSqlstateOf:
    """Test sqlstate_of() normalization."""

    def test_reads_asyncpg_sqlstate(self):
        assert sqlstate_of(_PG_DUPLICATE_EMAIL) == UNIQUE_VIOLATION

    def test_reads_psycopg_pgcode(self):
        exc = _integrity(_PsycopgError("violates check constraint", CHECK_VIOLATION))
        assert sqlstate_of(exc) == CHECK_VIOLATION

    def test_maps_sqlite_extended_errorcode(self):
        exc = _integrity(_SqliteError("NOT NULL constraint failed: x.y", 1299))
        assert sqlstate_of(exc) == NOT_NULL_VIOLATION

    def test_falls_back_to_sqlite_message_prefix(self):
        assert sqlstate_of(_SQLITE_DUPLICATE_EMAIL) == UNIQUE_VIOLATION

    def test_returns_none_for_unrecognised_error(self):
        exc = OperationalError("SELECT 1", {}, _SqliteError("no such table: x"))
        assert sqlstate_of(exc) is None

    def test_returns_none_without_driver_error(self):
        exc = IntegrityError("SELECT 1", {}, None)  # type: ignore[arg-type]
        assert sqlstate_of(exc) is None


class TestMessageOf:
    """Test message_of()."""

    def test_uses_driver_message(self):
        assert message_of(_SQLITE_DUPLICATE_EMAIL) == (
            "UNIQUE constraint failed: credentials.email"
        )


class TestPredicates:
    """Test the violation predicates."""

    def test_unique_violation_matches_postgres_constraint_name(self):
        assert unique_violation("uq_credentials_email")(_PG_DUPLICATE_EMAIL)

    def test_unique_violation_matches_sqlite_column(self):
        assert unique_violation("credentials.email")(_SQLITE_DUPLICATE_EMAIL)

    def test_unique_violation_rejects_other_constraint(self):
        assert not unique_violation("uq_accounts_change_token")(_PG_DUPLICATE_EMAIL)

    def test_unique_violation_without_names_matches_any(self):
        assert unique_violation()(_SQLITE_DUPLICATE_EMAIL)

    def test_check_violation_does_not_match_unique(self):
        assert not check_violation()(_PG_DUPLICATE_EMAIL)

    def test_check_violation_matches_sqlite_constraint_name(self):
        exc = _integrity(
            _SqliteError("CHECK constraint failed: ck_accounts_nickname_format")
        )
        assert check_violation("ck_accounts_nickname_format")(exc)
        assert not check_violation("ck_credentials_email_format")(exc)

    def test_not_null_violation(self):
        exc = _integrity(_AsyncpgError('null value in column "email"', "23502"))
        assert not_null_violation("email")(exc)

    def test_string_truncation(self):
        exc = DataError(
            "UPDATE accounts ...",
            {},
            _AsyncpgError(
                "value too long for type character varying(32)",
                STRING_DATA_RIGHT_TRUNCATION,
            ),
        )
        assert string_truncation()(exc)
        assert not string_truncation()(_PG_DUPLICATE_EMAIL)

    def test_any_of(self):
        predicate = any_of(check_violation(), unique_violation())
        assert predicate(_PG_DUPLICATE_EMAIL)
        assert not any_of(check_violation(), string_truncation())(_PG_DUPLICATE_EMAIL)


class TestFindMatchingError:
    """Test find_matching_error() ordering."""

    def test_first_match_wins(self):
        matchers = [
            ErrorMatcher(unique_violation(), lambda: InvalidEmailError("x")),
            ErrorMatcher(unique_violation(), lambda: DuplicateEmailError("x")),
        ]
        error = find_matching_error(_PG_DUPLICATE_EMAIL, matchers)
        assert isinstance(error, InvalidEmailError)

    def test_skips_non_matching(self):
        matchers = [
            ErrorMatcher(check_violation(), lambda: InvalidEmailError("x")),
            ErrorMatcher(unique_violation(), lambda: DuplicateEmailError("x")),
        ]
        error = find_matching_error(_PG_DUPLICATE_EMAIL, matchers)
        assert isinstance(error, DuplicateEmailError)

    def test_returns_none_when_nothing_matches(self):
        matchers = [ErrorMatcher(check_violation(), lambda: InvalidEmailError("x"))]
        assert find_matching_error(_PG_DUPLICATE_EMAIL, matchers) is None

    def test_builds_a_fresh_error_per_match(self):
        matcher = ErrorMatcher(unique_violation(), lambda: DuplicateEmailError("x"))
        first = find_matching_error(_PG_DUPLICATE_EMAIL, [matcher])
        second = find_matching_error(_PG_DUPLICATE_EMAIL, [matcher])
        assert first is not second

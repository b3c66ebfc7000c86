"""Tests for partial row views."""

from datetime import UTC, datetime

import pytest

from account_service.core.errors import FieldNotQueriedError
from account_service.repositories.account_repository import AccountField, AccountView
from account_service.repositories.projection import as_utc


class TestAsUtc:
    """Test as_utc()."""

    def test_attaches_utc_to_naive_datetime(self):
        value = as_utc(datetime(2030, 1, 1, 12, 0))
        assert value == datetime(2030, 1, 1, 12, 0, tzinfo=UTC)

    def test_keeps_aware_datetime(self):
        aware = datetime(2030, 1, 1, tzinfo=UTC)
        assert as_utc(aware) is aware

    def test_passes_other_values_through(self):
        assert as_utc("tester1") == "tester1"
        assert as_utc(None) is None


class TestFieldView:
    """Test FieldView attribute access."""

    def test_reads_queried_fields(self):
        view = AccountView.from_row(
            {"nickname": "tester1", "verified": False, "id": 1},
            [AccountField.NICKNAME, AccountField.VERIFIED],
        )
        assert view.nickname == "tester1"
        assert view.verified is False
        assert view.queried == frozenset({"nickname", "verified"})

    def test_unqueried_field_raises(self):
        view = AccountView({"nickname": "tester1"})
        with pytest.raises(FieldNotQueriedError) as exc_info:
            _ = view.change_token
        assert exc_info.value.field == "change_token"

    def test_unqueried_field_is_an_attribute_error(self):
        view = AccountView({})
        assert not hasattr(view, "nickname")
        assert getattr(view, "nickname", "default") == "default"

    def test_unknown_attribute_raises_plain_attribute_error(self):
        view = AccountView({"nickname": "tester1"})
        with pytest.raises(AttributeError) as exc_info:
            _ = view.no_such_field
        assert not isinstance(exc_info.value, FieldNotQueriedError)

    def test_none_value_is_returned_not_defaulted(self):
        view = AccountView({"change_token": None})
        assert view.change_token is None

    def test_naive_datetimes_are_normalized(self):
        view = AccountView({"change_expiry": datetime(2030, 1, 1)})
        assert view.change_expiry.tzinfo is UTC

    def test_contains_accepts_enum_or_name(self):
        view = AccountView({"nickname": "tester1"})
        assert AccountField.NICKNAME in view
        assert "nickname" in view
        assert AccountField.VERIFIED not in view

    def test_equality_and_dict(self):
        first = AccountView({"nickname": "tester1"})
        second = AccountView({"nickname": "tester1"})
        assert first == second
        assert first.as_dict() == {"nickname": "tester1"}
        assert repr(first) == "AccountView(nickname='tester1')"

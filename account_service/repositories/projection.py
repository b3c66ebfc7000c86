"""Partial row views returned by field-subset queries.

Repositories let callers request only the columns they need. The returned
view holds exactly those values: reading a field that was not requested
raises FieldNotQueriedError instead of returning a default.
"""

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

from account_service.core.errors import FieldNotQueriedError


def as_utc(value: Any) -> Any:
    """Attach UTC to naive datetimes (SQLite drops the offset on storage).

    All timestamps are written as UTC, so a naive value read back is UTC.
    Non-datetime values are returned unchanged.
    """
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class FieldView:
    """Read-only attribute view over a subset of a row.

    Subclasses set ``field_type`` to the Enum of queryable fields; enum
    values are the attribute names.
    """

    __slots__ = ("_values",)

    field_type: ClassVar[type[Enum]]

    def __init__(self, values: Mapping[str, Any]) -> None:
        self._values = {name: as_utc(value) for name, value in values.items()}

    @classmethod
    def from_row(cls, row: Mapping[str, Any], fields: Iterable[Enum]) -> "FieldView":
        """Build a view from a result row keeping only the requested fields."""
        return cls({field.value: row[field.value] for field in fields})

    @property
    def queried(self) -> frozenset[str]:
        """Names of the fields present in this view."""
        return frozenset(self._values)

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails, i.e. for row fields
        if name.startswith("_"):
            raise AttributeError(name)
        if name in self._values:
            return self._values[name]
        if name in {field.value for field in self.field_type}:
            raise FieldNotQueriedError(name)
        raise AttributeError(f"{type(self).__name__} has no field '{name}'")

    def __contains__(self, field: object) -> bool:
        if isinstance(field, Enum):
            field = field.value
        return field in self._values

    def as_dict(self) -> dict[str, Any]:
        """Copy of the queried values keyed by field name."""
        return dict(self._values)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._values == other._values  # type: ignore[attr-defined]

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in sorted(self._values.items()))
        return f"{type(self).__name__}({fields})"

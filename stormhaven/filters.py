"""Search filter compilation.

Search endpoints receive loosely-typed query-string values. This module turns
them into a conjunction of tagged predicates:

- Unconstrained: the parameter was absent or blank, so it matches every row
- ExactMatch: equality against a parsed value
- RangeMatch: inclusive bounds, each side defaulting on its own
- SubstringMatch: case-insensitive containment, matched literally

Predicates are lowered to SQLAlchemy expressions only at the query boundary
(`CompiledFilter.where`). User input therefore always travels as bound
parameters and never as query text.
"""

import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy import and_, true
from sqlalchemy.sql.elements import ColumnElement


class FilterValidationError(ValueError):
    """A search parameter could not be parsed into the type its field needs."""

    def __init__(self, field: str, value: str, detail: str):
        self.field = field
        self.value = value
        self.detail = detail
        super().__init__(f"{field}={value!r}: {detail}")


# =============================================================================
# Predicates
# =============================================================================


@dataclass(frozen=True)
class Unconstrained:
    field: str


@dataclass(frozen=True)
class ExactMatch:
    field: str
    value: Any


@dataclass(frozen=True)
class RangeMatch:
    field: str
    low: Any
    high: Any


@dataclass(frozen=True)
class SubstringMatch:
    field: str
    text: str


Predicate = Unconstrained | ExactMatch | RangeMatch | SubstringMatch


def lower_predicate(predicate: Predicate, column: ColumnElement) -> ColumnElement:
    """Translate one predicate into a bound SQLAlchemy expression on `column`."""
    if isinstance(predicate, Unconstrained):
        return true()
    if isinstance(predicate, ExactMatch):
        return column == predicate.value
    if isinstance(predicate, RangeMatch):
        return column.between(predicate.low, predicate.high)
    if isinstance(predicate, SubstringMatch):
        # icontains binds the text and escapes % and _ so they match literally
        return column.icontains(predicate.text, autoescape=True)
    raise TypeError(f"Unknown predicate: {predicate!r}")


@dataclass(frozen=True)
class CompiledFilter:
    """An ordered conjunction of predicates, one per declared field."""

    predicates: tuple[Predicate, ...]

    def __getitem__(self, field: str) -> Predicate:
        for predicate in self.predicates:
            if predicate.field == field:
                return predicate
        raise KeyError(field)

    @property
    def constrained(self) -> tuple[Predicate, ...]:
        return tuple(p for p in self.predicates if not isinstance(p, Unconstrained))

    def clauses(self, columns: Mapping[str, ColumnElement]) -> list[ColumnElement]:
        return [lower_predicate(p, columns[p.field]) for p in self.predicates]

    def where(self, columns: Mapping[str, ColumnElement]) -> ColumnElement:
        """Lower every predicate against `columns` and join them with AND."""
        return and_(*self.clauses(columns))


# =============================================================================
# Value parsing
# =============================================================================

# ASCII digits only: no "1_000", no fullwidth or other Unicode digits
_INTEGER = re.compile(r"[+-]?[0-9]+")
_NUMBER = re.compile(r"[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?")
_DATE_ONLY = re.compile(r"\d{4}-\d{2}-\d{2}")


def is_blank(raw: str | None) -> bool:
    """Absent and empty parameters both mean "no constraint"."""
    return raw is None or str(raw).strip() == ""


def parse_text(field: str, raw: str) -> str:
    return raw.strip()


def parse_int(field: str, raw: str) -> int:
    text = raw.strip()
    if not _INTEGER.fullmatch(text):
        raise FilterValidationError(field, raw, "expected an integer")
    return int(text)


def parse_number(field: str, raw: str) -> float:
    text = raw.strip()
    if not _NUMBER.fullmatch(text):
        raise FilterValidationError(field, raw, "expected a number")
    value = float(text)
    # "1e999" overflows to inf
    if not math.isfinite(value):
        raise FilterValidationError(field, raw, "expected a finite number")
    return value


def parse_datetime(field: str, raw: str, upper: bool = False) -> datetime:
    """Parse an ISO-8601 date or date-time into a naive UTC datetime.

    A bare date covers the whole day: the lower bound of a range starts at
    midnight and the upper bound ends at the last microsecond of the day.
    """
    text = raw.strip()
    if _DATE_ONLY.fullmatch(text):
        try:
            day = date.fromisoformat(text)
        except ValueError:
            raise FilterValidationError(field, raw, "expected an ISO-8601 date") from None
        return datetime.combine(day, time.max if upper else time.min)

    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        raise FilterValidationError(field, raw, "expected an ISO-8601 date-time") from None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# =============================================================================
# Field declarations
# =============================================================================


@dataclass(frozen=True)
class ExactField:
    name: str
    parse: Callable[[str, str], Any] = parse_text

    def compile(self, params: Mapping[str, str | None]) -> Predicate:
        raw = params.get(self.name)
        if is_blank(raw):
            return Unconstrained(self.name)
        return ExactMatch(self.name, self.parse(self.name, raw))


@dataclass(frozen=True)
class SubstringField:
    name: str

    def compile(self, params: Mapping[str, str | None]) -> Predicate:
        raw = params.get(self.name)
        if is_blank(raw):
            return Unconstrained(self.name)
        return SubstringMatch(self.name, raw.strip())


@dataclass(frozen=True)
class RangeField:
    """An inclusive range read from `<name>_low` and `<name>_high`."""

    name: str
    default_low: Any
    default_high: Any
    parse: Callable[[str, str, bool], Any]

    @property
    def low_param(self) -> str:
        return f"{self.name}_low"

    @property
    def high_param(self) -> str:
        return f"{self.name}_high"

    def compile(self, params: Mapping[str, str | None]) -> Predicate:
        raw_low = params.get(self.low_param)
        raw_high = params.get(self.high_param)
        low = self.default_low if is_blank(raw_low) else self.parse(self.low_param, raw_low, False)
        high = self.default_high if is_blank(raw_high) else self.parse(self.high_param, raw_high, True)
        return RangeMatch(self.name, low, high)


def _number_bound(field: str, raw: str, upper: bool) -> float:
    return parse_number(field, raw)


SearchField = ExactField | SubstringField | RangeField


def compile_filters(params: Mapping[str, str | None], fields: Sequence[SearchField]) -> CompiledFilter:
    """Compile `params` against the declared `fields`.

    Parameters not declared in `fields` are ignored. Raises
    `FilterValidationError` for the first value that fails to parse.
    """
    return CompiledFilter(tuple(field.compile(params) for field in fields))


PROPERTY_SEARCH_FIELDS: tuple[SearchField, ...] = (
    ExactField("property_id", parse_int),
    SubstringField("state"),
    SubstringField("county_name"),
    SubstringField("status"),
    RangeField("price", 0, 10_000_000_000, _number_bound),
    RangeField("bathrooms", 0, 100, _number_bound),
    RangeField("bedrooms", 0, 1000, _number_bound),
    RangeField("acres", 0, 10_000, _number_bound),
)

DISASTER_SEARCH_FIELDS: tuple[SearchField, ...] = (
    ExactField("disaster_id", parse_int),
    ExactField("disasternumber", parse_int),
    ExactField("type_code"),
    SubstringField("county_name"),
    RangeField(
        "designateddate",
        datetime(1000, 1, 1),
        datetime(3000, 1, 1),
        parse_datetime,
    ),
)

PROPERTY_DISASTER_FIELDS: tuple[SearchField, ...] = (
    ExactField("property_id", parse_int),
)


def compile_property_search(params: Mapping[str, str | None]) -> CompiledFilter:
    return compile_filters(params, PROPERTY_SEARCH_FIELDS)


def compile_disaster_search(params: Mapping[str, str | None]) -> CompiledFilter:
    return compile_filters(params, DISASTER_SEARCH_FIELDS)


def compile_property_disasters(params: Mapping[str, str | None]) -> CompiledFilter:
    return compile_filters(params, PROPERTY_DISASTER_FIELDS)

"""Filter classification and canonical serialization.

A filter is added to a function call as ``(name, value)``.  The name
decides the kind:

* ``search``          → list of ``SearchClause`` objects
* ``ondemandcolumns`` → list of column names (strings)
* ``show``            → namespaced to the owning function (``Product_Show``)
* anything else       → generic, value passed through untouched

Every kind serializes to ``{"name": ..., "value": ...}``.
"""

from __future__ import annotations

import numbers
from collections.abc import Mapping, Sized
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from protocol.exceptions import InvalidValueError, MissingRequiredValueError

# Operators whose clause may omit ``value``.
NULL_OPERATORS = frozenset({"TRUE", "FALSE", "NULL"})

# Operator whose value is itself a list of clauses.
SUBWHERE_OPERATOR = "SUBWHERE"

ShowNamer = Callable[[str], str]


class FilterKind(Enum):
    GENERIC = "generic"
    SEARCH = "search"
    ON_DEMAND_COLUMNS = "ondemandcolumns"
    SHOW = "show"


@dataclass(frozen=True, slots=True)
class SearchClause:
    """``{field, operator, value?}``: one condition of a search filter."""

    field: str
    operator: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"field": self.field, "operator": self.operator}
        if self.value is not None:
            if isinstance(self.value, tuple) and all(
                isinstance(v, SearchClause) for v in self.value
            ):
                d["value"] = [v.to_dict() for v in self.value]
            else:
                d["value"] = self.value
        return d


@dataclass(frozen=True, slots=True)
class Filter:
    """A normalized filter.  Build with :func:`classify`."""

    kind: FilterKind
    name: str
    value: Any

    def to_dict(self) -> dict[str, Any]:
        if self.kind is FilterKind.SEARCH:
            value: Any = [clause.to_dict() for clause in self.value]
        elif self.kind is FilterKind.ON_DEMAND_COLUMNS:
            value = list(self.value)
        else:
            value = self.value
        return {"name": self.name, "value": value}


# ── Helpers ──────────────────────────────────────────────────────────


def is_blank(value: Any) -> bool:
    """Blank = None, whitespace-only string or empty container.

    Booleans and numbers are never blank.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (bool, numbers.Number)):
        return False
    if isinstance(value, Sized):
        return len(value) == 0
    return not value


def show_filter_name(function_name: str) -> str:
    """``ProductList_Load_Query`` → ``Product_Show``.

    Names without ``List_`` are suffixed as a whole.
    """
    prefix, sep, _ = function_name.partition("List_")
    base = prefix if sep and prefix else function_name
    return f"{base}_Show"


def _is_set(raw: Mapping, key: str) -> bool:
    return raw.get(key) is not None


def _search_clause(raw: Any) -> SearchClause:
    if not isinstance(raw, Mapping):
        raise InvalidValueError("Search filter clauses must be objects.")
    if not _is_set(raw, "field"):
        raise MissingRequiredValueError('Missing required filter property "field".')
    if not _is_set(raw, "operator"):
        raise MissingRequiredValueError('Missing required filter property "operator".')

    operator = str(raw["operator"])
    value = raw.get("value")
    if value is None and operator.upper() not in NULL_OPERATORS:
        raise MissingRequiredValueError('Missing required filter property "value".')

    if operator.upper() == SUBWHERE_OPERATOR and value is not None:
        value = tuple(_search_clause(sub) for sub in _clause_list(value))

    return SearchClause(field=str(raw["field"]), operator=operator, value=value)


def _clause_list(value: Any) -> list[Any]:
    if isinstance(value, Mapping):
        # An associative value without a ``0`` key is one clause.
        if 0 in value:
            return list(value.values())
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    raise MissingRequiredValueError("Search filter value must be an array.")


def _column_list(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, Mapping):
        return tuple(str(v) for v in value.values())
    try:
        return tuple(str(v) for v in value)
    except TypeError:
        return (str(value),)


# ── Classification ───────────────────────────────────────────────────


def classify(
    name: str,
    value: Any,
    owner_function: str | None = None,
    show_namer: ShowNamer = show_filter_name,
) -> Filter:
    """Validate ``(name, value)`` and return its normalized ``Filter``.

    Raises ``InvalidValueError`` for a blank name or value and
    ``MissingRequiredValueError`` for incomplete search clauses or a
    ``show`` filter without an owning function.
    """
    name = (name or "").strip()
    if name == "":
        raise InvalidValueError('Invalid value provided for "name".')
    if is_blank(value):
        raise InvalidValueError('Invalid value provided for "value".')

    kind_key = name.lower()

    if kind_key == FilterKind.SEARCH.value:
        clauses = tuple(_search_clause(c) for c in _clause_list(value))
        return Filter(FilterKind.SEARCH, name, clauses)

    if kind_key == FilterKind.ON_DEMAND_COLUMNS.value:
        return Filter(FilterKind.ON_DEMAND_COLUMNS, name, _column_list(value))

    if kind_key == FilterKind.SHOW.value:
        if not owner_function:
            raise MissingRequiredValueError("Function name is required for show filters.")
        return Filter(FilterKind.SHOW, show_namer(owner_function), value)

    return Filter(FilterKind.GENERIC, name, value)

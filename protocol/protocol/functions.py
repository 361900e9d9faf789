"""One named remote function invocation."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from protocol.exceptions import InvalidValueError
from protocol.filters import Filter, ShowNamer, classify, show_filter_name

PASSPHRASE_PARAM = "Passphrase"

# Envelope and per-call keys a parameter may not overwrite.
RESERVED_PARAMS = frozenset({
    "Store_Code",
    "Miva_Request_Timestamp",
    "Function",
    "Iterations",
    "Operations",
    "Count",
    "Offset",
    "Sort",
    "Filter",
})


def _non_negative_int(label: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidValueError(f'"{label}" must be a non-negative integer.')
    return value


class FunctionCall:
    """Builder for one function call: count/offset/sort, filters, params.

    Setters return ``self`` so calls can be chained::

        call = (
            FunctionCall("ProductList_Load_Query")
            .set_count(10)
            .add_filter("search", {"field": "code", "operator": "EQ", "value": "SKU"})
        )

    ``show_namer`` controls the name a ``show`` filter is emitted under.
    """

    def __init__(self, name: str, show_namer: ShowNamer = show_filter_name) -> None:
        name = (name or "").strip()
        if name == "":
            raise InvalidValueError("Function name must not be blank.")
        self.name = name
        self.count: int | None = None
        self.offset: int | None = None
        self.sort: str | None = None
        self._show_namer = show_namer
        self._params: dict[str, Any] = {}
        self._filters: list[Filter] = []

    # -- Scalar fields -------------------------------------------------
    def set_count(self, count: int) -> "FunctionCall":
        self.count = _non_negative_int("Count", count)
        return self

    def set_offset(self, offset: int) -> "FunctionCall":
        self.offset = _non_negative_int("Offset", offset)
        return self

    def set_sort(self, sort: str) -> "FunctionCall":
        self.sort = str(sort)
        return self

    def set_param(self, name: str, value: Any) -> "FunctionCall":
        key = (name or "").strip()
        if key == "":
            raise InvalidValueError("Parameter name must not be blank.")
        if key in RESERVED_PARAMS:
            raise InvalidValueError(f'"{key}" is reserved and cannot be set as a parameter.')
        self._params[key] = value
        return self

    def set_params(self, params: Mapping[str, Any]) -> "FunctionCall":
        for key, value in params.items():
            self.set_param(key, value)
        return self

    def set_passphrase(self, passphrase: str) -> "FunctionCall":
        return self.set_param(PASSPHRASE_PARAM, passphrase)

    # -- Filters -------------------------------------------------------
    def add_filter(self, name: str, value: Any) -> "FunctionCall":
        self._filters.append(classify(name, value, self.name, self._show_namer))
        return self

    def add_filters(self, filters: Mapping[str, Any]) -> "FunctionCall":
        for name, value in filters.items():
            self.add_filter(name, value)
        return self

    def add_on_demand_columns(self, columns: Iterable[str]) -> "FunctionCall":
        return self.add_filter("ondemandcolumns", list(columns))

    # -- Introspection -------------------------------------------------
    @property
    def filters(self) -> tuple[Filter, ...]:
        return tuple(self._filters)

    @property
    def params(self) -> dict[str, Any]:
        return dict(self._params)

    # -- Serialization -------------------------------------------------
    def to_dict(self, include_function: bool = True) -> dict[str, Any]:
        """Per-call JSON fragment.  Unset fields are omitted."""
        d: dict[str, Any] = {}
        if include_function:
            d["Function"] = self.name
        if self.count is not None:
            d["Count"] = self.count
        if self.offset is not None:
            d["Offset"] = self.offset
        if self.sort is not None:
            d["Sort"] = self.sort
        if self._filters:
            d["Filter"] = [f.to_dict() for f in self._filters]
        d.update(self._params)
        return d

    def __repr__(self) -> str:
        return f"FunctionCall({self.name!r}, filters={len(self._filters)}, params={list(self._params)})"

"""Error value objects collected while decoding a response."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator


@dataclass(frozen=True, slots=True)
class FieldError:
    """One entry of a result's ``error_fields`` list."""

    field: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"error_field": self.field, "error_message": self.message}


@dataclass(frozen=True, slots=True)
class ErrorEntry:
    """A single failed result, tagged with the function/index it came from."""

    code: str
    message: str
    field: str | None = None
    field_message: str | None = None
    is_validation_error: bool = False
    has_input_errors: bool = False
    field_errors: tuple[FieldError, ...] = ()
    function_name: str | None = None
    index: int | None = None

    def matches_field(self, name: str) -> bool:
        """True if *name* is the top-level field or any nested field error."""
        wanted = name.lower()
        if self.field is not None and self.field.lower() == wanted:
            return True
        return any(
            fe.field is not None and fe.field.lower() == wanted
            for fe in self.field_errors
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "field": self.field,
            "field_message": self.field_message,
            "validation_error": self.is_validation_error,
            "input_errors": self.has_input_errors,
            "error_fields": [fe.to_dict() for fe in self.field_errors],
            "function": self.function_name,
            "index": self.index,
        }


class ErrorCollection:
    """Order-preserving, append-only list of ``ErrorEntry`` values."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[ErrorEntry] = ()) -> None:
        self._entries = list(entries)

    # -- Mutation (append only) ----------------------------------------
    def append(self, entry: ErrorEntry) -> None:
        self._entries.append(entry)

    def merge(self, other: "ErrorCollection") -> "ErrorCollection":
        """Return a new collection: ``self`` followed by ``other``, no dedup."""
        return ErrorCollection([*self._entries, *other._entries])

    # -- Queries -------------------------------------------------------
    def has(self) -> bool:
        return bool(self._entries)

    def all(self) -> list[ErrorEntry]:
        return list(self._entries)

    def messages(self) -> list[str]:
        return [e.message for e in self._entries]

    def for_field(self, name: str) -> list[ErrorEntry]:
        """Errors whose field (or any nested field error) equals *name*, case-insensitively."""
        return [e for e in self._entries if e.matches_field(name)]

    def for_function(self, function_name: str) -> list[ErrorEntry]:
        return [e for e in self._entries if e.function_name == function_name]

    def __iter__(self) -> Iterator[ErrorEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

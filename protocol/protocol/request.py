"""Request encoding: group function calls and pick the wire shape.

Shape is decided purely by how many distinct functions and calls were
added; the caller never chooses it:

* one function, one call    → ``SINGLE``      ``{Store_Code, Function, ...}``
* one function, N calls     → ``ITERATIONS``  ``{Store_Code, Function, Iterations: [...]}``
* several functions         → ``OPERATIONS``  ``{Store_Code, Operations: [...]}``

The ``FunctionManifest`` recorded here is what the response decoder
needs to map results back to their calls.
"""

from __future__ import annotations

import copy
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from protocol.exceptions import InvalidValueError, MissingRequiredValueError
from protocol.functions import FunctionCall

log = logging.getLogger(__name__)

# ── Wire literals ────────────────────────────────────────────────────
STORE_CODE = "Store_Code"
TIMESTAMP = "Miva_Request_Timestamp"
FUNCTION = "Function"
ITERATIONS = "Iterations"
OPERATIONS = "Operations"


class RequestShape(Enum):
    SINGLE = "single"
    ITERATIONS = "iterations"
    OPERATIONS = "operations"


# ── Manifest ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    function_name: str
    call_count: int = 1


@dataclass(frozen=True, slots=True)
class FunctionManifest:
    """Ordered ``(function_name, call_count)`` record of a request."""

    entries: tuple[ManifestEntry, ...]

    def __post_init__(self) -> None:
        if not self.entries:
            raise InvalidValueError("Empty request function list provided.")
        for entry in self.entries:
            if entry.call_count < 1:
                raise InvalidValueError(
                    f'Call count for "{entry.function_name}" must be at least 1.'
                )

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, int]]) -> "FunctionManifest":
        return cls(tuple(ManifestEntry(str(n), int(c)) for n, c in pairs))

    @classmethod
    def coerce(cls, value: Any) -> "FunctionManifest":
        """Accept a manifest, ``[(name, count)]``, ``[name]`` or ``{name: calls}``."""
        if isinstance(value, FunctionManifest):
            return value
        if isinstance(value, str):
            return cls((ManifestEntry(value, 1),))
        if isinstance(value, Mapping):
            return cls(
                tuple(
                    ManifestEntry(str(name), _count_of(calls))
                    for name, calls in value.items()
                )
            )
        entries = []
        for item in value or ():
            if isinstance(item, ManifestEntry):
                entries.append(item)
            elif isinstance(item, str):
                entries.append(ManifestEntry(item, 1))
            else:
                name, count = item
                entries.append(ManifestEntry(str(name), int(count)))
        return cls(tuple(entries))

    # -- Queries -------------------------------------------------------
    @property
    def names(self) -> list[str]:
        return [e.function_name for e in self.entries]

    def count_for(self, function_name: str) -> int:
        for entry in self.entries:
            if entry.function_name == function_name:
                return entry.call_count
        raise InvalidValueError(f'Function "{function_name}" is not in the manifest.')

    def __contains__(self, function_name: object) -> bool:
        return any(e.function_name == function_name for e in self.entries)

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, index: int) -> ManifestEntry:
        return self.entries[index]


def _count_of(calls: Any) -> int:
    if isinstance(calls, (list, tuple)):
        return max(1, len(calls))
    if isinstance(calls, int) and not isinstance(calls, bool):
        return calls
    return 1


# ── Document ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class RequestDocument:
    """Finalized request.  The payload is a private deep copy."""

    shape: RequestShape
    manifest: FunctionManifest
    _payload: dict[str, Any] = field(repr=False)

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._payload)

    def to_json(self, indent: int | None = None) -> str:
        if indent is None:
            return json.dumps(self._payload, separators=(",", ":"), ensure_ascii=False)
        return json.dumps(self._payload, indent=indent, ensure_ascii=False)

    def to_bytes(self, indent: int | None = None) -> bytes:
        """UTF-8 request body, the exact bytes to sign and send."""
        return self.to_json(indent).encode("utf-8")

    def __getitem__(self, key: str) -> Any:
        return copy.deepcopy(self._payload[key])

    def __contains__(self, key: object) -> bool:
        return key in self._payload


# ── Encoder ──────────────────────────────────────────────────────────


class RequestEncoder:
    """Accumulates ``FunctionCall`` objects and produces a ``RequestDocument``.

    Calls are grouped by function name; first-seen function order and
    per-function call order are preserved.  One encoder per request.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._groups: dict[str, list[FunctionCall]] = {}

    def add_call(self, call: FunctionCall) -> "RequestEncoder":
        self._groups.setdefault(call.name, []).append(call)
        return self

    def clear(self) -> None:
        self._groups = {}

    # -- Introspection -------------------------------------------------
    @property
    def is_empty(self) -> bool:
        return not self._groups

    @property
    def function_names(self) -> list[str]:
        return list(self._groups)

    def calls_for(self, function_name: str) -> list[FunctionCall]:
        return list(self._groups.get(function_name, ()))

    def function_list(self) -> dict[str, list[FunctionCall]]:
        return {name: list(calls) for name, calls in self._groups.items()}

    def manifest(self) -> FunctionManifest:
        if not self._groups:
            raise MissingRequiredValueError("No function calls were added to the request.")
        return FunctionManifest(
            tuple(ManifestEntry(name, len(calls)) for name, calls in self._groups.items())
        )

    # -- Finalize ------------------------------------------------------
    def finalize(self, store_code: str, include_timestamp: bool = True) -> RequestDocument:
        if not store_code:
            raise MissingRequiredValueError('Missing required value "store_code".')
        manifest = self.manifest()

        payload: dict[str, Any] = {STORE_CODE: store_code}
        if include_timestamp:
            payload[TIMESTAMP] = int(self._clock())

        if len(self._groups) == 1:
            name, calls = next(iter(self._groups.items()))
            if len(calls) == 1:
                shape = RequestShape.SINGLE
                payload.update(calls[0].to_dict(include_function=True))
            else:
                shape = RequestShape.ITERATIONS
                payload.update(_iteration_block(name, calls))
        else:
            shape = RequestShape.OPERATIONS
            payload[OPERATIONS] = [
                calls[0].to_dict(include_function=True)
                if len(calls) == 1
                else _iteration_block(name, calls)
                for name, calls in self._groups.items()
            ]

        log.debug(
            "encoded %s request: %s",
            shape.value,
            ", ".join(f"{e.function_name}×{e.call_count}" for e in manifest),
        )
        return RequestDocument(shape=shape, manifest=manifest, _payload=copy.deepcopy(payload))


def _iteration_block(name: str, calls: list[FunctionCall]) -> dict[str, Any]:
    return {
        FUNCTION: name,
        ITERATIONS: [call.to_dict(include_function=False) for call in calls],
    }

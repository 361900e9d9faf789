"""Response decoding.

The server answers in one of three shapes and never says which:

* a single object           → result of the first manifest function, index 0
* a list, one manifest entry → one result per iteration
* a list, several entries    → one element per operation; an element that
  is itself a list holds that operation's iterations

Results are stored per ``(function, index)`` whether they succeeded or
not; failures are collected into an ``ErrorCollection``.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from protocol.errors import ErrorCollection, ErrorEntry, FieldError
from protocol.exceptions import InvalidValueError, MalformedPayloadError
from protocol.request import FunctionManifest

log = logging.getLogger(__name__)

CONTENT_RANGE = "content-range"
_CONTENT_RANGE_RE = re.compile(r"^\s*(\d+)\s*/\s*(\d+)\s*$")


@dataclass(frozen=True, slots=True)
class ContentRange:
    """``Content-Range: <completed>/<total>`` of a partial batch."""

    completed: int
    total: int

    def to_dict(self) -> dict[str, int]:
        return {"completed_operations": self.completed, "total_operations": self.total}


# ── Decoded response ─────────────────────────────────────────────────


class DecodedResponse:
    """Read-only view over one decoded API response."""

    def __init__(
        self,
        manifest: FunctionManifest,
        results: dict[str, dict[int, Any]],
        errors: ErrorCollection,
        has_failure: bool,
        status_code: int,
        headers: dict[str, Any],
        body: str,
        content_range: ContentRange | None,
    ) -> None:
        self._manifest = manifest
        self._results = results
        self._errors = errors
        self._has_failure = has_failure
        self._status_code = status_code
        self._headers = headers
        self._body = body
        self._content_range = content_range

    # -- Status --------------------------------------------------------
    @property
    def success(self) -> bool:
        return not self._has_failure and not self._errors.has()

    @property
    def has_failure(self) -> bool:
        return self._has_failure

    def successful(self) -> bool:
        return self.success

    def failed(self) -> bool:
        return not self.success

    def has_errors(self) -> bool:
        return self._errors.has()

    @property
    def errors(self) -> ErrorCollection:
        """Snapshot of the collected errors."""
        return ErrorCollection(self._errors.all())

    # -- HTTP metadata -------------------------------------------------
    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def headers(self) -> dict[str, Any]:
        return dict(self._headers)

    @property
    def body(self) -> str:
        return self._body

    @property
    def is_partial(self) -> bool:
        return self._content_range is not None

    @property
    def content_range(self) -> ContentRange | None:
        return self._content_range

    # -- Results -------------------------------------------------------
    @property
    def manifest(self) -> FunctionManifest:
        return self._manifest

    @property
    def functions(self) -> list[str]:
        return list(dict.fromkeys(self._manifest.names))

    def _check_function(self, function_name: str) -> dict[int, Any]:
        if function_name not in self._manifest:
            raise InvalidValueError(
                f'Function name "{function_name}" invalid or missing from results list.'
            )
        return self._results.get(function_name, {})

    def get_function(self, function_name: str) -> list[Any]:
        """All results for *function_name*, in index order."""
        indexed = self._check_function(function_name)
        return [copy.deepcopy(indexed[i]) for i in sorted(indexed)]

    def get_data(self, function_name: str, index: int = 0) -> Any:
        """The ``data`` member of one result, or the whole result if it has none."""
        indexed = self._check_function(function_name)
        if index not in indexed:
            raise InvalidValueError(
                f'Index "{index}" does not exist for function "{function_name}".'
            )
        result = indexed[index]
        payload = result.get("data")
        return copy.deepcopy(result if payload is None else payload)

    def get_response(self, function_name: str | None = None) -> Any:
        if function_name is not None:
            return self.get_function(function_name)
        return {
            name: [copy.deepcopy(idx[i]) for i in sorted(idx)]
            for name, idx in self._results.items()
        }

    def __repr__(self) -> str:
        return (
            f"DecodedResponse(status={self._status_code}, success={self.success}, "
            f"errors={len(self._errors)}, partial={self.is_partial})"
        )


# ── Helpers ──────────────────────────────────────────────────────────


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value not in ("", "0")
    return bool(value)


def _opt_str(result: Mapping[str, Any], key: str) -> str | None:
    value = result.get(key)
    return None if value is None else str(value)


def _header(headers: Mapping[str, Any] | None, name: str) -> str | None:
    for key, value in (headers or {}).items():
        if key.lower() != name:
            continue
        if isinstance(value, (list, tuple)):
            return str(value[0]) if value else None
        return str(value)
    return None


def parse_content_range(headers: Mapping[str, Any] | None) -> ContentRange | None:
    raw = _header(headers, CONTENT_RANGE)
    if raw is None:
        return None
    match = _CONTENT_RANGE_RE.match(raw)
    if match is None:
        log.warning("ignoring malformed Content-Range header: %r", raw)
        return None
    return ContentRange(completed=int(match.group(1)), total=int(match.group(2)))


def build_error(function_name: str, index: int, result: Mapping[str, Any]) -> ErrorEntry:
    field_errors = tuple(
        FieldError(field=_opt_str(fe, "error_field"), message=_opt_str(fe, "error_message"))
        for fe in result.get("error_fields") or ()
        if isinstance(fe, Mapping)
    )
    return ErrorEntry(
        code=_opt_str(result, "error_code") or "",
        message=_opt_str(result, "error_message") or "",
        field=_opt_str(result, "error_field"),
        field_message=_opt_str(result, "error_field_message"),
        is_validation_error=_truthy(result.get("validation_error", False)),
        has_input_errors=_truthy(result.get("input_errors", False)),
        field_errors=field_errors,
        function_name=function_name,
        index=index,
    )


# ── Decoder ──────────────────────────────────────────────────────────


class ResponseDecoder:
    """Maps a raw response body back onto the request's manifest."""

    def decode(
        self,
        manifest: FunctionManifest | Iterable[Any] | Mapping[str, Any],
        raw_body: str | bytes,
        status_code: int = 200,
        headers: Mapping[str, Any] | None = None,
    ) -> DecodedResponse:
        manifest = FunctionManifest.coerce(manifest)

        try:
            body = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
            parsed = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MalformedPayloadError(f"Response body is not valid JSON: {exc}") from exc

        state = _DecodeState()

        if isinstance(parsed, dict):
            state.add(manifest[0].function_name, 0, parsed)
        elif isinstance(parsed, list):
            if len(manifest) == 1:
                name = manifest[0].function_name
                for index, result in enumerate(parsed):
                    state.add(name, index, result)
            else:
                for entry, result in zip(manifest, parsed):
                    if isinstance(result, list):
                        for index, item in enumerate(result):
                            state.add(entry.function_name, index, item)
                    else:
                        state.add(entry.function_name, 0, result)
                if len(parsed) > len(manifest):
                    log.debug("ignoring %d result(s) beyond the manifest", len(parsed) - len(manifest))

        content_range = parse_content_range(headers)

        response = DecodedResponse(
            manifest=manifest,
            results=state.results,
            errors=state.errors,
            has_failure=state.has_failure,
            status_code=status_code,
            headers=dict(headers or {}),
            body=body,
            content_range=content_range,
        )
        log.debug("decoded %r", response)
        return response


class _DecodeState:
    """Accumulator used during a single ``decode`` call."""

    __slots__ = ("results", "errors", "has_failure")

    def __init__(self) -> None:
        self.results: dict[str, dict[int, Any]] = {}
        self.errors = ErrorCollection()
        self.has_failure = False

    def add(self, function_name: str, index: int, result: Any) -> None:
        if not isinstance(result, dict):
            return
        self.results.setdefault(function_name, {})[index] = result

        success = _truthy(result.get("success", False))
        has_error_fields = (
            result.get("error_code") is not None or result.get("error_message") is not None
        )
        if not success or has_error_fields:
            self.errors.append(build_error(function_name, index, result))
            self.has_failure = True


def decode(
    manifest: FunctionManifest | Iterable[Any] | Mapping[str, Any],
    raw_body: str | bytes,
    status_code: int = 200,
    headers: Mapping[str, Any] | None = None,
) -> DecodedResponse:
    """Module-level shortcut for ``ResponseDecoder().decode(...)``."""
    return ResponseDecoder().decode(manifest, raw_body, status_code, headers)

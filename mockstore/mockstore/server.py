"""Reference store endpoint (Starlette ASGI server).

Single ``/mm5/json.mvc`` POST endpoint speaking the Miva JSON wire
format: verifies the authorization header, runs every call through the
function registry and answers in the shape the request used (object,
iteration list or operation list).

``Range: Operations=<a>-[<b>]`` restricts which units run; with
``max_operations`` set, a batch that does not finish answers 206 with
``Content-Range: <completed>/<total>``.

Run directly::

    python -m mockstore.server
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from protocol.auth import AUTH_HEADER_NAME, TokenSigner
from protocol.request import FUNCTION, ITERATIONS, OPERATIONS, STORE_CODE
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from mockstore.dispatcher import FunctionNotFoundError, Registry
from mockstore.handlers import Catalog, default_catalog, registry

log = logging.getLogger(__name__)

ENDPOINT = "/mm5/json.mvc"

AUTH_FAILED = "MER-JSN-AUTH"
PARSE_FAILED = "MER-JSN-PARSE"
BAD_STORE = "MER-JSN-STORE"
BAD_REQUEST = "MER-JSN-REQUEST"
BAD_RANGE = "MER-JSN-RANGE"

_RANGE_RE = re.compile(r"^\s*Operations\s*=\s*(\d+)\s*-\s*(\d*)\s*$", re.IGNORECASE)
_SSH_HASHES = {"SHA2-256": hashes.SHA256, "SHA2-512": hashes.SHA512}


@dataclass(slots=True)
class StoreConfig:
    """What the endpoint accepts."""

    store_code: str = "PS"
    access_token: str = "token"
    secret_key: str = ""
    ssh_public_keys: dict[str, str] = field(default_factory=dict)
    max_operations: int | None = None


# ── Helpers ──────────────────────────────────────────────────────────


def _error(code: str, message: str, status: int = 200) -> JSONResponse:
    """Build a single-object error result."""
    return JSONResponse({"success": 0, "error_code": code, "error_message": message}, status_code=status)


def _verify_token(config: StoreConfig, header: str, body: bytes) -> bool:
    scheme, _, _ = header.partition(" ")
    if scheme == "MIVA" and not config.secret_key:
        expected = TokenSigner(config.access_token).header_value(body)
    elif scheme.startswith("MIVA-HMAC-") and config.secret_key:
        algorithm = scheme[len("MIVA-HMAC-") :].lower()
        if algorithm not in ("sha1", "sha256"):
            return False
        expected = TokenSigner(config.access_token, config.secret_key, algorithm).header_value(body)
    else:
        return False
    return hmac.compare_digest(expected, header)


def _verify_ssh(config: StoreConfig, header: str, body: bytes) -> bool:
    scheme, _, credentials = header.partition(" ")
    hash_cls = _SSH_HASHES.get(scheme[len("SSH-RSA-") :])
    user_b64, _, sig_b64 = credentials.partition(":")
    if hash_cls is None:
        return False
    try:
        username = base64.b64decode(user_b64).decode("utf-8")
        signature = base64.b64decode(sig_b64)
    except (binascii.Error, UnicodeDecodeError):
        return False
    pem = config.ssh_public_keys.get(username)
    if pem is None:
        return False
    public_key = serialization.load_pem_public_key(pem.encode("utf-8"))
    if not isinstance(public_key, rsa.RSAPublicKey):
        return False
    try:
        public_key.verify(signature, body, padding.PKCS1v15(), hash_cls())
    except InvalidSignature:
        return False
    return True


def verify_auth(config: StoreConfig, header: str | None, body: bytes) -> bool:
    if not header:
        return False
    if header.startswith("SSH-RSA-"):
        return _verify_ssh(config, header, body)
    return _verify_token(config, header, body)


def parse_range(header: str | None, total: int) -> tuple[int, int]:
    """1-based inclusive ``(start, end)`` of units to run."""
    if not header:
        return 1, total
    match = _RANGE_RE.match(header)
    if match is None:
        return 1, total
    start = max(1, int(match.group(1)))
    end = int(match.group(2)) if match.group(2) else total
    return start, min(end, total)


@dataclass(slots=True)
class _Unit:
    """One top-level response element: a single call or an iteration list."""

    function: str
    calls: list[dict[str, Any]]
    iterated: bool


def _units(payload: dict[str, Any]) -> tuple[str, list[_Unit]]:
    if OPERATIONS in payload:
        units = []
        for op in payload[OPERATIONS]:
            if ITERATIONS in op:
                units.append(_Unit(op[FUNCTION], list(op[ITERATIONS]), True))
            else:
                units.append(_Unit(op[FUNCTION], [op], False))
        return OPERATIONS, units
    if ITERATIONS in payload:
        # Each iteration is its own unit so Range can split them.
        return ITERATIONS, [_Unit(payload[FUNCTION], [it], False) for it in payload[ITERATIONS]]
    return FUNCTION, [_Unit(payload[FUNCTION], [payload], False)]


async def _run_call(reg: Registry, catalog: Catalog, function: str, call: dict[str, Any]) -> dict[str, Any]:
    try:
        return await reg.dispatch(function, call, catalog)
    except FunctionNotFoundError as exc:
        return exc.to_result()


# ── Endpoint ─────────────────────────────────────────────────────────


async def json_endpoint(request: Request) -> JSONResponse:
    """Handle one JSON API POST."""
    config: StoreConfig = request.app.state.config
    catalog: Catalog = request.app.state.catalog
    reg: Registry = request.app.state.registry

    body = await request.body()
    if not verify_auth(config, request.headers.get(AUTH_HEADER_NAME), body):
        log.info("rejected request with bad authorization header")
        return _error(AUTH_FAILED, "Authentication failed", status=401)

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(PARSE_FAILED, "Unable to parse request", status=400)
    if not isinstance(payload, dict):
        return _error(BAD_REQUEST, "Request must be a JSON object", status=400)

    if payload.get(STORE_CODE) != config.store_code:
        return _error(BAD_STORE, "Invalid store code")
    if FUNCTION not in payload and OPERATIONS not in payload:
        return _error(BAD_REQUEST, "Missing Function or Operations")

    shape, units = _units(payload)
    start, end = parse_range(request.headers.get("range"), len(units))
    if start > end:
        return _error(BAD_RANGE, "Requested range not satisfiable", status=416)
    if config.max_operations is not None:
        end = min(end, start + config.max_operations - 1)

    log.info("json ← %s request, units %d-%d of %d", shape, start, end, len(units))

    results: list[Any] = []
    for unit in units[start - 1 : end]:
        outcomes = [await _run_call(reg, catalog, unit.function, c) for c in unit.calls]
        results.append(outcomes if unit.iterated else outcomes[0])

    headers: dict[str, str] = {}
    status = 200
    if end < len(units):
        status = 206
        headers["Content-Range"] = f"{end}/{len(units)}"

    content: Any = results[0] if shape == FUNCTION and results else results
    return JSONResponse(content, status_code=status, headers=headers)


# ── App factory ──────────────────────────────────────────────────────


def create_app(
    config: StoreConfig | None = None,
    catalog: Catalog | None = None,
    functions: Registry | None = None,
) -> Starlette:
    app = Starlette(
        debug=False,
        routes=[Route(ENDPOINT, json_endpoint, methods=["POST"])],
    )
    app.state.config = config or StoreConfig()
    app.state.catalog = catalog or default_catalog()
    app.state.registry = functions or registry
    return app


app = create_app()


# ── Runnable entrypoint ──────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(
        "mockstore.server:app",
        host="127.0.0.1",
        port=8100,
        log_level="info",
    )

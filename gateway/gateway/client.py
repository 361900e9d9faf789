"""Miva JSON API client: a thin facade over the protocol layer.

* ``func(name)`` … ``add()``  → queue function calls
* ``send()``                 → encode → sign → POST → decode

Every builder method is listed explicitly and forwarded to the current
``FunctionCall``; nothing is proxied dynamically.

Run directly for a quick demo against ``MIVA_*`` environment settings::

    python -m gateway.client
"""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Iterable, Mapping

from protocol.auth import Signer, SshSigner, quote_list
from protocol.exceptions import InvalidValueError, MissingRequiredValueError
from protocol.functions import FunctionCall
from protocol.request import RequestDocument, RequestEncoder
from protocol.response import DecodedResponse, ResponseDecoder

from gateway.config import BINARY_ENCODINGS, ClientSettings
from gateway.transport import HttpxTransport, Transport, TransportResponse

log = logging.getLogger(__name__)

DISTRIBUTION_NAME = "miva-jsonapi"

TIMEOUT_HEADER = "X-Miva-API-Timeout"
BINARY_ENCODING_HEADER = "X-Miva-API-Binary-Encoding"
RANGE_HEADER = "Range"


def package_version() -> str:
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return "unknown"


def default_headers(user_agent: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": user_agent,
    }


def operations_range(start: int, end: int | None = None) -> str:
    """``Range`` header value used to resume a partial batch."""
    if start < 1:
        raise InvalidValueError("Range start must be at least 1.")
    if end is not None and end < start:
        raise InvalidValueError("Range end must be greater than or equal to the start value.")
    return f"Operations={start}-" if end is None else f"Operations={start}-{end}"


class MivaClient:
    """Async client for one store's JSON API endpoint.

    Parameters
    ----------
    settings : ClientSettings
        Endpoint, store code and credentials.  Validated on construction.
    transport : Transport, optional
        Defaults to ``HttpxTransport``.
    signer : Signer, optional
        Overrides the signer derived from *settings*.
    user_agent : str, optional
        Defaults to ``miva-jsonapi/<installed version>``, resolved once here.
    """

    def __init__(
        self,
        settings: ClientSettings,
        transport: Transport | None = None,
        signer: Signer | None = None,
        user_agent: str | None = None,
    ) -> None:
        self.settings = settings.validate()
        self.url = settings.url
        self._signer = signer or settings.build_signer()
        self._transport = transport or HttpxTransport()
        self._decoder = ResponseDecoder()
        self._encoder = RequestEncoder()
        self._current: FunctionCall | None = None

        self._headers = default_headers(user_agent or f"{DISTRIBUTION_NAME}/{package_version()}")
        self._headers.update(settings.http_headers)

        self._timeout: int | None = None
        self._binary_encoding: str | None = None
        self._range: str | None = settings.operations_range or None
        if settings.timeout is not None:
            self.set_timeout(settings.timeout)
        if settings.binary_encoding is not None:
            self.set_binary_encoding(settings.binary_encoding)

        self._previous_request: tuple[dict[str, str], bytes] | None = None
        self._previous_response: TransportResponse | None = None

    # -- Lifecycle -----------------------------------------------------

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> "MivaClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # -- Function builder ----------------------------------------------

    def _call(self) -> FunctionCall:
        if self._current is None:
            raise MissingRequiredValueError("Call func(name) before configuring a function.")
        return self._current

    def func(self, name: str) -> "MivaClient":
        self._current = FunctionCall(name)
        return self

    def count(self, count: int) -> "MivaClient":
        self._call().set_count(count)
        return self

    def offset(self, offset: int) -> "MivaClient":
        self._call().set_offset(offset)
        return self

    def sort(self, sort: str) -> "MivaClient":
        self._call().set_sort(sort)
        return self

    def filter(self, name: str, value: Any) -> "MivaClient":
        self._call().add_filter(name, value)
        return self

    def filters(self, filters: Mapping[str, Any]) -> "MivaClient":
        self._call().add_filters(filters)
        return self

    def ondemandcolumns(self, columns: Iterable[str]) -> "MivaClient":
        self._call().add_on_demand_columns(columns)
        return self

    odc = ondemandcolumns

    def params(self, params: Mapping[str, Any]) -> "MivaClient":
        self._call().set_params(params)
        return self

    def passphrase(self, passphrase: str) -> "MivaClient":
        self._call().set_passphrase(passphrase)
        return self

    def add(self, call: FunctionCall | None = None) -> "MivaClient":
        """Queue *call*, or the function started with ``func()``."""
        if call is None:
            call = self._call()
        self._encoder.add_call(call)
        self._current = None
        return self

    def function_list(self) -> dict[str, list[FunctionCall]]:
        return self._encoder.function_list()

    def request_body(self, indent: int | None = None) -> str:
        return self._finalize().to_json(indent)

    def _finalize(self) -> RequestDocument:
        return self._encoder.finalize(self.settings.store_code, self.settings.timestamp)

    # -- Headers -------------------------------------------------------

    def add_header(self, name: str, value: str) -> "MivaClient":
        self._headers[name] = value
        return self

    def add_headers(self, headers: Mapping[str, str]) -> "MivaClient":
        for name, value in headers.items():
            self.add_header(name, value)
        return self

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def set_timeout(self, seconds: int) -> "MivaClient":
        if seconds <= 0:
            raise InvalidValueError("Timeout value must be greater than zero.")
        self._timeout = seconds
        return self

    def set_binary_encoding(self, encoding: str) -> "MivaClient":
        encoding = encoding.strip().lower()
        if encoding not in BINARY_ENCODINGS:
            raise InvalidValueError(f"Binary encoding must be one of: {quote_list(BINARY_ENCODINGS)}.")
        self._binary_encoding = None if encoding == "json" else encoding
        return self

    def set_operations_range(self, start: int, end: int | None = None) -> "MivaClient":
        self._range = operations_range(start, end)
        return self

    def clear_operations_range(self) -> "MivaClient":
        self._range = None
        return self

    def set_ssh_auth(self, username: str, private_key: str, algorithm: str = "sha256") -> "MivaClient":
        self._signer = SshSigner(username, private_key, algorithm)
        return self

    def _request_headers(self, body: bytes) -> dict[str, str]:
        headers = dict(self._headers)
        if self._timeout is not None:
            headers[TIMEOUT_HEADER] = str(self._timeout)
        if self._binary_encoding is not None:
            headers[BINARY_ENCODING_HEADER] = self._binary_encoding
        if self._range is not None:
            headers[RANGE_HEADER] = self._range
        headers.update(self._signer.auth_header(body))
        return headers

    # -- Previous exchange ---------------------------------------------

    @property
    def previous_request(self) -> tuple[dict[str, str], bytes] | None:
        """``(headers, body)`` of the last request sent."""
        return self._previous_request

    @property
    def previous_response(self) -> TransportResponse | None:
        return self._previous_response

    # -- Send ----------------------------------------------------------

    async def send(self, raw: bool = False) -> DecodedResponse | str:
        """Send queued calls and decode the reply (or return the raw body).

        The queue is reset once a response has arrived.
        """
        document = self._finalize()
        body = document.to_bytes()
        headers = self._request_headers(body)

        log.debug("miva → %s (%s)", ", ".join(document.manifest.names), document.shape.value)

        self._previous_request = (headers, body)
        self._previous_response = None
        response = await self._transport.send("POST", self.url, headers, body)
        self._previous_response = response
        self._encoder = RequestEncoder()

        if raw:
            return response.text
        return self._decoder.decode(
            document.manifest, response.body, response.status_code, response.headers
        )


# ── Demo entrypoint ──────────────────────────────────────────────────


async def _demo() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    async with MivaClient(ClientSettings.from_env()) as client:
        print("── ProductList_Load_Query ──")
        response = await client.func("ProductList_Load_Query").count(5).add().send()
        print(f"  success: {response.success}")
        if response.success:
            data = response.get_data("ProductList_Load_Query")
            for product in data.get("data", []):
                print(f"  {product.get('code')}: {product.get('name')}")
        for error in response.errors:
            print(f"  error: [{error.code}] {error.message}")

        print("── done ──")


if __name__ == "__main__":
    import anyio

    anyio.run(_demo)

"""protocol — Miva JSON API encoding, signing and decoding."""

from protocol.auth import AUTH_HEADER_NAME, AuthScheme, Signer, SshSigner, TokenSigner
from protocol.errors import ErrorCollection, ErrorEntry, FieldError
from protocol.exceptions import (
    InvalidValueError,
    MalformedPayloadError,
    MissingRequiredValueError,
    MivaError,
)
from protocol.filters import Filter, FilterKind, SearchClause, classify
from protocol.functions import FunctionCall
from protocol.request import (
    FunctionManifest,
    ManifestEntry,
    RequestDocument,
    RequestEncoder,
    RequestShape,
)
from protocol.response import ContentRange, DecodedResponse, ResponseDecoder, decode

__all__ = [
    "FunctionCall",
    "Filter",
    "FilterKind",
    "SearchClause",
    "classify",
    "RequestEncoder",
    "RequestDocument",
    "RequestShape",
    "FunctionManifest",
    "ManifestEntry",
    "Signer",
    "TokenSigner",
    "SshSigner",
    "AuthScheme",
    "AUTH_HEADER_NAME",
    "ResponseDecoder",
    "DecodedResponse",
    "ContentRange",
    "decode",
    "ErrorCollection",
    "ErrorEntry",
    "FieldError",
    "MivaError",
    "InvalidValueError",
    "MissingRequiredValueError",
    "MalformedPayloadError",
]

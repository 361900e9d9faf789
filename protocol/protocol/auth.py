"""Request signing.

Two schemes, both computed over the exact serialized request body:

* ``TokenSigner`` — shared secret.  ``MIVA <token>`` without a secret,
  otherwise ``MIVA-HMAC-SHA256 <token>:<base64(hmac)>``.
* ``SshSigner``   — RSA private key.
  ``SSH-RSA-SHA2-256 <base64(username)>:<base64(signature)>``.

A signer returns a one-item header mapping to merge into the outgoing
request.  Re-sign whenever the body changes.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from protocol.exceptions import InvalidValueError, MalformedPayloadError

log = logging.getLogger(__name__)

AUTH_HEADER_NAME = "X-Miva-API-Authorization"

HMAC_ALGORITHMS = ("sha1", "sha256")
SSH_ALGORITHMS = ("sha256", "sha512")

_SSH_LABELS = {"sha256": "SHA2-256", "sha512": "SHA2-512"}
_SSH_HASHES = {"sha256": hashes.SHA256, "sha512": hashes.SHA512}

# (body, private_key, algorithm) -> raw signature bytes
SignFn = Callable[[bytes, str, str], bytes]


class AuthScheme(Enum):
    TOKEN = "token"
    SSH = "ssh"


def quote_list(values) -> str:
    return ", ".join('"%s"' % v for v in values)


def _as_bytes(body: bytes | str) -> bytes:
    return body.encode("utf-8") if isinstance(body, str) else bytes(body)


class Signer(ABC):
    """Computes the authorization header for a request body."""

    scheme: AuthScheme

    def __init__(self, header_name: str = AUTH_HEADER_NAME) -> None:
        self.header_name = header_name

    @abstractmethod
    def header_value(self, body: bytes | str) -> str:
        """Header value for *body*."""

    def auth_header(self, body: bytes | str) -> dict[str, str]:
        value = self.header_value(body)
        log.debug("signed %d-byte body (%s)", len(_as_bytes(body)), self.scheme.value)
        return {self.header_name: value}


# ── Shared secret ────────────────────────────────────────────────────


class TokenSigner(Signer):
    """Access token + optional base64 shared secret (HMAC)."""

    scheme = AuthScheme.TOKEN

    def __init__(
        self,
        access_token: str,
        secret_key: str = "",
        algorithm: str = "sha256",
        header_name: str = AUTH_HEADER_NAME,
    ) -> None:
        super().__init__(header_name)
        self.access_token = access_token
        self._secret_key = secret_key or ""
        self.algorithm = self._resolve_algorithm(algorithm or "")

    def _resolve_algorithm(self, algorithm: str) -> str:
        if algorithm == "" or self._secret_key == "":
            return ""
        algo = algorithm.lower()
        if algo not in HMAC_ALGORITHMS:
            raise InvalidValueError(
                f'Invalid HMAC type "{algorithm}" provided. '
                f"Valid HMAC types: {quote_list(HMAC_ALGORITHMS)}."
            )
        return algo

    @property
    def signs_body(self) -> bool:
        return self.algorithm != ""

    def signature(self, body: bytes | str) -> bytes:
        try:
            key = base64.b64decode(self._secret_key)
        except (binascii.Error, ValueError) as exc:
            raise MalformedPayloadError("Private key is not valid base64.") from exc
        return hmac.new(key, _as_bytes(body), getattr(hashlib, self.algorithm)).digest()

    def header_value(self, body: bytes | str) -> str:
        if not self.signs_body:
            return f"MIVA {self.access_token}"
        encoded = base64.b64encode(self.signature(body)).decode("ascii")
        return f"MIVA-HMAC-{self.algorithm.upper()} {self.access_token}:{encoded}"


# ── Asymmetric ───────────────────────────────────────────────────────


def load_rsa_private_key(private_key: str | bytes) -> rsa.RSAPrivateKey:
    """Load PEM (PKCS#1 / PKCS#8) or OpenSSH RSA key material."""
    data = _as_bytes(private_key)
    try:
        if b"BEGIN OPENSSH PRIVATE KEY" in data:
            key = serialization.load_ssh_private_key(data, password=None)
        else:
            key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise MalformedPayloadError("Invalid SSH private key provided.") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise MalformedPayloadError("SSH private key must be an RSA key.")
    return key


def rsa_sign(body: bytes, private_key: str, algorithm: str) -> bytes:
    """RSA PKCS#1 v1.5 signature of *body*."""
    key = load_rsa_private_key(private_key)
    return key.sign(body, padding.PKCS1v15(), _SSH_HASHES[algorithm]())


class SshSigner(Signer):
    """Username + RSA private key."""

    scheme = AuthScheme.SSH

    def __init__(
        self,
        username: str,
        private_key: str,
        algorithm: str = "sha256",
        sign_fn: SignFn | None = None,
        header_name: str = AUTH_HEADER_NAME,
    ) -> None:
        super().__init__(header_name)
        if algorithm not in SSH_ALGORITHMS:
            raise InvalidValueError(
                "SSH authentication algorithm must be one of: "
                f"{quote_list(SSH_ALGORITHMS)}."
            )
        self.username = username
        self.algorithm = algorithm
        self._private_key = private_key
        self._sign_fn = sign_fn or rsa_sign

    @property
    def label(self) -> str:
        return _SSH_LABELS[self.algorithm]

    def signature(self, body: bytes | str) -> bytes:
        return self._sign_fn(_as_bytes(body), self._private_key, self.algorithm)

    def header_value(self, body: bytes | str) -> str:
        user = base64.b64encode(self.username.encode("utf-8")).decode("ascii")
        sig = base64.b64encode(self.signature(body)).decode("ascii")
        return f"SSH-RSA-{self.label} {user}:{sig}"

"""Client settings.

Settings come from keyword arguments or from the environment (a ``.env``
file is loaded first when present)::

    MIVA_URL=https://example.test/mm5/json.mvc
    MIVA_STORE_CODE=PS
    MIVA_ACCESS_TOKEN=...
    MIVA_PRIVATE_KEY=...          # base64 shared secret, may be empty
    MIVA_HMAC=sha256              # sha256 | sha1 | "" (no signature)
    MIVA_SSH_USERNAME=...         # SSH auth takes precedence when set
    MIVA_SSH_PRIVATE_KEY_PATH=~/.ssh/id_rsa
    MIVA_SSH_ALGORITHM=sha256     # sha256 | sha512
    MIVA_TIMESTAMP=true
    MIVA_TIMEOUT=60
    MIVA_BINARY_ENCODING=json     # json | base64
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv
from protocol.auth import Signer, SshSigner, TokenSigner, quote_list
from protocol.exceptions import InvalidValueError, MissingRequiredValueError

log = logging.getLogger(__name__)

BINARY_ENCODINGS = ("json", "base64")

_FALSE_STRINGS = {"0", "false", "no", "off", ""}


def _env_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() not in _FALSE_STRINGS


@dataclass(slots=True)
class ClientSettings:
    """Everything the client needs to reach and authenticate with a store."""

    url: str = ""
    store_code: str = ""
    access_token: str | None = None
    private_key: str | None = None
    hmac: str = "sha256"
    ssh_username: str | None = None
    ssh_private_key: str | None = None
    ssh_algorithm: str = "sha256"
    timestamp: bool = True
    timeout: int | None = None
    binary_encoding: str | None = None
    operations_range: str | None = None
    http_headers: dict[str, str] = field(default_factory=dict)

    # -- Auth capabilities ---------------------------------------------
    @property
    def has_token_auth(self) -> bool:
        return bool(self.access_token) and self.private_key is not None

    @property
    def has_ssh_auth(self) -> bool:
        return bool(self.ssh_username) and bool(self.ssh_private_key)

    # -- Validation ----------------------------------------------------
    def validate(self) -> "ClientSettings":
        """Raise if required options are missing or malformed."""
        if not self.has_token_auth and not self.has_ssh_auth:
            raise MissingRequiredValueError(
                "Missing required authentication options. "
                "Provide access_token/private_key or ssh_username/ssh_private_key."
            )
        for name in ("store_code", "url"):
            if not getattr(self, name):
                raise MissingRequiredValueError(f'Missing required option "{name}".')
        if self.timeout is not None and self.timeout <= 0:
            raise InvalidValueError("Timeout value must be greater than zero.")
        if self.binary_encoding is not None:
            encoding = self.binary_encoding.strip().lower()
            if encoding not in BINARY_ENCODINGS:
                raise InvalidValueError(
                    f"Binary encoding must be one of: {quote_list(BINARY_ENCODINGS)}."
                )
        return self

    def build_signer(self) -> Signer:
        """SSH auth wins over token auth when both are configured."""
        if self.has_ssh_auth:
            return SshSigner(self.ssh_username, self.ssh_private_key, self.ssh_algorithm)
        if self.has_token_auth:
            return TokenSigner(self.access_token, self.private_key or "", self.hmac)
        raise MissingRequiredValueError("No authentication options configured.")

    # -- Environment ---------------------------------------------------
    @classmethod
    def from_env(cls, prefix: str = "MIVA_", env_file: str | Path | None = None) -> "ClientSettings":
        load_dotenv(env_file if env_file is not None else Path.cwd() / ".env")

        def get(name: str) -> str | None:
            return os.getenv(prefix + name)

        ssh_key = get("SSH_PRIVATE_KEY")
        ssh_key_path = get("SSH_PRIVATE_KEY_PATH")
        if not ssh_key and ssh_key_path:
            ssh_key = Path(ssh_key_path).expanduser().read_text()

        timeout = get("TIMEOUT")
        settings = cls(
            url=get("URL") or "",
            store_code=get("STORE_CODE") or "",
            access_token=get("ACCESS_TOKEN"),
            private_key=get("PRIVATE_KEY"),
            hmac=get("HMAC") if get("HMAC") is not None else "sha256",
            ssh_username=get("SSH_USERNAME"),
            ssh_private_key=ssh_key,
            ssh_algorithm=get("SSH_ALGORITHM") or "sha256",
            timestamp=_env_bool(get("TIMESTAMP"), True),
            timeout=int(timeout) if timeout else None,
            binary_encoding=get("BINARY_ENCODING"),
            operations_range=get("RANGE"),
        )
        log.debug("loaded settings for store %r from environment", settings.store_code)
        return settings

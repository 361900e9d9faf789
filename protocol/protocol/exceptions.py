"""Exceptions raised by the protocol layer.

Server-reported failures are *not* exceptions; they are collected as
``ErrorEntry`` values on the decoded response.
"""

from __future__ import annotations


class MivaError(Exception):
    """Base class for every error raised by this package."""


class InvalidValueError(MivaError, ValueError):
    """Malformed caller input: blank name/value, bad algorithm, bad index."""


class MissingRequiredValueError(MivaError, ValueError):
    """A required field or option is absent."""


class MalformedPayloadError(MivaError):
    """Response body is not valid JSON, or signing key material is unusable."""

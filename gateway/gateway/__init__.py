"""gateway — async client facade and HTTP transport for the Miva JSON API."""

from gateway.client import MivaClient
from gateway.config import ClientSettings
from gateway.transport import HttpxTransport, Transport, TransportResponse

__all__ = [
    "MivaClient",
    "ClientSettings",
    "HttpxTransport",
    "Transport",
    "TransportResponse",
]

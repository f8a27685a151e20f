"""
Request relay for azsigner.

Signs inbound requests with the configured account key and forwards them to
Azure Storage.
"""

from azsigner.relay.exceptions import (
    RelayError,
    AccountNotConfiguredError,
    MissingServiceError,
    InvalidResourcePathError,
    InvalidServiceError,
    UpstreamError,
)
from azsigner.relay.transport import Transport, HttpxTransport, RelayResponse
from azsigner.relay.dispatcher import (
    RelayDispatcher,
    build_endpoint,
    prepare_request,
    format_http_date,
)

__all__ = [
    "RelayError",
    "AccountNotConfiguredError",
    "MissingServiceError",
    "InvalidResourcePathError",
    "InvalidServiceError",
    "UpstreamError",
    "Transport",
    "HttpxTransport",
    "RelayResponse",
    "RelayDispatcher",
    "build_endpoint",
    "prepare_request",
    "format_http_date",
]

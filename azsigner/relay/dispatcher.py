"""
Signs and dispatches requests to Azure Storage.

Built against the Blob Storage and Queue Storage REST APIs; other Azure
services may require additional headers.
"""

import logging
import re
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional

import httpx

from azsigner.auth.canonicalizer import RequestDescriptor, build_string_to_sign
from azsigner.auth.credentials import Credentials
from azsigner.auth.signer import build_authorization_header
from azsigner.core.config_manager import DEFAULT_API_VERSION
from azsigner.core.logging_config import log_with_context
from azsigner.relay.exceptions import InvalidResourcePathError, InvalidServiceError
from azsigner.relay.transport import RelayResponse, Transport

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT_SUFFIX = "core.windows.net"

# Service names become a DNS label of the endpoint host
_SERVICE_NAME = re.compile(r"[a-z0-9-]+")


def format_http_date(now: datetime) -> str:
    """Format a timestamp as an RFC 1123 date, e.g. "Mon, 02 Jan 2006 15:04:05 GMT"."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return format_datetime(now.astimezone(timezone.utc), usegmt=True)


def build_endpoint(
    account_name: str,
    service: str,
    path: str,
    query: str = "",
    endpoint_suffix: str = DEFAULT_ENDPOINT_SUFFIX,
) -> str:
    """
    Build the storage endpoint URL for a relayed request.

    Raises:
        InvalidServiceError: If service is not a bare service name
        InvalidResourcePathError: If there is no query string and the path
            does not go below the account root
    """
    if not _SERVICE_NAME.fullmatch(service):
        raise InvalidServiceError(service)

    endpoint = f"https://{account_name}.{service}.{endpoint_suffix}"

    if not query:
        if path in ("", "/"):
            raise InvalidResourcePathError()
        return endpoint + path

    return f"{endpoint}{path}?{query}"


def prepare_request(
    request: httpx.Request,
    credentials: Credentials,
    now: Optional[datetime] = None,
    api_version: str = DEFAULT_API_VERSION,
    client_request_id: Optional[str] = None,
) -> str:
    """
    Set the required Azure headers on an outbound request and sign it.

    x-ms-date and x-ms-version are always set. PUT and POST also get an
    explicit content-length, and blob uploads are sent as block blobs.
    client_request_id, when given, is sent as x-ms-client-request-id so the
    storage analytics logs can be matched to the relay's.

    Returns:
        The string-to-sign, for diagnostics

    Raises:
        QueryParseError: If the request query string is malformed
    """
    now = now or datetime.now(timezone.utc)

    request.headers["x-ms-date"] = format_http_date(now)
    request.headers["x-ms-version"] = api_version
    if client_request_id:
        request.headers["x-ms-client-request-id"] = client_request_id

    if request.method in ("PUT", "POST"):
        request.headers["content-length"] = str(len(request.content))
        if credentials.service == "blob":
            request.headers["x-ms-blob-type"] = "BlockBlob"

    string_to_sign = build_string_to_sign(credentials, RequestDescriptor.from_httpx(request))
    request.headers["authorization"] = build_authorization_header(credentials, string_to_sign)
    return string_to_sign


class RelayDispatcher:
    """
    Forwards requests to a storage account, signing each with SharedKey.

    Credentials are built per request, since the target service comes from
    the inbound request.
    """

    def __init__(
        self,
        account_name: str,
        shared_key: str,
        transport: Transport,
        api_version: str = DEFAULT_API_VERSION,
        endpoint_suffix: str = DEFAULT_ENDPOINT_SUFFIX,
    ):
        self.account_name = account_name
        self._shared_key = shared_key
        self.transport = transport
        self.api_version = api_version
        self.endpoint_suffix = endpoint_suffix

    async def dispatch(
        self,
        method: str,
        service: str,
        path: str,
        query: str = "",
        body: bytes = b"",
        now: Optional[datetime] = None,
        client_request_id: Optional[str] = None,
    ) -> RelayResponse:
        """
        Sign and send one request.

        Raises:
            InvalidServiceError: If service is not a bare service name
            InvalidResourcePathError: If the target path is too broad
            DecodeError: If the configured shared key is not valid base64
            QueryParseError: If the query string is malformed
            UpstreamError: If the request could not be executed
        """
        endpoint = build_endpoint(self.account_name, service, path, query, self.endpoint_suffix)
        credentials = Credentials.from_base64(self.account_name, self._shared_key, service)

        request = httpx.Request(method, endpoint, content=body)
        prepare_request(
            request,
            credentials,
            now=now,
            api_version=self.api_version,
            client_request_id=client_request_id,
        )

        log_with_context(
            logger, logging.INFO, f"Relaying {method} to {service} service: {path}",
            method=method, service=service, host=request.url.host,
        )
        response = await self.transport.send(request)
        log_with_context(
            logger, logging.DEBUG, f"Upstream answered {response.status}",
            status_code=response.status_code, body_bytes=len(response.body),
        )
        return response

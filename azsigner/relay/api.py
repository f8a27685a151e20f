"""
Relay HTTP endpoints

Accepts plain HTTP requests, signs them with the configured storage account
key and forwards them to Azure Storage.

    GET /azure/mycontainer?restype=container&comp=list
    x-az-service: blob

is relayed to https://<account>.blob.core.windows.net/mycontainer?restype=container&comp=list
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, FastAPI, Header, Request, Response, status
from fastapi.responses import PlainTextResponse

from azsigner import __version__
from azsigner.auth.canonicalizer import CANONICAL_HEADER_SEPARATOR
from azsigner.auth.exceptions import DecodeError, QueryParseError
from azsigner.core.config_manager import AzSignerConfig
from azsigner.core.logging_config import request_context
from azsigner.relay.dispatcher import RelayDispatcher
from azsigner.relay.exceptions import (
    AccountNotConfiguredError,
    MissingServiceError,
    RelayError,
    UpstreamError,
)
from azsigner.relay.transport import HttpxTransport, Transport

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-ms-client-request-id"

RELAY_METHODS = ["GET", "HEAD", "PUT", "POST", "DELETE", "PATCH", "OPTIONS"]


def _error_response(status_code: int, message: str) -> PlainTextResponse:
    return PlainTextResponse(message + "\n", status_code=status_code)


def _resource_path(request: Request, prefix: str) -> str:
    """Escaped request path with the route prefix removed."""
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1").split("?", 1)[0] if raw_path else quote(request.url.path)
    if prefix and path.startswith(prefix):
        path = path[len(prefix):]
    return path or "/"


def _client_request_id(value: Optional[str]) -> Optional[str]:
    """Caller's request id if Azure would accept it (ASCII, at most 1 KiB)."""
    if value and value.isascii() and value.isprintable() and len(value) <= 1024:
        return value
    return None


def create_router(dispatcher: Optional[RelayDispatcher], route_prefix: str = "/azure") -> APIRouter:
    """
    Create the catch-all relay router.

    Args:
        dispatcher: Dispatcher for the configured account, or None when no
            account is configured (every request then fails with 500)
        route_prefix: Path prefix that is stripped before forwarding
    """
    prefix = "" if route_prefix == "/" else route_prefix
    router = APIRouter(prefix=prefix, tags=["relay"])

    async def handle(request: Request, service: Optional[str], rid: str) -> Response:
        try:
            if dispatcher is None:
                raise AccountNotConfiguredError()
            if not service:
                raise MissingServiceError()

            result = await dispatcher.dispatch(
                method=request.method,
                service=service,
                path=_resource_path(request, prefix),
                query=request.url.query,
                body=await request.body(),
                client_request_id=rid,
            )
        except DecodeError as e:
            logger.error(f"Error creating credential: {e.message}")
            return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Error creating credential: {e.message}")
        except QueryParseError as e:
            return _error_response(status.HTTP_400_BAD_REQUEST, f"Error building string to sign: {e.message}")
        except RelayError as e:
            if e.status_code >= 500:
                logger.error(e.message)
            return _error_response(e.status_code, e.message)

        if not result.is_success:
            logger.warning(f"Upstream returned {result.status}")
            error = UpstreamError(
                "Response from outbound http request is not OK:\n"
                f"{result.status}\n{result.body.decode('utf-8', errors='replace')}",
                upstream_status=result.status_code,
                body=result.body,
            )
            return _error_response(error.status_code, error.message)

        if not result.body:
            return Response(
                content=f"Response from Azure: {result.status}",
                status_code=result.status_code,
                media_type="text/plain",
            )
        return Response(content=result.body, status_code=result.status_code)

    @router.api_route("/{resource_path:path}", methods=RELAY_METHODS, summary="Relay signed request")
    async def relay(
        resource_path: str,
        request: Request,
        x_az_service: Optional[str] = Header(None),
        x_ms_client_request_id: Optional[str] = Header(None),
    ) -> Response:
        """
        Sign and forward a request to Azure Storage.

        The caller's x-ms-client-request-id (or a generated one) tags the
        relay's log records, goes upstream, and is echoed in the response.

        Returns:
            Upstream status and body on success
            400 Bad Request: Missing or invalid x-az-service, too broad a path,
                bad query string, or a non-2xx upstream response
            500 Internal Server Error: Missing or invalid account configuration,
                or the outbound request could not be executed
        """
        with request_context(_client_request_id(x_ms_client_request_id)) as rid:
            response = await handle(request, x_az_service, rid)
        response.headers[REQUEST_ID_HEADER] = rid
        return response

    return router


def create_app(config: AzSignerConfig, transport: Optional[Transport] = None) -> FastAPI:
    """
    Build the relay application.

    Args:
        config: Loaded configuration
        transport: Outbound transport; an HttpxTransport is created if omitted
    """
    transport = transport or HttpxTransport(timeout=config.relay.timeout)

    if CANONICAL_HEADER_SEPARATOR != "\n":
        logger.warning(
            "Canonicalized x-ms-* headers are joined with %r; Azure Storage expects '\\n' "
            "and will reject relayed requests with AuthenticationFailed",
            CANONICAL_HEADER_SEPARATOR,
        )

    dispatcher = None
    if config.account.is_configured:
        dispatcher = RelayDispatcher(
            account_name=config.account.name,
            shared_key=config.account.shared_key,
            transport=transport,
            api_version=config.relay.api_version,
            endpoint_suffix=config.relay.endpoint_suffix,
        )
    else:
        logger.warning("No storage account configured; relay requests will fail")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await transport.aclose()

    app = FastAPI(
        title="azsigner relay",
        description="Signs requests with Azure Storage SharedKey and relays them",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(create_router(dispatcher, config.relay.route_prefix))
    return app

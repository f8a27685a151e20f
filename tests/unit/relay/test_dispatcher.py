"""Tests for request preparation and dispatch."""

import base64
from datetime import datetime, timezone

import httpx
import pytest

from azsigner.auth.canonicalizer import RequestDescriptor
from azsigner.auth.credentials import Credentials
from azsigner.auth.exceptions import DecodeError, QueryParseError
from azsigner.auth.signer import verify_signature
from azsigner.relay.dispatcher import (
    RelayDispatcher,
    build_endpoint,
    format_http_date,
    prepare_request,
)
from azsigner.relay.exceptions import InvalidResourcePathError, InvalidServiceError
from azsigner.relay.transport import RelayResponse, Transport

NOW = datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)
SHARED_KEY = base64.b64encode(b"testkey").decode()


class RecordingTransport(Transport):
    """Transport that records requests and returns a canned response."""

    def __init__(self, response: RelayResponse = None):
        self.requests = []
        self.response = response or RelayResponse(status_code=200, reason_phrase="OK", body=b"ok")

    async def send(self, request: httpx.Request) -> RelayResponse:
        self.requests.append(request)
        return self.response


def blob_credentials(service: str = "blob") -> Credentials:
    return Credentials(account_name="testaccount", account_key=b"testkey", service=service)


class TestFormatHttpDate:
    """Test RFC 1123 date formatting."""

    def test_utc(self):
        assert format_http_date(NOW) == "Mon, 02 Jan 2006 15:04:05 GMT"

    def test_naive_treated_as_utc(self):
        assert format_http_date(datetime(2006, 1, 2, 15, 4, 5)) == "Mon, 02 Jan 2006 15:04:05 GMT"


class TestBuildEndpoint:
    """Test upstream URL construction."""

    def test_path_only(self):
        assert build_endpoint("acct", "blob", "/container/blob") == (
            "https://acct.blob.core.windows.net/container/blob"
        )

    def test_with_query(self):
        assert build_endpoint("acct", "queue", "/", "comp=list") == (
            "https://acct.queue.core.windows.net/?comp=list"
        )

    def test_custom_suffix(self):
        assert build_endpoint("acct", "blob", "/c", endpoint_suffix="core.chinacloudapi.cn") == (
            "https://acct.blob.core.chinacloudapi.cn/c"
        )

    @pytest.mark.parametrize("path", ["/", ""])
    def test_root_without_query_rejected(self, path):
        with pytest.raises(InvalidResourcePathError) as exc_info:
            build_endpoint("acct", "blob", path)

        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("service", ["evil.example/", "blob storage", "Blob", "", "blob.evil"])
    def test_invalid_service_rejected(self, service):
        """Test the service must be a single lower-case host label."""
        with pytest.raises(InvalidServiceError) as exc_info:
            build_endpoint("acct", service, "/c/b")

        assert exc_info.value.status_code == 400

    def test_hyphenated_service(self):
        assert build_endpoint("acct", "blob-secondary", "/c") == "https://acct.blob-secondary.core.windows.net/c"


class TestPrepareRequest:
    """Test headers set on outbound requests."""

    def test_get_request(self):
        """Test date, version and authorization are set."""
        creds = blob_credentials()
        request = httpx.Request("GET", "https://testaccount.blob.core.windows.net/c?restype=container&comp=list")

        string_to_sign = prepare_request(request, creds, now=NOW)

        assert request.headers["x-ms-date"] == "Mon, 02 Jan 2006 15:04:05 GMT"
        assert request.headers["x-ms-version"] == "2024-08-04"
        assert "x-ms-blob-type" not in request.headers
        assert string_to_sign.endswith(
            "x-ms-date:Mon, 02 Jan 2006 15:04:05 GMT,\nx-ms-version:2024-08-04\n"
            "/testaccount/c\ncomp:list\nrestype:container"
        )
        assert request.headers["authorization"].startswith("SharedKey testaccount:")

    def test_client_request_id_signed(self):
        """Test the client request id is sent and covered by the signature."""
        creds = blob_credentials()
        request = httpx.Request("GET", "https://testaccount.blob.core.windows.net/c/b")

        string_to_sign = prepare_request(request, creds, now=NOW, client_request_id="req-1")

        assert request.headers["x-ms-client-request-id"] == "req-1"
        assert "x-ms-client-request-id:req-1,\nx-ms-date:" in string_to_sign

    def test_signature_verifies(self):
        """Test the attached header verifies against the prepared request."""
        creds = blob_credentials()
        request = httpx.Request("PUT", "https://testaccount.blob.core.windows.net/c/b", content=b"hello")

        prepare_request(request, creds, now=NOW)

        descriptor = RequestDescriptor.from_httpx(request)
        assert verify_signature(creds, descriptor, request.headers["authorization"])

    def test_put_blob_headers(self):
        """Test PUT to blob storage sets length and blob type."""
        request = httpx.Request("PUT", "https://testaccount.blob.core.windows.net/c/b", content=b"hello")

        string_to_sign = prepare_request(request, blob_credentials(), now=NOW)

        assert request.headers["content-length"] == "5"
        assert request.headers["x-ms-blob-type"] == "BlockBlob"
        assert string_to_sign.split("\n")[3] == "5"

    def test_post_queue_no_blob_type(self):
        """Test non-blob services do not get a blob type."""
        request = httpx.Request(
            "POST",
            "https://testaccount.queue.core.windows.net/q/messages",
            content=b"<QueueMessage/>",
        )

        prepare_request(request, blob_credentials("queue"), now=NOW)

        assert request.headers["content-length"] == "15"
        assert "x-ms-blob-type" not in request.headers

    def test_empty_put_blank_content_length(self):
        """Test an empty body leaves Content-Length blank in the string-to-sign."""
        request = httpx.Request("PUT", "https://testaccount.blob.core.windows.net/c?restype=container")

        string_to_sign = prepare_request(request, blob_credentials(), now=NOW)

        assert request.headers["content-length"] == "0"
        assert string_to_sign.split("\n")[3] == ""

    def test_custom_api_version(self):
        request = httpx.Request("GET", "https://testaccount.blob.core.windows.net/c/b")

        prepare_request(request, blob_credentials(), now=NOW, api_version="2021-08-06")

        assert request.headers["x-ms-version"] == "2021-08-06"

    def test_default_time_is_now(self):
        request = httpx.Request("GET", "https://testaccount.blob.core.windows.net/c/b")

        prepare_request(request, blob_credentials())

        assert request.headers["x-ms-date"].endswith(" GMT")


class TestRelayDispatcher:
    """Test signing and sending through a transport."""

    @pytest.mark.asyncio
    async def test_dispatch_sends_signed_request(self):
        transport = RecordingTransport()
        dispatcher = RelayDispatcher("testaccount", SHARED_KEY, transport)

        result = await dispatcher.dispatch("GET", "blob", "/c", "restype=container&comp=list", now=NOW)

        assert result.status_code == 200
        assert len(transport.requests) == 1
        sent = transport.requests[0]
        assert str(sent.url) == "https://testaccount.blob.core.windows.net/c?restype=container&comp=list"
        creds = Credentials.from_base64("testaccount", SHARED_KEY, "blob")
        assert verify_signature(creds, RequestDescriptor.from_httpx(sent), sent.headers["authorization"])

    @pytest.mark.asyncio
    async def test_dispatch_body(self):
        transport = RecordingTransport()
        dispatcher = RelayDispatcher("testaccount", SHARED_KEY, transport)

        await dispatcher.dispatch("PUT", "blob", "/c/b.txt", body=b"data", now=NOW)

        sent = transport.requests[0]
        assert sent.content == b"data"
        assert sent.headers["x-ms-blob-type"] == "BlockBlob"

    @pytest.mark.asyncio
    async def test_dispatch_bad_key(self):
        transport = RecordingTransport()
        dispatcher = RelayDispatcher("testaccount", "not base64!", transport)

        with pytest.raises(DecodeError):
            await dispatcher.dispatch("GET", "blob", "/c/b")

        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_dispatch_bad_query(self):
        dispatcher = RelayDispatcher("testaccount", SHARED_KEY, RecordingTransport())

        with pytest.raises(QueryParseError):
            await dispatcher.dispatch("GET", "blob", "/c", "a=1;b=2")

    @pytest.mark.asyncio
    async def test_dispatch_root_rejected(self):
        dispatcher = RelayDispatcher("testaccount", SHARED_KEY, RecordingTransport())

        with pytest.raises(InvalidResourcePathError):
            await dispatcher.dispatch("GET", "blob", "/")

    @pytest.mark.asyncio
    async def test_dispatch_invalid_service(self):
        transport = RecordingTransport()
        dispatcher = RelayDispatcher("testaccount", SHARED_KEY, transport)

        with pytest.raises(InvalidServiceError):
            await dispatcher.dispatch("GET", "evil.example/", "/c/b")

        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_dispatch_client_request_id(self):
        transport = RecordingTransport()
        dispatcher = RelayDispatcher("testaccount", SHARED_KEY, transport)

        await dispatcher.dispatch("GET", "queue", "/q/messages", client_request_id="abc-123", now=NOW)

        assert transport.requests[0].headers["x-ms-client-request-id"] == "abc-123"

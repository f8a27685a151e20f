"""
Relay exceptions for azsigner.

Each exception carries the HTTP status the relay answers with.
"""

from typing import Optional


class RelayError(Exception):
    """Base exception for relay errors."""
    
    status_code = 500
    
    def __init__(self, message: str, error_code: str = "RelayFailed"):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class AccountNotConfiguredError(RelayError):
    """Raised when no storage account has been configured for the relay."""
    
    def __init__(self, message: str = "Error retrieving Azure account name"):
        super().__init__(message, "AccountNotConfigured")


class MissingServiceError(RelayError):
    """Raised when the inbound request does not name a target service."""
    
    status_code = 400
    
    def __init__(self, message: str = "ERROR: You must include the 'x-az-service' header in your request"):
        super().__init__(message, "MissingRequiredHeader")


class InvalidResourcePathError(RelayError):
    """Raised when the request targets the account root without a query string."""
    
    status_code = 400
    
    def __init__(
        self,
        message: str = (
            "If you are not including a query string, you must have a more specific "
            "URI path (i.e. /containerName/path/to/object)"
        ),
    ):
        super().__init__(message, "InvalidUri")


class UpstreamError(RelayError):
    """Raised when the outbound request fails or returns a non-2xx status."""
    
    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        body: bytes = b"",
    ):
        super().__init__(message, "UpstreamFailed")
        self.upstream_status = upstream_status
        self.body = body
        if upstream_status is not None:
            self.status_code = 400


class InvalidServiceError(RelayError):
    """Raised when x-az-service is not a bare service name such as "blob"."""

    status_code = 400

    def __init__(self, service: str):
        super().__init__(
            f"ERROR: Invalid 'x-az-service' header {service!r}: expected a service name like 'blob' or 'queue'",
            "InvalidHeaderValue",
        )

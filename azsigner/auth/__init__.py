"""
azsigner signing core.

Builds the Azure Storage SharedKey string-to-sign for a request and signs it
with the account key.
"""

from azsigner.auth.exceptions import (
    SigningError,
    DecodeError,
    QueryParseError,
    InvalidAuthorizationHeaderError,
)
from azsigner.auth.credentials import Credentials, parse_credentials
from azsigner.auth.canonicalizer import (
    RequestDescriptor,
    build_string_to_sign,
    build_canonicalized_headers,
    build_canonicalized_resource,
    parse_query,
)
from azsigner.auth.signer import (
    compute_signature,
    build_authorization_header,
    sign_request,
    parse_authorization_header,
    verify_signature,
)

__all__ = [
    # Exceptions
    "SigningError",
    "DecodeError",
    "QueryParseError",
    "InvalidAuthorizationHeaderError",
    # Credentials
    "Credentials",
    "parse_credentials",
    # Canonicalization
    "RequestDescriptor",
    "build_string_to_sign",
    "build_canonicalized_headers",
    "build_canonicalized_resource",
    "parse_query",
    # Signing
    "compute_signature",
    "build_authorization_header",
    "sign_request",
    "parse_authorization_header",
    "verify_signature",
]

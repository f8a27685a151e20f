"""
HMAC-SHA256 signing for Azure Storage SharedKey authorization.

Signature = Base64(HMAC-SHA256(UTF8(StringToSign), AccountKey))
Header    = "SharedKey <account>:<signature>"
"""

import base64
import hashlib
import hmac
import logging
from typing import Tuple

from azsigner.auth.canonicalizer import RequestDescriptor, build_string_to_sign
from azsigner.auth.credentials import Credentials
from azsigner.auth.exceptions import InvalidAuthorizationHeaderError

logger = logging.getLogger(__name__)

AUTH_SCHEME = "SharedKey"


def compute_signature(credentials: Credentials, string_to_sign: str) -> str:
    """
    Compute the base64-encoded HMAC-SHA256 of a string-to-sign.

    Args:
        credentials: Credentials holding the decoded account key
        string_to_sign: Canonical string

    Returns:
        Base64-encoded signature (standard alphabet, padded)
    """
    digest = hmac.new(
        credentials.account_key,
        string_to_sign.encode("utf-8", "surrogateescape"),
        hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def build_authorization_header(credentials: Credentials, string_to_sign: str) -> str:
    """Sign a string-to-sign and format the Authorization header value."""
    signature = compute_signature(credentials, string_to_sign)
    return f"{AUTH_SCHEME} {credentials.account_name}:{signature}"


def sign_request(credentials: Credentials, request: RequestDescriptor) -> str:
    """
    Canonicalize a request and return its Authorization header value.

    Raises:
        QueryParseError: If the request query string is malformed
    """
    string_to_sign = build_string_to_sign(credentials, request)
    logger.debug(f"Signing {request.method} {request.path} for account {credentials.account_name}")
    return build_authorization_header(credentials, string_to_sign)


def parse_authorization_header(auth_header: str) -> Tuple[str, str]:
    """
    Parse a SharedKey Authorization header.

    Expected format: "SharedKey account:signature"

    Returns:
        Tuple of (account_name, signature)

    Raises:
        InvalidAuthorizationHeaderError: If header is malformed
    """
    parts = auth_header.strip().split(maxsplit=1)

    if len(parts) != 2:
        raise InvalidAuthorizationHeaderError(
            "Authorization header must be in format: SharedKey account:signature"
        )

    scheme, credentials = parts

    if scheme.lower() != AUTH_SCHEME.lower():
        raise InvalidAuthorizationHeaderError(f"Expected SharedKey scheme, got: {scheme}")

    account_name, sep, signature = credentials.partition(":")

    if not sep or not account_name or not signature:
        raise InvalidAuthorizationHeaderError(
            "Credentials must be in format: account:signature"
        )

    return account_name, signature


def verify_signature(credentials: Credentials, request: RequestDescriptor, auth_header: str) -> bool:
    """
    Check an Authorization header against the signature computed for a request.

    Raises:
        InvalidAuthorizationHeaderError: If auth_header is malformed
        QueryParseError: If the request query string is malformed
    """
    account_name, provided_signature = parse_authorization_header(auth_header)
    if account_name != credentials.account_name:
        logger.warning(f"Authorization header names account '{account_name}', expected '{credentials.account_name}'")
        return False

    expected_signature = compute_signature(credentials, build_string_to_sign(credentials, request))
    if not hmac.compare_digest(provided_signature.encode("utf-8"), expected_signature.encode("utf-8")):
        logger.warning(f"Signature mismatch for account {account_name}")
        return False
    return True

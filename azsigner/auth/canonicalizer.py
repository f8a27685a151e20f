"""
String-to-sign construction for Azure Storage SharedKey authorization.

Format (14 fields joined by newlines):
    VERB
    Content-Encoding
    Content-Language
    Content-Length        (empty when "0")
    Content-MD5
    Content-Type
    Date                  (always empty, x-ms-date is canonicalized instead)
    If-Modified-Since
    If-Match
    If-None-Match
    If-Unmodified-Since
    Range
    CanonicalizedHeaders
    CanonicalizedResource

Reference: https://learn.microsoft.com/en-us/rest/api/storageservices/authorize-with-shared-key

CanonicalizedHeaders entries are separated by a comma and a newline
(CANONICAL_HEADER_SEPARATOR) to reproduce this project's reference
string-to-sign. Azure Storage itself expects a bare newline between entries.
The relay always sends at least x-ms-date and x-ms-version, so the live
service rejects every relayed request until that constant is a bare newline.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import unquote_plus, urlsplit

import httpx

from azsigner.auth.credentials import Credentials
from azsigner.auth.exceptions import QueryParseError

HeaderPairs = Tuple[Tuple[str, str], ...]
HeaderInput = Union[
    httpx.Headers,
    Mapping[str, Union[str, Sequence[str]]],
    Iterable[Tuple[str, str]],
    None,
]

CANONICAL_HEADER_PREFIX = "x-ms-"

# Separator between entries of the canonicalized header block. Azure Storage
# accepts only "\n" here; see the module docstring.
CANONICAL_HEADER_SEPARATOR = ",\n"

_INVALID_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass(frozen=True)
class RequestDescriptor:
    """Read-only view of the parts of an HTTP request that get signed."""

    method: str
    headers: Optional[HeaderPairs] = None
    path: str = ""  # Escaped form
    query: str = ""  # Raw query string, without "?"

    @classmethod
    def create(
        cls,
        method: str,
        url: str,
        headers: HeaderInput = None,
    ) -> "RequestDescriptor":
        """
        Build a descriptor from a URL string.

        The path keeps its percent-escaped form; the query is parsed later,
        during canonicalization.
        """
        parts = urlsplit(url)
        return cls(
            method=method,
            headers=normalize_headers(headers),
            path=parts.path,
            query=parts.query,
        )

    @classmethod
    def from_httpx(cls, request: httpx.Request) -> "RequestDescriptor":
        """Build a descriptor from an outbound httpx request."""
        raw_path = request.url.raw_path.decode("ascii")
        return cls(
            method=request.method,
            headers=tuple(request.headers.multi_items()),
            path=raw_path.split("?", 1)[0],
            query=request.url.query.decode("ascii"),
        )


def normalize_headers(headers: HeaderInput) -> Optional[HeaderPairs]:
    """
    Flatten supported header collections into ordered (name, value) pairs.

    Mappings may carry a single string or a sequence of values per name.
    """
    if headers is None:
        return None
    if isinstance(headers, httpx.Headers):
        return tuple(headers.multi_items())
    if isinstance(headers, Mapping):
        pairs: List[Tuple[str, str]] = []
        for name, value in headers.items():
            if isinstance(value, str):
                pairs.append((name, value))
            else:
                pairs.extend((name, v) for v in value)
        return tuple(pairs)
    return tuple((name, value) for name, value in headers)


def get_header(headers: Optional[HeaderPairs], name: str) -> str:
    """Return the first value of a header (case-insensitive), or ""."""
    if headers is None:
        return ""
    wanted = name.lower()
    for key, value in headers:
        if key.lower() == wanted:
            return value
    return ""


def build_string_to_sign(credentials: Credentials, request: RequestDescriptor) -> str:
    """
    Build the SharedKey string-to-sign for a request.

    Args:
        credentials: Account credentials (only the account name is used)
        request: Request to canonicalize

    Returns:
        Newline-joined string of exactly 14 fields

    Raises:
        QueryParseError: If the query string is malformed
    """
    headers = request.headers

    # Zero-length bodies must leave Content-Length empty
    content_length = get_header(headers, "Content-Length")
    if content_length == "0":
        content_length = ""

    canonicalized_resource = build_canonicalized_resource(credentials, request.path, request.query)

    return "\n".join([
        request.method,
        get_header(headers, "Content-Encoding"),
        get_header(headers, "Content-Language"),
        content_length,
        get_header(headers, "Content-MD5"),
        get_header(headers, "Content-Type"),
        "",  # Date
        get_header(headers, "If-Modified-Since"),
        get_header(headers, "If-Match"),
        get_header(headers, "If-None-Match"),
        get_header(headers, "If-Unmodified-Since"),
        get_header(headers, "Range"),
        build_canonicalized_headers(headers),
        canonicalized_resource,
    ])


def build_canonicalized_headers(headers: Optional[HeaderPairs]) -> str:
    """
    Build the CanonicalizedHeaders block from all x-ms-* headers.

    Names are trimmed and lower-cased, values of a repeated name are joined
    with "," in arrival order, and names are sorted lexicographically.
    """
    if not headers:
        return ""

    grouped: Dict[str, List[str]] = {}
    for key, value in headers:
        name = key.strip().lower()
        if name.startswith(CANONICAL_HEADER_PREFIX):
            grouped.setdefault(name, []).append(value)

    return CANONICAL_HEADER_SEPARATOR.join(
        f"{name}:{','.join(grouped[name])}" for name in sorted(grouped)
    )


def build_canonicalized_resource(credentials: Credentials, path: str, query: str) -> str:
    """
    Build the CanonicalizedResource string.

    Format:
        /account-name/escaped/path
        param1:value1,value2
        param2:value3

    Raises:
        QueryParseError: If the query string is malformed
    """
    resource = f"/{credentials.account_name}{path if path else '/'}"

    params = parse_query(query)
    for name in sorted(params):
        values = sorted(params[name])
        resource += f"\n{name.lower()}:{','.join(values)}"

    return resource


def parse_query(query: str) -> Dict[str, List[str]]:
    """
    Parse a raw query string into name -> values.

    Pairs are separated by "&"; names and values are unescaped ("+" is a
    space). Empty pairs are skipped and a pair without "=" has an empty value.

    Raises:
        QueryParseError: On a ";" separator or an invalid percent escape
    """
    params: Dict[str, List[str]] = {}

    for pair in query.split("&"):
        if not pair:
            continue
        if ";" in pair:
            raise QueryParseError("failed to parse query params: invalid semicolon separator in query")

        name, _, value = pair.partition("=")
        params.setdefault(_unescape(name), []).append(_unescape(value))

    return params


def _unescape(component: str) -> str:
    match = _INVALID_ESCAPE.search(component)
    if match:
        bad = component[match.start():match.start() + 3]
        raise QueryParseError(f"failed to parse query params: invalid URL escape {bad!r}")
    return unquote_plus(component, errors="surrogateescape")

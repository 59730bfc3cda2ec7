"""Header policies for outbound requests and client responses.

Both directions are pure functions over (name, value) pairs so every hop gets
a fresh header set derived from the client's original headers.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

HeaderItems = tuple[tuple[str, str], ...]

# SHA-256 of an empty payload, required by S3 for unsigned GET/HEAD
EMPTY_BODY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

AMZ_HEADERS = frozenset(
    [
        "x-amz-content-sha256",
        "x-amz-date",
        "x-amz-security-token",
        "x-amz-user-agent",
    ]
)

HOP_BY_HOP_HEADERS = frozenset(
    [
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    ]
)

# Recomputed by the HTTP client for the outbound body
REQUEST_SKIP_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}

BLOCKED_RESPONSE_HEADERS = frozenset(
    [
        "content-security-policy",
        "content-security-policy-report-only",
        "clear-site-data",
        "cross-origin-embedder-policy",
        "cross-origin-opener-policy",
        "cross-origin-resource-policy",
    ]
)

CORS_HEADERS: HeaderItems = (
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "GET, HEAD, POST, OPTIONS"),
    ("Access-Control-Allow-Headers", "Content-Type, Authorization"),
)

REGISTRY_API_VERSION = ("Docker-Distribution-API-Version", "registry/2.0")


def is_amazon_s3(host: str) -> bool:
    host = host.lower()
    return host in ("amazonaws.com", "amazonaws.com.cn") or host.endswith(
        (".amazonaws.com", ".amazonaws.com.cn")
    )


def amz_date(now: Optional[datetime] = None) -> str:
    """Format a timestamp as ISO-8601 basic, e.g. 20250825T101530Z."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _without(items: Iterable[tuple[str, str]], names: Iterable[str]) -> HeaderItems:
    drop = {name.lower() for name in names}
    return tuple((k, v) for k, v in items if k.lower() not in drop)


def build_outbound_headers(
    client_headers: Iterable[tuple[str, str]],
    host: str,
    authorization: Optional[str] = None,
    drop_authorization: bool = False,
    now: Optional[datetime] = None,
) -> HeaderItems:
    """Build the header set for one upstream dispatch.

    Args:
        client_headers: Headers received from the client
        host: Destination hostname, becomes the Host header
        authorization: Authorization value overriding the client's one
        drop_authorization: Remove any Authorization header (anonymous retry)
        now: Clock override for x-amz-date

    Returns:
        Ordered header pairs
    """
    headers = _without(client_headers, REQUEST_SKIP_HEADERS | AMZ_HEADERS)

    if authorization is not None or drop_authorization:
        headers = _without(headers, ["authorization"])
    if authorization is not None:
        headers += (("Authorization", authorization),)

    headers = (("Host", host),) + headers

    if is_amazon_s3(host):
        headers += (
            ("x-amz-content-sha256", EMPTY_BODY_SHA256),
            ("x-amz-date", amz_date(now)),
        )

    return headers


def sanitize_response_headers(
    upstream_headers: Iterable[tuple[str, str]],
    is_registry_request: bool,
) -> HeaderItems:
    """Rewrite upstream response headers for the client.

    Drops security headers the proxy cannot honour and hop-by-hop headers,
    then sets CORS headers. Registry responses also get the API version
    header and lose any Location header. Applying it twice is a no-op.
    """
    headers = _without(upstream_headers, BLOCKED_RESPONSE_HEADERS | HOP_BY_HOP_HEADERS)
    headers = _without(headers, [name for name, _ in CORS_HEADERS]) + CORS_HEADERS

    if is_registry_request:
        headers = _without(headers, [REGISTRY_API_VERSION[0], "location"])
        headers += (REGISTRY_API_VERSION,)

    return headers

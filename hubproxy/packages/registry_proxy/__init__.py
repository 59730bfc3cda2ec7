"""Registry proxy package for Docker Registry v2 and GitHub passthrough.

This package resolves inbound proxy paths to upstream origins, enforces the
allow-list, answers registry bearer challenges and follows storage-backend
redirects server side.
"""

from .auth import fetch_token, negotiate, parse_bearer_challenge
from .errors import (
    MalformedRequest,
    PolicyDenied,
    ProxyError,
    RedirectLimitExceeded,
    UpstreamTransportFailure,
)
from .headers import build_outbound_headers, sanitize_response_headers
from .policy import check_access
from .proxy import error_response, proxy_request, raw_request_path
from .redirects import chase_redirects
from .resolver import build_target_url, is_proxy_path, resolve_target
from .types import (
    AccessDecision,
    ApiKind,
    ProxyPolicy,
    ProxyTarget,
    TokenAbsent,
    TokenFound,
)

__all__ = [
    # Types
    "AccessDecision",
    "ApiKind",
    "ProxyPolicy",
    "ProxyTarget",
    "TokenAbsent",
    "TokenFound",
    # Errors
    "MalformedRequest",
    "PolicyDenied",
    "ProxyError",
    "RedirectLimitExceeded",
    "UpstreamTransportFailure",
    # Pipeline
    "build_outbound_headers",
    "build_target_url",
    "chase_redirects",
    "check_access",
    "error_response",
    "fetch_token",
    "is_proxy_path",
    "negotiate",
    "parse_bearer_challenge",
    "proxy_request",
    "raw_request_path",
    "resolve_target",
    "sanitize_response_headers",
]

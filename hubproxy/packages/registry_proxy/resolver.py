"""Inbound path resolution.

Maps the path a client sent to the proxy onto an upstream origin. Supported
shapes:

    /v2/<repo...>/manifests/<ref>     Registry v2 API
    /v2/<repo...>/blobs/<digest>
    /https://<host>/<path...>         explicit upstream URL
    /<allowed host>/<path...>         generic passthrough
    /docker.io/<ns>/<image>           Docker Hub shorthands
    /library/<image>
    /<ns>/<image>
    /<image>
"""

import re

import httpx

from .errors import MalformedRequest
from .types import API_SELECTORS, ApiKind, ProxyPolicy, ProxyTarget

V2_PREFIX = "/v2/"

# Some front ends collapse "//" so "https:/host" is accepted too
ABSOLUTE_URL_PATTERN = re.compile(r"^(https?):/+(.*)$", re.IGNORECASE)


def _segments(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def _parse_absolute_url(path: str) -> str | None:
    match = ABSOLUTE_URL_PATTERN.match(path.lstrip("/"))
    if not match:
        return None
    scheme, rest = match.groups()
    return f"{scheme.lower()}://{rest}"


def _normalize_image_path(
    parts: list[str], policy: ProxyPolicy
) -> tuple[str, str]:
    """Resolve Docker-style image shorthands to (origin_host, origin_path)."""
    head = parts[0]

    if head == policy.docker_hub_alias:
        rest = parts[1:]
        if len(rest) == 1:
            return policy.docker_hub_registry, f"library/{rest[0]}"
        return policy.docker_hub_registry, "/".join(rest)

    if head in policy.allowed_hosts:
        return head, "/".join(parts[1:])

    if head == "library" or len(parts) >= 2:
        return policy.docker_hub_registry, "/".join(parts)

    # Official image shorthand, e.g. "nginx"
    return policy.docker_hub_registry, f"library/{head}"


def resolve_target(path: str, policy: ProxyPolicy) -> ProxyTarget:
    """Resolve an inbound request path into a ProxyTarget.

    The /v2/ prefix is stripped before the absolute-URL check, so
    "/v2/https://host/x" is treated as the absolute URL "https://host/x".

    Args:
        path: Inbound URL path (e.g., "/v2/nginx/manifests/latest")
        policy: Proxy configuration

    Returns:
        Resolved ProxyTarget

    Raises:
        MalformedRequest: If no target can be derived from the path
    """
    is_v2_request = False
    api_selector: str | None = None
    reference: str | None = None
    api_kind = ApiKind.NONE

    if path.startswith(V2_PREFIX):
        is_v2_request = True
        path = path[len(V2_PREFIX) :]

        v2_parts = _segments(path)
        if _parse_absolute_url(path) is None and len(v2_parts) >= 3:
            api_selector = v2_parts[-2]
            reference = v2_parts[-1]
            api_kind = API_SELECTORS.get(api_selector, ApiKind.NONE)
            path = "/".join(v2_parts[:-2])

    parts = _segments(path)
    if not parts:
        raise MalformedRequest("Invalid request: target domain or path required\n")

    absolute_url = _parse_absolute_url(path)
    if absolute_url is not None:
        try:
            url = httpx.URL(absolute_url)
        except httpx.InvalidURL as e:
            raise MalformedRequest(f"Invalid request: {e}\n") from e
        if not url.host:
            raise MalformedRequest("Invalid request: target domain or path required\n")
        origin_host = url.host
        # raw_path keeps percent-escapes, "%23" must not become a fragment
        origin_path = url.raw_path.decode("ascii").split("?", 1)[0].lstrip("/")
        # The absolute URL replaces the v2 rebuild entirely
        api_selector = None
        reference = None
        api_kind = ApiKind.NONE
    else:
        origin_host, origin_path = _normalize_image_path(parts, policy)

    if origin_host == policy.docker_hub_alias:
        origin_host = policy.docker_hub_registry

    return ProxyTarget(
        origin_host=origin_host,
        origin_path=origin_path,
        is_registry_request=policy.is_registry_host(origin_host),
        api_kind=api_kind,
        reference=reference,
        is_v2_request=is_v2_request,
        api_selector=api_selector,
        absolute_url=absolute_url,
    )


def build_target_url(target: ProxyTarget, query: str = "") -> str:
    """Build the upstream URL for a resolved target.

    Args:
        target: Resolved target
        query: Raw inbound query string without "?" (e.g., "n=10")

    Returns:
        Absolute upstream URL, always https
    """
    if target.absolute_url is not None:
        path = target.origin_path
    elif target.is_registry_request and target.is_v2_request:
        if target.api_selector and target.reference:
            path = (
                f"v2/{target.origin_path}/{target.api_selector}/{target.reference}"
            )
        else:
            path = f"v2/{target.origin_path}"
    else:
        path = target.origin_path

    url = f"https://{target.origin_host}/{path}"
    if query:
        url = f"{url}?{query}"
    return url


def is_proxy_path(path: str, policy: ProxyPolicy) -> bool:
    """Tell proxy paths apart from static site paths.

    Single-segment paths that are not an allow-listed host belong to the
    static site, so "/" and "/index.html" are never proxied.
    """
    return (
        len(_segments(path)) > 1
        or path.startswith(V2_PREFIX)
        or ABSOLUTE_URL_PATTERN.search(path.lstrip("/")) is not None
        or any(path.startswith(f"/{host}") for host in policy.allowed_hosts)
    )

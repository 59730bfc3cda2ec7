"""Registry proxy types and data structures.

This module contains shared types used across the registry proxy package.
No dependencies on hubproxy.* modules to maintain independence.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

import httpx


class ApiKind(str, Enum):
    """Registry v2 endpoint family derived from the URL shape."""

    NONE = "none"
    MANIFEST = "manifest"
    BLOB = "blob"


API_SELECTORS = {
    "manifests": ApiKind.MANIFEST,
    "blobs": ApiKind.BLOB,
}


@dataclass(frozen=True)
class ProxyPolicy:
    """Read-only proxy configuration, built once at startup.

    Attributes:
        allowed_hosts: Hostnames the proxy forwards to (exact match)
        registry_hosts: Subset of allowed_hosts speaking the Registry v2 API
        restrict_paths: Whether allowed_paths is enforced
        allowed_paths: Case-insensitive keywords a path must contain
        docker_hub_registry: Canonical Docker Hub registry host
                            (e.g., "registry-1.docker.io")
        docker_hub_alias: Public Docker Hub name rewritten to the registry
                         host (e.g., "docker.io")
        max_redirects: Upper bound on followed redirect hops
    """

    allowed_hosts: frozenset[str]
    registry_hosts: frozenset[str]
    restrict_paths: bool = False
    allowed_paths: tuple[str, ...] = ()
    docker_hub_registry: str = "registry-1.docker.io"
    docker_hub_alias: str = "docker.io"
    max_redirects: int = 5

    @classmethod
    def from_settings(cls, settings) -> "ProxyPolicy":
        return cls(
            allowed_hosts=frozenset(settings.ALLOWED_HOSTS),
            registry_hosts=frozenset(settings.REGISTRY_HOSTS),
            restrict_paths=settings.RESTRICT_PATHS,
            allowed_paths=tuple(settings.ALLOWED_PATHS),
            docker_hub_registry=settings.DOCKER_HUB_REGISTRY,
            docker_hub_alias=settings.DOCKER_HUB_ALIAS,
            max_redirects=settings.MAX_REDIRECTS,
        )

    def is_registry_host(self, host: str) -> bool:
        return host in self.registry_hosts


@dataclass(frozen=True)
class ProxyTarget:
    """Upstream destination resolved from an inbound request path.

    Attributes:
        origin_host: Bare hostname (e.g., "registry-1.docker.io")
        origin_path: Path on the origin without leading slash
                    (e.g., "library/nginx")
        is_registry_request: True when origin_host is a known registry
        api_kind: Registry v2 endpoint family
        reference: Tag or digest, set when the v2 path carried one
        is_v2_request: True when the inbound path started with /v2/
        api_selector: Raw selector segment (e.g., "manifests", "tags")
        absolute_url: Upstream URL given verbatim by the client, if any
    """

    origin_host: str
    origin_path: str
    is_registry_request: bool = False
    api_kind: ApiKind = ApiKind.NONE
    reference: Optional[str] = None
    is_v2_request: bool = False
    api_selector: Optional[str] = None
    absolute_url: Optional[str] = None


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    status_on_reject: int = 400
    reason: str = ""


@dataclass(frozen=True)
class OutboundRequest:
    """A single upstream dispatch. Rebuilt for every retry and hop."""

    method: str
    url: str
    headers: tuple[tuple[str, str], ...] = ()
    body: Optional[bytes] = None

    @property
    def host(self) -> str:
        return httpx.URL(self.url).host


@dataclass(frozen=True)
class BearerChallenge:
    realm: str
    service: str
    scope: str


@dataclass(frozen=True)
class TokenFound:
    token: str


@dataclass(frozen=True)
class TokenAbsent:
    reason: str = field(default="")


TokenResult = Union[TokenFound, TokenAbsent]

from functools import lru_cache

import httpx

from hubproxy.packages.registry_proxy import ProxyPolicy
from hubproxy.settings import settings


@lru_cache
def proxy_policy_factory() -> ProxyPolicy:
    return ProxyPolicy.from_settings(settings)


def http_client_factory(
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the shared upstream client.

    Redirects are never followed by the client, the proxy chases them itself.
    Accept-Encoding defaults to identity so bodies pass through unmodified
    when the client did not negotiate compression.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=settings.UPSTREAM_CONNECT_TIMEOUT_SECONDS,
            read=settings.UPSTREAM_READ_TIMEOUT_SECONDS,
            write=settings.UPSTREAM_WRITE_TIMEOUT_SECONDS,
            pool=settings.UPSTREAM_POOL_TIMEOUT_SECONDS,
        ),
        follow_redirects=False,
        headers={"Accept-Encoding": "identity"},
        transport=transport,
    )

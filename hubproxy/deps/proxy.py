from typing import Annotated

import httpx
from fastapi import Depends, Request

from hubproxy.factories import proxy_policy_factory
from hubproxy.packages.registry_proxy import ProxyPolicy


def get_proxy_policy() -> ProxyPolicy:
    return proxy_policy_factory()


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


PolicyDep = Annotated[ProxyPolicy, Depends(get_proxy_policy)]
HttpClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from hubproxy.deps.proxy import get_http_client, get_proxy_policy
from hubproxy.main import app
from hubproxy.packages.registry_proxy import ProxyPolicy
from hubproxy.tests.fixtures_upstream import *  # noqa


@pytest.fixture
async def dependency_overrides(http_client: httpx.AsyncClient, policy: ProxyPolicy):
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_proxy_policy] = lambda: policy
    yield
    app.dependency_overrides.clear()


@pytest.fixture
async def client(dependency_overrides):
    """Client talking to the proxy app, upstreams served by FakeUpstream."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://proxy.test"
    ) as ac:
        yield ac

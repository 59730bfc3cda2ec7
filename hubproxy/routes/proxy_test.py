from dataclasses import replace

import httpx
from httpx import AsyncClient

from hubproxy.deps.proxy import get_proxy_policy
from hubproxy.main import app
from hubproxy.packages.registry_proxy import ProxyPolicy
from hubproxy.tests.fixtures_upstream import FakeUpstream, bearer_challenge, redirect

HUB = "https://registry-1.docker.io"
NGINX_MANIFEST = f"{HUB}/v2/library/nginx/manifests/latest"
NGINX_BLOB = f"{HUB}/v2/library/nginx/blobs/sha256:abc"
REALM = "https://auth.example/token"


async def test_registry_version_check(client: AsyncClient):
    response = await client.get("/v2/")

    assert response.status_code == 200
    assert response.json() == {}
    assert response.headers["docker-distribution-api-version"] == "registry/2.0"


async def test_manifest_pull_with_token(client: AsyncClient, upstream: FakeUpstream):
    upstream.add(
        NGINX_MANIFEST,
        bearer_challenge(),
        httpx.Response(
            200,
            headers={"Content-Type": "application/vnd.oci.image.index.v1+json"},
            content=b'{"schemaVersion": 2}',
        ),
    )
    upstream.add(REALM, httpx.Response(200, json={"token": "abc"}))

    response = await client.get("/v2/nginx/manifests/latest")

    assert response.status_code == 200
    assert response.content == b'{"schemaVersion": 2}'
    assert response.headers["docker-distribution-api-version"] == "registry/2.0"
    assert response.headers["access-control-allow-origin"] == "*"
    assert len(upstream.requests_to(REALM)) == 1
    first, retry = upstream.requests_to(NGINX_MANIFEST)
    assert retry.headers["authorization"] == "Bearer abc"
    assert first.headers["host"] == "registry-1.docker.io"


async def test_token_missing_falls_back_to_anonymous(
    client: AsyncClient, upstream: FakeUpstream
):
    upstream.add(NGINX_MANIFEST, bearer_challenge(), httpx.Response(200))
    upstream.add(REALM, httpx.Response(500, text="token service down"))

    response = await client.get(
        "/v2/nginx/manifests/latest",
        headers={"Authorization": "Basic dXNlcjpwYXNz"},
    )

    assert response.status_code == 200
    first, retry = upstream.requests_to(NGINX_MANIFEST)
    assert first.headers["authorization"] == "Basic dXNlcjpwYXNz"
    assert "authorization" not in retry.headers


async def test_second_401_returned_to_client(
    client: AsyncClient, upstream: FakeUpstream
):
    upstream.add(NGINX_MANIFEST, bearer_challenge())
    upstream.add(REALM, httpx.Response(200, json={"token": "abc"}))

    response = await client.get("/v2/nginx/manifests/latest")

    assert response.status_code == 401
    assert response.json() == {"errors": [{"code": "UNAUTHORIZED"}]}
    assert len(upstream.requests_to(NGINX_MANIFEST)) == 2


async def test_blob_redirect_to_s3_absorbed(
    client: AsyncClient, upstream: FakeUpstream
):
    s3_url = "https://bucket.s3.us-east-1.amazonaws.com/layer"
    upstream.add(NGINX_BLOB, redirect(f"{s3_url}?X-Amz-Signature=sig"))
    upstream.add(s3_url, httpx.Response(200, content=b"layer-bytes"))

    response = await client.get("/v2/nginx/blobs/sha256:abc")

    assert response.status_code == 200
    assert response.content == b"layer-bytes"
    assert "location" not in response.headers
    [hop] = upstream.requests_to(s3_url)
    assert hop.headers["host"] == "bucket.s3.us-east-1.amazonaws.com"
    assert "x-amz-content-sha256" in hop.headers
    assert "x-amz-date" in hop.headers


async def test_too_many_redirects(client: AsyncClient, upstream: FakeUpstream):
    upstream.add(NGINX_BLOB, redirect("https://cdn1.example/blob"))
    for n in range(1, 7):
        upstream.add(
            f"https://cdn{n}.example/blob", redirect(f"https://cdn{n + 1}.example/blob")
        )

    response = await client.get("/v2/nginx/blobs/sha256:abc")

    assert response.status_code == 508
    assert response.text == "Too many redirects"
    assert len(upstream.requests) == 6


async def test_unknown_host_rejected(client: AsyncClient, upstream: FakeUpstream):
    response = await client.get("/https://evil.example/payload")

    assert response.status_code == 400
    assert response.text == "Error: Invalid target domain.\n"
    assert upstream.requests == []


async def test_empty_path_rejected_for_non_get(client: AsyncClient):
    response = await client.post("/", content=b"x")

    assert response.status_code == 400
    assert "target domain or path required" in response.text


async def test_restricted_path_rejected(
    client: AsyncClient, upstream: FakeUpstream, policy: ProxyPolicy
):
    app.dependency_overrides[get_proxy_policy] = lambda: replace(
        policy, restrict_paths=True, allowed_paths=("library",)
    )
    upstream.add(NGINX_MANIFEST, httpx.Response(200))

    rejected = await client.get("/v2/someone/image/manifests/latest")
    allowed = await client.get("/v2/library/nginx/manifests/latest")

    assert rejected.status_code == 403
    assert rejected.text == "Error: The path is not in the allowed paths.\n"
    assert allowed.status_code == 200
    assert len(upstream.requests) == 1


async def test_connect_error_returns_500(client: AsyncClient, upstream: FakeUpstream):
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    upstream.add("https://ghcr.io/v2/owner/image/manifests/latest", refuse)

    response = await client.get("/v2/ghcr.io/owner/image/manifests/latest")

    assert response.status_code == 500
    assert response.text.startswith("Error fetching from ghcr.io: ")


async def test_query_string_forwarded(client: AsyncClient, upstream: FakeUpstream):
    tags_url = f"{HUB}/v2/library/nginx/tags/list"
    upstream.add(tags_url, httpx.Response(200, json={"tags": ["latest"]}))

    response = await client.get("/v2/nginx/tags/list?n=10&last=1.25")

    assert response.status_code == 200
    [request] = upstream.requests_to(tags_url)
    assert request.url.params["n"] == "10"
    assert request.url.params["last"] == "1.25"


async def test_github_passthrough_sanitized(
    client: AsyncClient, upstream: FakeUpstream
):
    url = "https://github.com/owner/repo/archive/main.tar.gz"
    upstream.add(
        url,
        httpx.Response(
            200,
            headers={
                "Content-Security-Policy": "default-src 'none'",
                "Cross-Origin-Opener-Policy": "same-origin",
                "Location": "https://github.com/owner/repo",
            },
            content=b"tarball",
        ),
    )

    response = await client.get(f"/{url}")

    assert response.status_code == 200
    assert response.content == b"tarball"
    assert "content-security-policy" not in response.headers
    assert "cross-origin-opener-policy" not in response.headers
    assert response.headers["location"] == "https://github.com/owner/repo"
    assert "docker-distribution-api-version" not in response.headers


async def test_percent_encoded_path_forwarded_verbatim(
    client: AsyncClient, upstream: FakeUpstream
):
    raw = "https://raw.githubusercontent.com/o/r/main"
    upstream.add(f"{raw}/a%23b.txt", httpx.Response(200, content=b"a#b contents"))
    upstream.add(f"{raw}/a", httpx.Response(200, content=b"wrong file"))

    response = await client.get(f"/{raw}/a%23b.txt")

    assert response.status_code == 200
    assert response.content == b"a#b contents"
    assert upstream.requests_to(f"{raw}/a") == []


async def test_github_release_redirect_followed(
    client: AsyncClient, upstream: FakeUpstream
):
    url = "https://github.com/owner/repo/releases/download/v1/tool.tar.gz"
    asset = "https://objects.githubusercontent.com/release-asset/tool.tar.gz"
    upstream.add(url, redirect(asset, status_code=302))
    upstream.add(asset, httpx.Response(200, content=b"asset"))

    response = await client.get(f"/{url}")

    assert response.status_code == 200
    assert response.content == b"asset"


async def test_non_registry_401_not_negotiated(
    client: AsyncClient, upstream: FakeUpstream
):
    url = "https://api.github.com/repos/owner/private"
    upstream.add(url, bearer_challenge())

    response = await client.get(f"/{url}")

    assert response.status_code == 401
    assert upstream.requests_to(REALM) == []


async def test_upload_body_forwarded(client: AsyncClient, upstream: FakeUpstream):
    manifest_url = "https://ghcr.io/v2/owner/image/manifests/v1"
    upstream.add(manifest_url, httpx.Response(201))

    response = await client.put(
        "/v2/ghcr.io/owner/image/manifests/v1",
        content=b'{"schemaVersion": 2}',
        headers={"Content-Type": "application/vnd.oci.image.manifest.v1+json"},
    )

    assert response.status_code == 201
    [request] = upstream.requests_to(manifest_url)
    assert request.method == "PUT"
    assert request.content == b'{"schemaVersion": 2}'


async def test_landing_page_served(client: AsyncClient, upstream: FakeUpstream):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "<html" in response.text
    assert upstream.requests == []


async def test_missing_asset_404(client: AsyncClient, upstream: FakeUpstream):
    response = await client.get("/favicon.png")

    assert response.status_code == 404
    assert response.text == "Not Found"
    assert upstream.requests == []

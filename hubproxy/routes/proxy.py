"""Proxy entrypoint.

All paths not claimed by another router land here. GET requests for plain
site paths are answered from the static assets, everything else goes
through the registry proxy pipeline.

See: https://distribution.github.io/distribution/spec/api/
"""

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from hubproxy.deps.proxy import HttpClientDep, PolicyDep
from hubproxy.packages.registry_proxy import (
    is_proxy_path,
    proxy_request,
    raw_request_path,
)
from hubproxy.services.static_asset_service import serve_static_asset
from hubproxy.settings import settings

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(tags=["Proxy"])

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@router.get("/v2/")
async def registry_version_check():
    """Docker Registry API version check.

    Docker clients probe /v2/ before pulling. The proxy negotiates upstream
    authentication itself, so the probe always succeeds.
    """
    logger.debug("Docker registry version check")

    return JSONResponse(
        status_code=200,
        content={},
        headers={"Docker-Distribution-API-Version": "registry/2.0"},
    )


@router.api_route("/{full_path:path}", methods=PROXY_METHODS)
async def proxy(
    request: Request,
    full_path: str,
    policy: PolicyDep,
    client: HttpClientDep,
):
    path = raw_request_path(request)

    if request.method == "GET" and not is_proxy_path(path, policy):
        return await serve_static_asset(request.url.path, settings.STATIC_DIR)

    return await proxy_request(
        request=request,
        client=client,
        policy=policy,
        total_timeout=settings.UPSTREAM_TOTAL_TIMEOUT_SECONDS,
        token_timeout=settings.TOKEN_TIMEOUT_SECONDS,
    )

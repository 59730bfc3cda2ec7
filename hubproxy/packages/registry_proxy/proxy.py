"""Proxy orchestration for a single inbound request.

Resolve the target, check it against the allow-list, dispatch upstream,
absorb auth challenges and redirects, then stream the sanitized final
response back to the client.
"""

import asyncio
from typing import AsyncIterator, Optional

import httpx
import structlog
from fastapi import Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse

from .dispatch import DispatchContext, dispatch
from .errors import PolicyDenied, ProxyError, UpstreamTransportFailure
from .headers import sanitize_response_headers
from .policy import check_access
from .redirects import chase_redirects
from .resolver import build_target_url, resolve_target
from .types import OutboundRequest, ProxyPolicy

logger = structlog.stdlib.get_logger(__name__)

BODYLESS_METHODS = frozenset(["GET", "HEAD", "OPTIONS"])


def error_response(error: ProxyError) -> PlainTextResponse:
    return PlainTextResponse(error.message, status_code=error.status_code)


def raw_request_path(request: Request) -> str:
    """Inbound path with percent-escapes intact, e.g. "/o/r/a%23b.txt".

    Starlette's request.url.path is decoded, so "%23" or "%3F" would turn
    into a fragment or query once the upstream URL is rebuilt.
    """
    raw_path = request.scope.get("raw_path")
    if not raw_path:
        return request.url.path
    # Some servers include the query string in raw_path
    return raw_path.decode("latin-1").split("?", 1)[0]


async def read_request_body(request: Request) -> Optional[bytes]:
    """Read the inbound body once so retries and hops can replay it.

    Args:
        request: FastAPI request object

    Returns:
        Body bytes, or None for bodyless methods and empty bodies
    """
    if request.method in BODYLESS_METHODS:
        return None
    body = await request.body()
    return body or None


def stream_response(response: httpx.Response, is_registry_request: bool) -> Response:
    """Wrap an unread upstream response for streaming to the client.

    The upstream response is closed once the body is exhausted or the client
    goes away.
    """

    async def generate() -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_raw(chunk_size=65536):
                yield chunk
        finally:
            await response.aclose()

    client_response = StreamingResponse(
        content=generate(), status_code=response.status_code
    )
    for name, value in sanitize_response_headers(
        response.headers.multi_items(), is_registry_request
    ):
        client_response.headers.append(name, value)
    return client_response


async def fetch_final_response(
    ctx: DispatchContext, outbound: OutboundRequest
) -> httpx.Response:
    response = await dispatch(ctx, outbound)
    return await chase_redirects(ctx, response, outbound)


async def proxy_request(
    request: Request,
    client: httpx.AsyncClient,
    policy: ProxyPolicy,
    total_timeout: Optional[float] = None,
    token_timeout: Optional[float] = None,
) -> Response:
    """Proxy an inbound request to the origin its path resolves to.

    Args:
        request: Original FastAPI request from the client
        client: Shared HTTP client, must not follow redirects on its own
        policy: Proxy configuration
        total_timeout: Deadline in seconds for dispatch, auth retry and all
                       redirect hops together (body streaming excluded)
        token_timeout: Timeout in seconds for token endpoint requests

    Returns:
        Streaming response from the final upstream hop, or a plain text
        error response (400, 403, 500, 508)
    """
    path = raw_request_path(request)
    logger.info("Proxy request", method=request.method, path=path)

    try:
        target = resolve_target(path, policy)

        decision = check_access(target, path, policy)
        if not decision.allowed:
            raise PolicyDenied(decision.reason, status_code=decision.status_on_reject)

        ctx = DispatchContext(
            client=client,
            policy=policy,
            method=request.method,
            client_headers=tuple(request.headers.items()),
            body=await read_request_body(request),
            token_timeout=token_timeout,
        )
        outbound = ctx.build(build_target_url(target, request.url.query))

        logger.info(
            "Proxying request",
            method=request.method,
            target_url=outbound.url,
            is_registry_request=target.is_registry_request,
            api_kind=target.api_kind.value,
        )

        try:
            response = await asyncio.wait_for(
                fetch_final_response(ctx, outbound), timeout=total_timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(
                "Timeout while proxying request",
                target_url=outbound.url,
                timeout=total_timeout,
            )
            raise UpstreamTransportFailure(
                target.origin_host, f"timed out after {total_timeout}s"
            ) from e

    except ProxyError as e:
        logger.info(
            "Proxy request rejected",
            path=path,
            status_code=e.status_code,
            error=e.message.strip(),
        )
        return error_response(e)

    return stream_response(response, target.is_registry_request)

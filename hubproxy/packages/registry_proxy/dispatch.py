"""Single upstream dispatch with registry 401 handling.

Every outbound request (initial, auth retry, redirect hop) goes through
dispatch() so the Host and AWS header policies are applied uniformly.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from .auth import negotiate
from .errors import UpstreamTransportFailure
from .headers import HeaderItems, build_outbound_headers
from .types import OutboundRequest, ProxyPolicy, TokenFound

logger = structlog.stdlib.get_logger(__name__)


@dataclass(frozen=True)
class DispatchContext:
    """Per inbound request state shared by all hops.

    Attributes:
        client: Non-redirecting HTTP client
        policy: Proxy configuration
        method: Inbound HTTP method, preserved on every hop
        client_headers: Headers as received from the client
        body: Inbound body, replayed on retries and hops
        token_timeout: Timeout for token endpoint requests in seconds
    """

    client: httpx.AsyncClient
    policy: ProxyPolicy
    method: str
    client_headers: HeaderItems
    body: Optional[bytes] = None
    token_timeout: Optional[float] = None

    def build(
        self,
        url: str,
        authorization: Optional[str] = None,
        drop_authorization: bool = False,
    ) -> OutboundRequest:
        host = httpx.URL(url).host
        return OutboundRequest(
            method=self.method,
            url=url,
            headers=build_outbound_headers(
                self.client_headers,
                host,
                authorization=authorization,
                drop_authorization=drop_authorization,
            ),
            body=self.body,
        )


async def send_upstream(
    client: httpx.AsyncClient, outbound: OutboundRequest
) -> httpx.Response:
    """Issue one request without following redirects, body left unread.

    Raises:
        UpstreamTransportFailure: On any network error
    """
    request = client.build_request(
        outbound.method,
        outbound.url,
        headers=list(outbound.headers),
        content=outbound.body,
    )
    try:
        response = await client.send(request, stream=True, follow_redirects=False)
    except httpx.HTTPError as e:
        logger.error(
            "Upstream request failed",
            method=outbound.method,
            target_url=outbound.url,
            error=str(e),
        )
        raise UpstreamTransportFailure(outbound.host, str(e) or type(e).__name__) from e

    logger.info(
        "Upstream response received",
        method=outbound.method,
        target_url=outbound.url,
        status_code=response.status_code,
    )
    return response


async def dispatch(ctx: DispatchContext, outbound: OutboundRequest) -> httpx.Response:
    """Send a request, answering a registry bearer challenge at most once.

    A 401 from a registry host with a bearer challenge triggers one token
    lookup and one retry: with the token when one was issued, anonymously
    otherwise. Whatever the retry returns is final.
    """
    response = await send_upstream(ctx.client, outbound)

    if response.status_code != 401 or not ctx.policy.is_registry_host(outbound.host):
        return response

    try:
        result = await negotiate(
            ctx.client,
            response.headers.get("www-authenticate"),
            outbound.host,
            timeout=ctx.token_timeout,
        )
    except BaseException:
        # Includes cancellation by the caller's total deadline
        await response.aclose()
        raise
    if result is None:
        return response

    await response.aclose()
    if isinstance(result, TokenFound):
        logger.info("Retrying with token", target_url=outbound.url)
        retry = ctx.build(outbound.url, authorization=f"Bearer {result.token}")
    else:
        logger.info(
            "No token acquired, falling back to anonymous request",
            target_url=outbound.url,
            reason=result.reason,
        )
        retry = ctx.build(outbound.url, drop_authorization=True)

    return await send_upstream(ctx.client, retry)

"""Server-side redirect following.

Registries answer blob requests with redirects to storage backends (S3, CDN
fronts) which clients may not be able to reach. Those redirects are followed
here so only the final response is ever returned to the client.
"""

import httpx
import structlog

from .dispatch import DispatchContext, dispatch
from .errors import RedirectLimitExceeded, UpstreamTransportFailure
from .types import OutboundRequest

logger = structlog.stdlib.get_logger(__name__)

REDIRECT_STATUSES = frozenset([301, 302, 307, 308])


def is_redirect(response: httpx.Response) -> bool:
    return response.status_code in REDIRECT_STATUSES and "location" in response.headers


async def chase_redirects(
    ctx: DispatchContext,
    response: httpx.Response,
    outbound: OutboundRequest,
    hop_count: int = 0,
) -> httpx.Response:
    """Follow redirects until a non-redirect response arrives.

    Each hop is rebuilt from the client's headers for the new host, so the
    S3 header policy is re-evaluated per hop. An Authorization header echoed
    on a redirect response is carried onto the next hop.

    Args:
        ctx: Dispatch context of the inbound request
        response: Response that may be a redirect
        outbound: Request that produced the response
        hop_count: Hops already followed

    Returns:
        First non-redirect response, body unread

    Raises:
        RedirectLimitExceeded: If another hop would exceed policy.max_redirects
    """
    while is_redirect(response):
        location = response.headers["location"]
        if hop_count >= ctx.policy.max_redirects:
            logger.warning("Max redirects reached", location=location)
            await response.aclose()
            raise RedirectLimitExceeded(location)

        hop_count += 1
        try:
            next_url = str(httpx.URL(outbound.url).join(location))
        except httpx.InvalidURL as e:
            await response.aclose()
            raise UpstreamTransportFailure(
                outbound.host, f"bad redirect location: {e}"
            ) from e
        echoed_authorization = response.headers.get("authorization")
        await response.aclose()

        logger.info("Following redirect", location=next_url, hop=hop_count)
        outbound = ctx.build(next_url, authorization=echoed_authorization)
        response = await dispatch(ctx, outbound)

    return response

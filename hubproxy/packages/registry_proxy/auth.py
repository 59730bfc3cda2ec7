"""Docker Registry v2 bearer token negotiation.

Registries answer unauthenticated requests with

    401 WWW-Authenticate: Bearer realm="https://auth.docker.io/token",
                          service="registry.docker.io",
                          scope="repository:library/nginx:pull"

and expect the client to fetch a token from the realm and retry. Failure to
get a token is a normal outcome: public images can still be pulled
anonymously.

See: https://distribution.github.io/distribution/spec/auth/token/
"""

import re
from typing import Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from .types import BearerChallenge, TokenAbsent, TokenFound, TokenResult

logger = structlog.stdlib.get_logger(__name__)

BEARER_CHALLENGE_PATTERN = re.compile(
    r'Bearer realm="([^"]+)",service="([^"]*)",scope="([^"]*)"'
)


class TokenResponse(BaseModel):
    """Token endpoint body. Docker Hub sends both fields, others only one."""

    model_config = ConfigDict(extra="ignore")

    token: Optional[str] = None
    access_token: Optional[str] = None

    def value(self) -> Optional[str]:
        return self.token or self.access_token


def parse_bearer_challenge(header: Optional[str]) -> Optional[BearerChallenge]:
    if not header:
        return None
    match = BEARER_CHALLENGE_PATTERN.search(header)
    if not match:
        return None
    realm, service, scope = match.groups()
    return BearerChallenge(realm=realm, service=service, scope=scope)


async def fetch_token(
    client: httpx.AsyncClient,
    challenge: BearerChallenge,
    origin_host: str,
    timeout: Optional[float] = None,
) -> TokenResult:
    """Exchange a bearer challenge for a token.

    Args:
        client: HTTP client used for the token request
        challenge: Parsed WWW-Authenticate challenge
        origin_host: Registry host, used when the challenge names no service
        timeout: Per-request timeout override in seconds

    Returns:
        TokenFound, or TokenAbsent for any failure
    """
    service = challenge.service or origin_host
    logger.info(
        "Fetching registry token",
        realm=challenge.realm,
        service=service,
        scope=challenge.scope,
    )

    request_kwargs = {}
    if timeout is not None:
        request_kwargs["timeout"] = timeout

    try:
        response = await client.get(
            challenge.realm,
            params={"service": service, "scope": challenge.scope},
            headers={"Accept": "application/json"},
            **request_kwargs,
        )
    except httpx.HTTPError as e:
        logger.warning("Error fetching token", realm=challenge.realm, error=str(e))
        return TokenAbsent(reason=str(e))

    if not response.is_success:
        logger.warning(
            "Token request failed",
            realm=challenge.realm,
            status_code=response.status_code,
        )
        return TokenAbsent(reason=f"token endpoint returned {response.status_code}")

    try:
        token = TokenResponse.model_validate_json(response.content).value()
    except ValidationError as e:
        logger.warning("Unreadable token response", realm=challenge.realm, error=str(e))
        return TokenAbsent(reason="unreadable token response")

    if not token:
        logger.warning("No token found in response", realm=challenge.realm)
        return TokenAbsent(reason="no token in response")

    logger.debug("Token acquired", realm=challenge.realm)
    return TokenFound(token=token)


async def negotiate(
    client: httpx.AsyncClient,
    challenge_header: Optional[str],
    origin_host: str,
    timeout: Optional[float] = None,
) -> Optional[TokenResult]:
    """Answer a registry 401 challenge.

    Returns:
        None when the header is not a usable bearer challenge (the 401 is
        forwarded as is), otherwise the token lookup result
    """
    challenge = parse_bearer_challenge(challenge_header)
    if challenge is None:
        logger.info("No usable bearer challenge in 401 response", host=origin_host)
        return None
    return await fetch_token(client, challenge, origin_host, timeout=timeout)

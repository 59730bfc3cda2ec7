"""Allow-list checks for resolved targets."""

import structlog

from .types import AccessDecision, ProxyPolicy, ProxyTarget

logger = structlog.stdlib.get_logger(__name__)


def check_access(
    target: ProxyTarget, raw_path: str, policy: ProxyPolicy
) -> AccessDecision:
    """Decide whether a resolved target may be proxied.

    Hosts are matched exactly against the allow-list. When path restriction
    is enabled, registry requests are checked on their normalized repository
    path and everything else on the raw inbound path.

    Args:
        target: Resolved target
        raw_path: Inbound request path as received
        policy: Proxy configuration

    Returns:
        AccessDecision, 400 for unknown hosts and 403 for disallowed paths
    """
    if target.origin_host not in policy.allowed_hosts:
        logger.info("Blocked: domain not in allowed list", host=target.origin_host)
        return AccessDecision(
            allowed=False,
            status_on_reject=400,
            reason="Error: Invalid target domain.\n",
        )

    if policy.restrict_paths:
        check_path = target.origin_path if target.is_registry_request else raw_path
        lowered = check_path.lower()
        if not any(keyword.lower() in lowered for keyword in policy.allowed_paths):
            logger.info("Blocked: path not in allowed paths", path=check_path)
            return AccessDecision(
                allowed=False,
                status_on_reject=403,
                reason="Error: The path is not in the allowed paths.\n",
            )

    return AccessDecision(allowed=True)

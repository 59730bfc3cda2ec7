import sentry_sdk

from hubproxy.settings import settings
from hubproxy.utils.logging_utils import redact_query, redact_url


def scrub_request_urls(event, hint):
    request = event.get("request") or {}
    if request.get("url"):
        request["url"] = redact_url(request["url"])
    if request.get("query_string"):
        request["query_string"] = redact_query(request["query_string"])
    return event


def init_sentry():
    if not settings.SENTRY_DSN:
        return

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT or None,
        traces_sample_rate=0.01,
        send_default_pii=False,
        before_send=scrub_request_urls,
    )

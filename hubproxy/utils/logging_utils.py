import logging
import time
from enum import Enum

import httpx
import structlog
from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from structlog.typing import EventDict, Processor, WrappedLogger
from uvicorn.protocols.utils import get_path_with_query_string


class LogFormats(str, Enum):
    JSON = "json"
    CONSOLE = "console"


# Pre-signed storage URLs carry credentials in the query string
SENSITIVE_QUERY_PARAMS = frozenset(
    [
        "x-amz-signature",
        "x-amz-credential",
        "x-amz-security-token",
        "signature",
        "sig",
        "token",
    ]
)
URL_FIELDS = ("target_url", "location", "realm", "url")
REDACTED = "REDACTED"


def redact_query(query: str) -> str:
    params = httpx.QueryParams(query)
    if not any(key.lower() in SENSITIVE_QUERY_PARAMS for key in params.keys()):
        return query
    return str(
        httpx.QueryParams(
            [
                (key, REDACTED if key.lower() in SENSITIVE_QUERY_PARAMS else value)
                for key, value in params.multi_items()
            ]
        )
    )


def redact_url(url: str) -> str:
    """Mask credential query parameters, e.g. ?X-Amz-Signature=REDACTED."""
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return url

    query = parsed.query.decode("ascii")
    redacted = redact_query(query) if query else query
    if redacted == query:
        return url
    return str(parsed.copy_with(query=redacted.encode("ascii")))


def redact_urls(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    for field in URL_FIELDS:
        value = event_dict.get(field)
        if isinstance(value, str):
            event_dict[field] = redact_url(value)
    return event_dict


def _shared_processors(log_format: LogFormats) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.stdlib.ExtraAdder(),
        redact_urls,
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if log_format == LogFormats.JSON:
        processors.append(structlog.processors.format_exc_info)
    return processors


def configure_logging(log_format: LogFormats, log_level: str) -> None:
    """Route structlog and stdlib logging (uvicorn, httpx) through one renderer."""
    log_renderer: Processor
    if log_format == LogFormats.CONSOLE:
        log_renderer = structlog.dev.ConsoleRenderer()
    else:
        log_renderer = structlog.processors.JSONRenderer()

    processors = _shared_processors(log_format)

    structlog.configure(
        processors=processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            log_renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True

    # Replaced by ProxyAccessLogMiddleware
    logging.getLogger("uvicorn.access").handlers.clear()
    logging.getLogger("uvicorn.access").propagate = False

    # Upstream hops are logged by the proxy pipeline
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logger_fastapi(app: FastAPI, log_format: LogFormats, log_level: str):
    configure_logging(log_format, log_level)
    app.add_middleware(ProxyAccessLogMiddleware)
    app.add_middleware(CorrelationIdMiddleware)


access_logger = structlog.stdlib.get_logger("hubproxy.access")


class ProxyAccessLogMiddleware(BaseHTTPMiddleware):
    """Bind the request id to every log line and write one access log entry.

    Duration covers upstream resolution (auth, redirects) but not body
    streaming, which happens after the response object is returned.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        structlog.contextvars.clear_contextvars()
        request_id = correlation_id.get()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            structlog.stdlib.get_logger("hubproxy.error").exception(
                "Uncaught exception"
            )
            raise
        finally:
            duration = time.perf_counter() - start_time
            url = redact_url(get_path_with_query_string(request.scope))  # type: ignore
            access_logger.info(
                f'"{request.method} {url}" {status_code}',
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                client=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
                duration=duration,
            )

        response.headers["X-Process-Time"] = f"{duration:.6f}"
        return response

from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import JSONResponse

from hubproxy.factories import http_client_factory, proxy_policy_factory
from hubproxy.packages.registry_proxy import ProxyError, error_response
from hubproxy.routes import health, proxy
from hubproxy.settings import settings
from hubproxy.utils.logging_utils import setup_logger_fastapi
from hubproxy.utils.sentry import init_sentry

logger = structlog.stdlib.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    policy = proxy_policy_factory()
    app.state.http_client = http_client_factory()
    logger.info(
        "Proxy started",
        public_url=settings.PUBLIC_URL,
        allowed_hosts=sorted(policy.allowed_hosts),
        restrict_paths=policy.restrict_paths,
    )

    yield

    await app.state.http_client.aclose()


init_sentry()
app = FastAPI(lifespan=lifespan)
setup_logger_fastapi(app, settings.LOG_FORMAT, settings.LOG_LEVEL)


api_router = APIRouter(prefix="/api")


@app.exception_handler(ProxyError)
async def proxy_exception_handler(request: Request, exc: ProxyError):
    return error_response(exc)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"title": "Internal Server Error", "description": str(exc)},
    )


api_router.include_router(health.router)
app.include_router(api_router)
# Catch-all, must stay last
app.include_router(proxy.router)

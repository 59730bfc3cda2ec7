"""Static site assets.

Serves the landing page and its assets for GET requests that are not proxy
requests. Files are looked up by request path under STATIC_DIR.
"""

from pathlib import Path

import structlog
from fastapi.responses import PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

logger = structlog.stdlib.get_logger(__name__)

CONTENT_TYPES = {
    "html": "text/html;charset=UTF-8",
    "css": "text/css;charset=UTF-8",
    "js": "application/javascript;charset=UTF-8",
    "svg": "image/svg+xml",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def asset_key(path: str) -> str:
    key = path.lstrip("/")
    return key or "index.html"


def content_type_for(key: str) -> str:
    return CONTENT_TYPES.get(key.rsplit(".", 1)[-1].lower(), DEFAULT_CONTENT_TYPE)


def _locate(static_dir: Path, key: str) -> Path | None:
    root = static_dir.resolve()
    candidate = (root / key).resolve()
    # Reject keys escaping the asset directory ("../", absolute paths)
    if root != candidate and root not in candidate.parents:
        return None
    if not candidate.is_file():
        return None
    return candidate


async def serve_static_asset(path: str, static_dir: Path) -> Response:
    """Serve a static asset by request path.

    Args:
        path: Request path (e.g., "/" or "/style.css")
        static_dir: Directory holding the assets

    Returns:
        Asset response, 404 when missing, 500 when unreadable
    """
    key = asset_key(path)
    try:
        asset_path = _locate(static_dir, key)
        if asset_path is None:
            return PlainTextResponse("Not Found", status_code=404)
        content = await run_in_threadpool(asset_path.read_bytes)
    except OSError as e:
        logger.error("Error serving static asset", key=key, error=str(e))
        return PlainTextResponse("Error serving asset", status_code=500)

    return Response(content=content, media_type=content_type_for(key))

import time
import uuid
import json
import logging
from typing import Callable
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.medtrack.config import load_settings

logger = logging.getLogger("mt.request")

LINE = (
    "req={req} method={method} path={path} query={query} status={status} "
    "dur_ms={dur_ms:.2f} caps={caps}"
)


def _emit(ctx: dict, fmt: str):
    if fmt == "json":
        level = logging.ERROR if ctx.get("error") else logging.INFO
        logger.log(level, json.dumps(ctx, default=str))
        return
    line = LINE.format(**ctx)
    if ctx.get("error"):
        logger.error("%s error=%s", line, ctx["error"])
    else:
        logger.info(line)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One log line per request, with correlation id (X-Request-ID) and timing."""

    async def dispatch(self, request: Request, call_next: Callable):
        fmt = load_settings().reqlog_format
        start = time.perf_counter()
        req_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        ctx = {
            "req": req_id,
            "method": request.method,
            "path": request.url.path,
            "query": request.url.query or "-",
            "status": None,
            "dur_ms": 0.0,
            "caps": "-",
            "error": None,
        }
        try:
            response = await call_next(request)
        except Exception as e:
            ctx["dur_ms"] = (time.perf_counter() - start) * 1000.0
            ctx["status"] = 500
            ctx["error"] = str(e)
            _emit(ctx, fmt)
            logger.exception("stacktrace for req=%s", req_id)
            raise
        ctx["dur_ms"] = (time.perf_counter() - start) * 1000.0
        ctx["status"] = response.status_code
        caps = getattr(request.state, "capabilities", None)
        if caps:
            ctx["caps"] = "+".join(sorted(caps))
        _emit(ctx, fmt)
        response.headers["X-Request-ID"] = req_id
        return response

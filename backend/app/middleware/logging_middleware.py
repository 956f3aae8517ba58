"""
Request/response logging middleware
===================================
- X-Request-ID is accepted from the client or generated, echoed back on the
  response, and bound to request_id_var for the duration of the request
- method, path, status and duration go to the "kyb.access" logger
- /health and /metrics are not logged
- uploads slower than SLOW_REQUEST_MS log a slow_request warning
"""
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.log_config import request_id_var

logger = logging.getLogger("kyb.access")

_SKIP_PATHS = frozenset(["/health", "/metrics", "/favicon.ico"])

# submissions carry file uploads, so the threshold is generous
SLOW_REQUEST_MS = 2000


class LoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        path = request.url.path
        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed",
                extra={"request_id": request_id, "method": request.method, "path": path},
            )
            raise
        finally:
            request_id_var.reset(token)
        elapsed_ms = (time.perf_counter() - start) * 1000

        response.headers["X-Request-ID"] = request_id

        if path not in _SKIP_PATHS:
            logger.info(
                "request",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": round(elapsed_ms, 2),
                    "client": request.client.host if request.client else "-",
                },
            )
            if elapsed_ms > SLOW_REQUEST_MS:
                logger.warning(
                    "slow_request",
                    extra={
                        "request_id": request_id,
                        "path": path,
                        "duration_ms": round(elapsed_ms, 2),
                    },
                )

        return response

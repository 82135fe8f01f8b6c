import time
import uuid
from typing import Callable, List, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ....core.logging import StructuredLogger

logger = StructuredLogger(__name__)

LOG_EXCLUDE_PATHS = ["/health", "/docs", "/redoc", "/openapi.json"]


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Request/response logging with a request id and timing headers.

    Bodies are never logged; uploads carry clinical data.
    """

    def __init__(self, app, exclude_paths: Optional[List[str]] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or LOG_EXCLUDE_PATHS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if any(request.url.path.startswith(path) for path in self.exclude_paths):
            return await call_next(request)

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        request_logger = logger.bind(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        start_time = time.perf_counter()

        request_logger.info(
            f"REQUEST {request_id} {request.method} {request.url.path}",
            client_ip=self._get_client_ip(request),
            content_length=request.headers.get("Content-Length"),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error(
                f"ERROR {request_id} {request.method} {request.url.path}: {type(e).__name__}: {e}",
                process_time=round(time.perf_counter() - start_time, 4),
            )
            raise

        process_time = time.perf_counter() - start_time
        message = f"RESPONSE {request_id} {request.method} {request.url.path} status={response.status_code}"
        fields = {"status_code": response.status_code, "process_time": round(process_time, 4)}
        if response.status_code >= 500:
            request_logger.error(message, **fields)
        elif response.status_code >= 400:
            request_logger.warning(message, **fields)
        else:
            request_logger.info(message, **fields)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(round(process_time, 4))
        return response

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

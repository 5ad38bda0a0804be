import logging
import time
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = logging.getLogger("squadapi")


class LoggingMiddleware(BaseHTTPMiddleware):
    """요청/응답 로깅 - 상태 코드에 따라 info/warning/error"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.perf_counter()
        method = request.method
        path = request.url.path
        client = request.client.host if request.client else "-"

        logger.info(f"[Request] {method} {path} from {client}")
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[Unhandled Error] {method} {path} from {client}")
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        message = f"[Response] {method} {path} from {client} -> {response.status_code} in {duration_ms:.1f}ms"
        if response.status_code >= 500:
            logger.error(message)
        elif response.status_code >= 400:
            logger.warning(message)
        else:
            logger.info(message)
        return response

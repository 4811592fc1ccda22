# Middleware de observabilidad para FastAPI

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from squadfinders.utils.metrics import HTTP_REQUEST_DURATION_HISTOGRAM
from squadfinders.utils.observability import set_request_id

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Asigna un X-Request-ID a cada request, mide la duración y la registra
    en Prometheus usando la plantilla de ruta (no la URL concreta).
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        set_request_id(req_id)
        start_time = time.perf_counter()
        method = request.method

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.error(f"❌ {method} {request.url.path} falló tras {elapsed_ms:.1f}ms: {e}")
            raise
        finally:
            set_request_id(None)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        HTTP_REQUEST_DURATION_HISTOGRAM.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).observe(elapsed_ms / 1000)

        response.headers["X-Request-ID"] = req_id
        if elapsed_ms > SLOW_REQUEST_MS:
            logger.warning(f"🐢 Request lento: {method} {endpoint} {elapsed_ms:.0f}ms")
        return response

"""Application middleware."""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from provisioning.core.logging import request_id_var

logger = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Extracts or generates a correlation ID for every provisioning call.

    The ID comes from the ``X-Request-ID`` header when the caller sends one,
    otherwise a fresh UUID4 hex string is used. It is bound to
    ``request_id_var`` so that provider and vendor client logs carry it, and
    echoed back in the response header along with the elapsed time.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        started = time.monotonic()
        try:
            response = await call_next(request)
            elapsed_ms = int((time.monotonic() - started) * 1000)
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Elapsed-Ms"] = str(elapsed_ms)
            logger.debug(
                "Request handled",
                extra={
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "elapsed_ms": elapsed_ms,
                },
            )
            return response
        finally:
            request_id_var.reset(token)

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
ELAPSED_HEADER = "X-Elapsed-Ms"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id (client supplied or generated) and time it."""

    def __init__(self, app, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error. request_id={request_id} path={request.url.path}")
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[ELAPSED_HEADER] = f"{elapsed_ms:.1f}"
        if self.log_requests:
            logger.info(f"{request.method} {request.url.path} -> {response.status_code} "
                        f"in {elapsed_ms:.1f}ms request_id={request_id}")
        return response


def add_request_id_middleware(app, log_requests: bool = True):
    app.add_middleware(RequestIdMiddleware, log_requests=log_requests)

import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from habitforge.core.logging import LOGGER_NAME, latency_bucket_ms, request_id_ctx_var

# Path parameters worth correlating in the per-request log line
_CONTEXT_PARAMS = ("user_id", "habit_id", "task_id", "category_id")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Bind a request id for the lifetime of a request and log its outcome.

    The id comes from the incoming header when present. The completion log
    carries the matched route template and any user/habit/task/category ids
    from the path, so one user's streak activity can be followed across calls.
    """

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        response.headers[self.header_name] = rid

        # Routing fills these into the shared scope once a route matched
        params = request.scope.get("path_params") or {}
        route = request.scope.get("route")
        fields = {
            "request_id": rid,
            "method": request.method,
            "path": request.url.path,
            "route": getattr(route, "path", None),
            "status": response.status_code,
            "latency_bucket": latency_bucket_ms((time.perf_counter() - start) * 1000),
        }
        fields.update({name: params[name] for name in _CONTEXT_PARAMS if name in params})

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logging.getLogger(LOGGER_NAME).log(level, "request.complete", extra=fields)
        return response

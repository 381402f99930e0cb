"""
FastAPI middleware admitting and recording every inbound API request.

For each request outside the excluded prefixes:
- the caller is checked against the rate-limit monitor, and rejected with 429
  once it exceeds the limit for the current window
- the completed call is recorded as an API metric with its status and duration;
  an unhandled exception is recorded as a 500 plus a high-severity error
"""

import re
import time
import traceback
from typing import Awaitable, Callable, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from crm_observability.logger import logger

from ..metrics import ErrorSeverity

RequestResponseEndpoint = Callable[[Request], Awaitable[Response]]

DEFAULT_EXCLUDED_PREFIXES = ["/monitoring", "/docs", "/openapi.json", "/favicon.ico"]


def normalize_path(path: str) -> str:
    """Replace UUIDs and numeric ids with ``:id`` to keep endpoint cardinality low."""
    path = re.sub(
        r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
        ":id",
        path,
        flags=re.IGNORECASE,
    )
    return re.sub(r"/\d+(?=/|$)", "/:id", path)


class APIMonitoringMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting and API metrics for every request handled by the app.

    The engine is resolved from ``request.app.state.monitoring`` on each
    request; without one the middleware passes requests through.
    """

    def __init__(
        self,
        app: ASGIApp,
        exclude_prefixes: Optional[List[str]] = None,
        rate_limit: Optional[int] = None,
        enforce_rate_limit: bool = True,
    ):
        """
        Initialize the middleware.

        Args:
            app: ASGI application
            exclude_prefixes: Path prefixes neither limited nor recorded
            rate_limit: Per-window limit (default: the monitor's default limit)
            enforce_rate_limit: Reject over-limit callers with 429
        """
        super().__init__(app)
        self.exclude_prefixes = list(
            DEFAULT_EXCLUDED_PREFIXES if exclude_prefixes is None else exclude_prefixes
        )
        self.rate_limit = rate_limit
        self.enforce_rate_limit = enforce_rate_limit

    def _is_excluded(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.exclude_prefixes)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        engine = getattr(request.app.state, "monitoring", None)
        if engine is None or self._is_excluded(request.url.path):
            return await call_next(request)

        store = engine.metrics_store
        method = request.method
        endpoint = normalize_path(request.url.path)
        ip = request.client.host if request.client else "unknown"
        user_agent = request.headers.get("user-agent")

        if self.enforce_rate_limit:
            result = engine.rate_limiter.check_rate_limit(ip, endpoint, self.rate_limit)
            if not result.allowed:
                headers = {
                    "X-RateLimit-Remaining": str(result.remaining),
                    "X-RateLimit-Reset": str(result.reset_time),
                }
                store.track_api_call(endpoint, method, 429, 0.0, user_agent=user_agent, ip=ip)
                return JSONResponse({"detail": "Too many requests"}, status_code=429, headers=headers)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.error(f"Unhandled error on {method} {endpoint}: {e}")
            store.track_error(
                str(e) or type(e).__name__,
                ErrorSeverity.HIGH,
                endpoint=endpoint,
                stack="".join(traceback.format_exception(type(e), e, e.__traceback__)),
            )
            store.track_api_call(endpoint, method, 500, elapsed_ms, user_agent=user_agent, ip=ip)
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        store.track_api_call(
            endpoint, method, response.status_code, elapsed_ms, user_agent=user_agent, ip=ip
        )
        return response

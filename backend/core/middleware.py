"""
FastAPI Middleware Stack
- Request timing and request IDs
- Per-endpoint request statistics (exposed on /health)
- No-store cache headers for API responses
"""
import time
import uuid
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000
# Long-lived streams would only skew the timing stats
UNTIMED_PATHS = ("/api/updates",)


@dataclass
class EndpointStats:
    """Statistics for an endpoint"""
    total_requests: int = 0
    total_errors: int = 0
    total_response_time_ms: float = 0.0
    max_response_time_ms: float = 0.0
    status_codes: Dict[int, int] = field(default_factory=lambda: defaultdict(int))

    @property
    def avg_response_time_ms(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_response_time_ms / self.total_requests


class MetricsCollector:
    """In-memory request statistics keyed by ``METHOD:path``"""

    def __init__(self):
        self._endpoint_stats: Dict[str, EndpointStats] = defaultdict(EndpointStats)
        self._start_time = datetime.now()

    def record_request(self, method: str, path: str, status_code: int, elapsed_ms: float) -> None:
        stats = self._endpoint_stats[f"{method}:{path}"]
        stats.total_requests += 1
        stats.total_response_time_ms += elapsed_ms
        stats.max_response_time_ms = max(stats.max_response_time_ms, elapsed_ms)
        stats.status_codes[status_code] += 1
        if status_code >= 400:
            stats.total_errors += 1

    def get_metrics(self) -> Dict[str, Any]:
        total_requests = sum(s.total_requests for s in self._endpoint_stats.values())
        total_errors = sum(s.total_errors for s in self._endpoint_stats.values())
        return {
            'uptime_seconds': (datetime.now() - self._start_time).total_seconds(),
            'total_requests': total_requests,
            'total_errors': total_errors,
            'endpoints': {
                endpoint: {
                    'total_requests': stats.total_requests,
                    'total_errors': stats.total_errors,
                    'avg_response_time_ms': round(stats.avg_response_time_ms, 2),
                    'max_response_time_ms': round(stats.max_response_time_ms, 2),
                    'status_codes': dict(stats.status_codes),
                }
                for endpoint, stats in self._endpoint_stats.items()
            },
        }

    def reset_metrics(self) -> None:
        self._endpoint_stats.clear()
        self._start_time = datetime.now()


# Global metrics collector
metrics_collector = MetricsCollector()


class TimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to track request timing and add performance headers
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(UNTIMED_PATHS):
            return await call_next(request)

        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = (time.perf_counter() - start_time) * 1000
            logger.error(f"[{request_id}] {request.method} {request.url.path} - ERROR after {elapsed:.2f}ms: {e}")
            raise

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"

        metrics_collector.record_request(request.method, request.url.path, response.status_code, elapsed_ms)

        # Imports legitimately take a while; everything else should not
        if elapsed_ms > SLOW_REQUEST_MS and request.url.path != "/api/import-sheets":
            logger.warning(f"[{request_id}] SLOW: {request.method} {request.url.path} - {elapsed_ms:.2f}ms")

        return response


class NoStoreMiddleware(BaseHTTPMiddleware):
    """Dashboard data changes on every import, so API responses are never cached"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        if request.url.path.startswith("/api/") and "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store, max-age=0"
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response


def setup_middleware(app: FastAPI) -> None:
    """
    Configure all middleware for the application
    Order matters - middleware is executed in reverse order
    """
    app.add_middleware(NoStoreMiddleware)
    app.add_middleware(TimingMiddleware)

    logger.info("✅ Middleware stack configured")

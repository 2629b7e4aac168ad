import time

from fastapi import Request
from prometheus_client import Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

http_requests = Counter('http_requests_total', 'HTTP requests by route and status', ['method', 'endpoint', 'status'])
http_latency = Histogram('http_request_duration_seconds', 'HTTP request latency', ['method', 'endpoint'])
http_in_flight = Gauge('http_requests_in_flight', 'HTTP requests being served')


def endpoint_label(request: Request) -> str:
    """Route template rather than raw path, to keep label cardinality bounded"""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        http_in_flight.inc()
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            endpoint = endpoint_label(request)
            http_requests.labels(request.method, endpoint, str(status)).inc()
            http_latency.labels(request.method, endpoint).observe(time.perf_counter() - started)
            http_in_flight.dec()

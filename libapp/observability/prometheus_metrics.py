"""Prometheus metrics for libapp applications and their asset packages."""

from prometheus_client import Counter, Histogram, Gauge, Info, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client import GCCollector, PlatformCollector, ProcessCollector
from prometheus_client.core import CollectorRegistry
from fastapi import FastAPI, Request, Response
import re
import time
from typing import Any, Dict, Optional
import logging

from .event_timer import EventTimer

logger = logging.getLogger(__name__)

# Custom registry so several apps in one process do not collide with the default one
libapp_registry = CollectorRegistry()
ProcessCollector(registry=libapp_registry)
PlatformCollector(registry=libapp_registry)
GCCollector(registry=libapp_registry)

# Request metrics
request_count = Counter(
    'libapp_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=libapp_registry
)

request_duration = Histogram(
    'libapp_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=libapp_registry
)

response_size = Histogram(
    'libapp_http_response_size_bytes',
    'HTTP response size in bytes',
    ['method', 'endpoint'],
    buckets=[100, 1000, 10000, 100000, 1000000],
    registry=libapp_registry
)

# Per request timers (render, data providers, ...)
request_timing = Histogram(
    'libapp_request_timing_seconds',
    'Time spent in timed operations while handling a request',
    ['timer'],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0],
    registry=libapp_registry
)

# Package metrics
package_compress_duration = Histogram(
    'libapp_package_compress_duration_seconds',
    'Time taken to compress an asset package at startup',
    ['package'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
    registry=libapp_registry
)

package_size = Gauge(
    'libapp_package_size_bytes',
    'Size of the compiled package output',
    ['package', 'kind'],
    registry=libapp_registry
)

packages_registered = Counter(
    'libapp_packages_registered_total',
    'Packages compressed and registered',
    ['status'],
    registry=libapp_registry
)

app_info = Info(
    'libapp_app_info',
    'libapp application information',
    registry=libapp_registry
)

error_count = Counter(
    'libapp_errors_total',
    'Total number of errors',
    ['error_type', 'component'],
    registry=libapp_registry
)

_HASH_SEGMENT = re.compile(r'/[a-f0-9]{32,}')
_NUMERIC_SEGMENT = re.compile(r'/\d+')


class PrometheusMiddleware:
    """Middleware to collect Prometheus metrics for HTTP requests."""

    def __init__(self, app: FastAPI):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        method = request.method
        endpoint = self._normalize_endpoint(request.url.path)

        start_time = time.time()
        response_body_size = 0
        status_code = 500

        async def send_wrapper(message):
            nonlocal response_body_size, status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            elif message["type"] == "http.response.body":
                response_body_size += len(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as e:
            logger.error(f"Request processing error: {e}")
            error_count.labels(error_type=type(e).__name__, component="http").inc()
            raise
        finally:
            duration = time.time() - start_time
            request_count.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
            request_duration.labels(method=method, endpoint=endpoint).observe(duration)
            response_size.labels(method=method, endpoint=endpoint).observe(response_body_size)

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce cardinality."""
        path = _HASH_SEGMENT.sub('/{hash}', path)
        return _NUMERIC_SEGMENT.sub('/{id}', path)


def setup_prometheus_metrics(app: FastAPI, app_name: str = "libapp",
                             config: Optional[Dict[str, Any]] = None) -> None:
    """Install the metrics middleware and the ``/metrics`` endpoint."""
    config = config or {}
    app.add_middleware(PrometheusMiddleware)

    @app.get(config.get("path", "/metrics"), include_in_schema=False)
    async def metrics_endpoint():
        """Prometheus metrics endpoint."""
        return Response(generate_latest(libapp_registry), media_type=CONTENT_TYPE_LATEST)

    app_info.info({
        'name': app_name,
        'environment': str(config.get('environment', 'unknown')),
    })

    logger.info("Prometheus metrics configured")


def record_request_timings(timer: Optional[EventTimer]) -> None:
    if timer is None:
        return
    values: Dict[str, float] = {}
    timer.add_timing_to_metrics(values)
    for key, milliseconds in values.items():
        request_timing.labels(timer=key[len("timing."):]).observe(milliseconds / 1000)


def record_package_metrics(package_name: str, duration: float, js_bytes: int = 0,
                           css_bytes: int = 0, error: Optional[str] = None) -> None:
    """Record compression time and output size for one package."""
    if error:
        packages_registered.labels(status="error").inc()
        error_count.labels(error_type=error, component="packager").inc()
        return

    packages_registered.labels(status="success").inc()
    package_compress_duration.labels(package=package_name).observe(duration)
    package_size.labels(package=package_name, kind="js").set(js_bytes)
    package_size.labels(package=package_name, kind="css").set(css_bytes)

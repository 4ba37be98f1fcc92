"""Per-request context: timer, base URL path, render data and access logging."""

import logging
import time
from typing import TYPE_CHECKING

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..observability.event_timer import EventTimer
from ..observability.prometheus_metrics import record_request_timings

if TYPE_CHECKING:
    from .application import App

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Prepares ``request.state`` for handlers and logs the completed request."""

    def __init__(self, app, owner: 'App'):
        super().__init__(app)
        self.owner = owner

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        timer = EventTimer()
        request.state.timer = timer
        request.state.render_data = self.owner.init_render_data(request)
        request.state.base_url_path = request.state.render_data["baseURLPath"]

        try:
            response = await call_next(request)
        except Exception:
            self._complete(request, 500, start_time, timer)
            raise

        self._complete(request, response.status_code, start_time, timer)
        return response

    def _complete(self, request: Request, status_code: int, start_time: float, timer: EventTimer) -> None:
        duration_ms = (time.perf_counter() - start_time) * 1000
        access = self.owner.access
        if access is not None:
            access.log_request(request, status_code, duration_ms, timer)
        if self.owner.metrics_enabled:
            record_request_timings(timer)

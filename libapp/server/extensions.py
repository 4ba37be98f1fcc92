"""Pluggable response handling for errors, restricted access and missing pages.

Each extension installs FastAPI exception handlers. A custom ``handler`` can
replace the default response; otherwise the optional template is rendered
(with the request's render data) or a plain text body is sent.
"""

import inspect
import logging
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from jinja2 import Template

from ..errors import AccessRestrictedError, LibAppError, NotFoundError
from ..observability.prometheus_metrics import error_count

logger = logging.getLogger(__name__)

ExtensionHandler = Callable[[Request, Optional[Exception]], Any]


def is_xhr(request: Request) -> bool:
    return request.headers.get("x-requested-with", "").lower() == "xmlhttprequest"


class Extension:
    """Base class: ``setup`` hooks the extension into the application."""

    status_code = 500
    default_body = ""

    def __init__(self, renderer=None, logger: Optional[logging.Logger] = None):
        self.renderer = renderer
        self.logger = logger or logging.getLogger(__name__)
        self.handler: Optional[ExtensionHandler] = None
        self.template: Optional[Template] = None

    def setup(self, http: FastAPI) -> None:
        raise NotImplementedError

    async def handle(self, request: Request, exc: Optional[Exception]) -> Response:
        if self.handler is not None:
            result = self.handler(request, exc)
            if inspect.isawaitable(result):
                result = await result
            return result
        return await self.default_response(request, exc)

    async def default_response(self, request: Request, exc: Optional[Exception]) -> Response:
        return self.render_template(request)

    def render_template(self, request: Request) -> Response:
        if self.template is not None and self.renderer is not None:
            try:
                data = getattr(request.state, "render_data", None)
                timer = getattr(request.state, "timer", None)
                content = self.renderer.render(self.template, data, timer)
                return HTMLResponse(content, status_code=self.status_code)
            except Exception as e:
                self.logger.error(
                    f"Rendering {self.status_code} template failed due to: {e}", exc_info=True
                )
        return HTMLResponse(self.default_body, status_code=self.status_code)


class NotFoundExtension(Extension):
    status_code = 404
    default_body = "Not Found"

    def setup(self, http: FastAPI) -> None:
        http.add_exception_handler(404, self.handle)
        http.add_exception_handler(NotFoundError, self.handle)


class AccessRestrictedExtension(Extension):
    status_code = 403
    default_body = "Access Restricted"

    def setup(self, http: FastAPI) -> None:
        http.add_exception_handler(AccessRestrictedError, self.handle)

    async def default_response(self, request: Request, exc: Optional[Exception]) -> Response:
        if is_xhr(request):
            return JSONResponse({"status": "error", "error": "access restricted"}, status_code=403)
        return self.render_template(request)


class ErrorExtension(Extension):
    status_code = 500
    default_body = "Server Error"

    def setup(self, http: FastAPI) -> None:
        http.add_exception_handler(LibAppError, self.handle)
        http.add_exception_handler(Exception, self.handle)

    async def default_response(self, request: Request, exc: Optional[Exception]) -> Response:
        self.logger.error(f"Unhandled error for [{request.method} {request.url.path}]: {exc}", exc_info=exc)
        error_count.labels(error_type=type(exc).__name__, component="request").inc()

        if is_xhr(request):
            status_code = getattr(exc, "status_code", None)
            if not isinstance(status_code, int) or status_code < 400 or status_code > 599:
                status_code = 500
            return JSONResponse({"status": "error"}, status_code=status_code)
        return self.render_template(request)

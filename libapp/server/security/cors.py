"""CORS response headers driven by the application config.

Config keys: ``CORSAllowedOrigins`` (list), ``CORSDefaultOrigin`` and
``CORSHeaders`` (extra headers set on every response).
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from fastapi import Request, Response
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


def validate_origin(origin: Optional[str], allowed_origins: Iterable[str]) -> Optional[str]:
    """Return the allowed origin matching ``origin`` (case-insensitive), if any."""
    if not origin:
        return None
    origin = origin.lower()
    for allowed in allowed_origins:
        if allowed.lower() == origin:
            return allowed
    return None


class CORSPolicy:
    """Decides the CORS headers for a response."""

    def __init__(self, allowed_origins: Optional[Iterable[str]] = None,
                 default_origin: Optional[str] = None,
                 headers: Optional[Dict[str, str]] = None):
        self.allowed_origins: List[str] = list(allowed_origins or [])
        self.default_origin = default_origin or None
        self.headers: Dict[str, str] = dict(headers or {})

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> 'CORSPolicy':
        config = config or {}
        return cls(
            config.get("CORSAllowedOrigins"),
            config.get("CORSDefaultOrigin"),
            config.get("CORSHeaders"),
        )

    @property
    def configured(self) -> bool:
        return bool(self.allowed_origins or self.default_origin or self.headers)

    def apply(self, request_origin: Optional[str], headers: MutableHeaders) -> None:
        allowed_origin = validate_origin(request_origin, self.allowed_origins) or self.default_origin

        if allowed_origin:
            headers["Access-Control-Allow-Origin"] = allowed_origin
            vary = [v.strip() for v in headers.get("Vary", "").split(",") if v.strip()]
            if "Origin" not in vary:
                vary.append("Origin")
            headers["Vary"] = ", ".join(vary)

        for name, value in self.headers.items():
            headers[name] = str(value)

    def options_endpoint(self):
        """Endpoint answering a preflight ``OPTIONS`` request with 200 and the CORS headers."""
        async def cors_options(request: Request) -> Response:
            response = Response(status_code=200)
            self.apply(request.headers.get("origin"), response.headers)
            return response
        return cors_options


class CORSHeadersMiddleware:
    """Adds the policy's CORS headers to every HTTP response."""

    def __init__(self, app: ASGIApp, policy: CORSPolicy):
        self.app = app
        self.policy = policy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        origin = Headers(scope=scope).get("origin")

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                self.policy.apply(origin, MutableHeaders(scope=message))
            await send(message)

        await self.app(scope, receive, send_wrapper)

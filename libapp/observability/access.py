"""Structured access logging, one record per request.

Records go to the ``libapp.access`` logger as JSON (the record itself is under
the ``access`` key). Without an ``Access`` config section the logger is a
no-op. Route handlers can enrich the record of the current request through
``access_event``.
"""

import logging
import socket
import sys
from typing import Any, Dict, Optional

from fastapi import Request

from .event_timer import EventTimer
from .logging import JSONFormatter

ACCESS_LOGGER_NAME = "libapp.access"


def access_event(request: Request, section: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """Return (creating if needed) the access event data of the current request.

    ``section`` is logged as ``module``; a ``message`` key replaces the default
    log message.
    """
    event = getattr(request.state, "access_event", None)
    if event is None:
        event = {}
        request.state.access_event = event
    if section:
        event["module"] = section
    event.update(extra)
    return event


def _first_value(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value.split(",")[0].strip()


class AccessLogger:
    """Writes access records for completed requests.

    Config keys: ``file`` (JSON lines file), ``console`` (JSON to stdout),
    ``meta`` (mapping merged into every record).
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, service_name: str = "libapp"):
        self.config = config or {}
        self.meta = dict(self.config.get("meta") or {})
        self.hostname = socket.gethostname()
        self._logger: Optional[logging.Logger] = None

        handlers = []
        if self.config.get("file"):
            handlers.append(logging.FileHandler(self.config["file"]))
        if self.config.get("console"):
            handlers.append(logging.StreamHandler(sys.stdout))

        if handlers:
            access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
            access_logger.handlers.clear()
            access_logger.propagate = False
            access_logger.setLevel(logging.INFO)
            for handler in handlers:
                handler.setFormatter(JSONFormatter(service_name))
                access_logger.addHandler(handler)
            self._logger = access_logger

    @property
    def enabled(self) -> bool:
        return self._logger is not None

    def build_message(self, request: Request, status_code: int, duration_ms: float,
                      timer: Optional[EventTimer] = None,
                      extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = request.headers
        message: Dict[str, Any] = {
            "type": "access",
            "verb": request.method,
            "request": request.url.path + (f"?{request.url.query}" if request.url.query else ""),
            "responseTime": round(duration_ms, 3),
            "response": status_code,
            "httpversion": request.scope.get("http_version", "1.1"),
            "node": self.hostname,
        }

        def copy_header(header: str, dest: str, number: bool = False) -> bool:
            value = headers.get(header)
            if not value:
                return False
            if number:
                try:
                    value = int(value)
                except ValueError:
                    return False
            message[dest] = value
            return True

        copy_header("host", "ident")
        copy_header("user-agent", "userAgent")
        if not copy_header("referer", "referrer"):
            copy_header("referrer", "referrer")
        copy_header("uid", "username")
        copy_header("affiliation", "affiliation")
        copy_header("content-length", "bytes", number=True)

        client_ip = _first_value(headers.get("x-forwarded-for"))
        if client_ip is None and request.client:
            client_ip = request.client.host
        message["clientip"] = client_ip

        for source in (extra or {}, self.meta):
            for key, value in source.items():
                message.setdefault(key, value)

        if timer is not None:
            timer.add_timing_to_access_event(message)
        return message

    def log_request(self, request: Request, status_code: int, duration_ms: float,
                    timer: Optional[EventTimer] = None) -> Optional[Dict[str, Any]]:
        if self._logger is None:
            return None
        extra = dict(getattr(request.state, "access_event", None) or {})
        text = extra.pop("message", None)
        message = self.build_message(request, status_code, duration_ms, timer, extra)
        self._logger.info(text or f"{message['clientip']} {message['request']}", extra={"access": message})
        return message

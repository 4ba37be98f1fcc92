"""Route helpers for registering package routes on a FastAPI app or APIRouter.

Package routes are plain Starlette routes appended to ``http.routes``. A
``LookupRoute`` only matches when its lookup succeeds, so unknown files fall
through to later routes and finally to the shared not-found handler.
"""

import re
from typing import Any, Callable, Dict, Optional, Tuple, Union

from fastapi import APIRouter, FastAPI, Request
from starlette.routing import Match, Route
from starlette.types import Scope

HttpLayer = Union[FastAPI, APIRouter]
Lookup = Callable[[Dict[str, Any]], bool]


class LookupRoute(Route):
    """Case-insensitive GET route that declines requests its lookup cannot serve."""

    def __init__(self, path: str, endpoint: Callable, lookup: Optional[Lookup] = None,
                 name: Optional[str] = None):
        super().__init__(path, endpoint, methods=["GET"], name=name)
        self.path_regex = re.compile(self.path_regex.pattern, re.IGNORECASE)
        self.lookup = lookup

    def matches(self, scope: Scope) -> Tuple[Match, Scope]:
        match, child_scope = super().matches(scope)
        if match == Match.NONE or self.lookup is None:
            return match, child_scope
        if not self.lookup(child_scope.get("path_params", {})):
            return Match.NONE, {}
        return match, child_scope


def add_get_route(http: HttpLayer, path: str, endpoint: Callable,
                  lookup: Optional[Lookup] = None, name: Optional[str] = None) -> LookupRoute:
    route = LookupRoute(path, endpoint, lookup=lookup, name=name)
    http.routes.append(route)
    return route


def request_base_url_path(request: Request) -> str:
    """Base URL path resolved for the request host, or "" outside an App."""
    return getattr(request.state, "base_url_path", "") or ""

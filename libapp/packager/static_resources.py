"""Static resource index: request path -> backing file, with optional cache policy."""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Pattern, Union

from fastapi import Request
from fastapi.responses import FileResponse

from ..directory_loader import DirectoryLoader
from ..errors import AccessRestrictedError, NotFoundError
from ..server.routing import HttpLayer, add_get_route

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheOptions:
    max_age: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['CacheOptions']:
        if not data:
            return None
        return cls(max_age=int(data.get("max_age", data.get("maxAge", 0))))


@dataclass(frozen=True)
class StaticEntry:
    file_path: str
    cache: Optional[CacheOptions] = None


def _coerce_cache(cache: Union[CacheOptions, Dict[str, Any], None]) -> Optional[CacheOptions]:
    if cache is None or isinstance(cache, CacheOptions):
        return cache
    return CacheOptions.from_dict(cache)


def _lookup_key(prefix: Optional[str], relative: str) -> str:
    prefix = (prefix or "").replace("\\", "/")
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    key = (prefix + relative.replace("\\", "/")).lower()
    return key if key.startswith("/") else "/" + key


class StaticResourceIndex:
    """Maps normalized lowercase request suffixes onto files.

    Every key is set once; later adds for an existing key are ignored.
    """

    def __init__(self, root_url: str):
        self.root_url = root_url.rstrip("/")
        self._entries: Dict[str, StaticEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key.lower() in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def lookup(self, key: str) -> Optional[StaticEntry]:
        return self._entries.get(key.lower())

    def _set(self, key: str, entry: StaticEntry) -> bool:
        if key in self._entries:
            logger.debug(f"Static resource [{key}] already mapped to {self._entries[key].file_path}")
            return False
        self._entries[key] = entry
        return True

    def add_file(self, file_path: str, prefix: Optional[str] = None,
                 cache: Union[CacheOptions, Dict[str, Any], None] = None) -> bool:
        key = _lookup_key(prefix, os.path.basename(file_path))
        return self._set(key, StaticEntry(file_path, _coerce_cache(cache)))

    async def add_directory(self, directory: str, prefix: Optional[str] = None, recursive: bool = False,
                            name_filter: Optional[Union[str, Pattern]] = None,
                            cache: Union[CacheOptions, Dict[str, Any], None] = None) -> int:
        cache = _coerce_cache(cache)
        loader = DirectoryLoader(directory, recursive=recursive, name_filter=name_filter)

        def add(item_path: str, name: str, base_path: str, depth: int) -> None:
            self._set(_lookup_key(prefix, os.path.relpath(item_path, directory)), StaticEntry(item_path, cache))

        return await loader.load(add)

    def add_from(self, other: 'StaticResourceIndex') -> bool:
        """Copy entries missing from this index; existing keys win. Returns True if anything was added."""
        did_add = False
        for key, entry in other._entries.items():
            if key not in self._entries:
                self._entries[key] = entry
                did_add = True
        return did_add

    def setup_routes(self, http: HttpLayer, logger: Optional[logging.Logger] = None) -> None:
        log = logger or logging.getLogger(__name__)

        async def serve_static(request: Request) -> FileResponse:
            key = "/" + request.path_params["path"].lower()
            if any(part.startswith(".") for part in key.split("/")):
                raise AccessRestrictedError(f"Access to [{key}] is restricted")
            entry = self._entries[key]
            if not os.path.isfile(entry.file_path):
                log.warning(f"Static resource [{key}] points at missing file {entry.file_path}")
                raise NotFoundError()
            headers = {}
            if entry.cache and entry.cache.max_age:
                headers["Cache-Control"] = f"public, max-age={entry.cache.max_age}"
            return FileResponse(entry.file_path, headers=headers)

        add_get_route(
            http,
            self.root_url + "/{path:path}",
            serve_static,
            lookup=lambda params: "/" + params.get("path", "").lower() in self._entries,
        )
        log.debug(f"Registered {len(self._entries)} static resources under [{self.root_url}]")

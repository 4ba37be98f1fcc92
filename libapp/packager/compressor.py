"""Shared machinery of the JS and CSS content compressors.

A compressor collects source fragments, then compresses them exactly once:
every fragment is read, fixed, hashed and parsed in declaration order, and the
language specific subclass turns the parsed fragments into one compiled
artifact plus a source map. The compiled output does not depend on the base
URL path; only the source map root does, so per base URL renderings are cached
on the instance.
"""

import asyncio
import hashlib
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from fastapi import Request
from fastapi.responses import RedirectResponse, Response

from ..directory_loader import DirectoryLoader
from ..errors import CompressorSealedError, DuplicateBasenameError, NotFoundError
from ..server.routing import HttpLayer, add_get_route, request_base_url_path
from ..utilities import change_extension, safe_add_path, safe_append_slash
from .fragments import SourceFragment, coerce_fixes

logger = logging.getLogger(__name__)

LONG_LIVED_CACHE_CONTROL = "public, max-age=31536000"


class BaseURLKey(NamedTuple):
    base_url_path: str


@dataclass(frozen=True)
class CompiledAsset:
    code: str
    source_map: str


class ContentCompressor:
    """Base class for ``JSCompressor`` and ``CSSCompressor``."""

    file_extension: str = ""
    content_type: str = "text/plain"
    source_map_content_type: str = "application/octet-stream"
    source_prefix: str = "src"

    def __init__(self, output_file_name: str, root_url: str, debug: bool = False,
                 logger: Optional[logging.Logger] = None):
        self.output_file_name = output_file_name
        self.root_url = root_url
        self.debug = debug
        self.logger = logger or logging.getLogger(__name__)
        self.source_url_base = safe_append_slash(root_url) + self.source_prefix + "/"

        self._fragments: List[SourceFragment] = []
        self._file_pattern = re.compile(rf"\.{self.file_extension}$", re.IGNORECASE)
        self._compress_task: Optional[asyncio.Future] = None
        self._hash: Optional[str] = None
        self._code: Optional[str] = None
        self._source_map: Optional[Dict[str, Any]] = None
        self._sources: Dict[str, str] = {}
        self._cache: Dict[BaseURLKey, CompiledAsset] = {}

    # Accumulation

    @property
    def fragments(self) -> Tuple[SourceFragment, ...]:
        return tuple(self._fragments)

    def _append(self, fragment: SourceFragment) -> None:
        if self._compress_task is not None:
            raise CompressorSealedError(
                f"Cannot add [{fragment.basename}] to [{self.output_file_name}] after compression started"
            )
        self._fragments.append(fragment)

    def add_file(self, path: str, prefix: Optional[str] = None, fixes=None,
                 basename: Optional[str] = None) -> None:
        """Register a file backed fragment. The file is not read until ``compress``."""
        if not path:
            return
        name = basename or path.replace("\\", "/").rsplit("/", 1)[-1]
        self._append(SourceFragment(
            basename=safe_add_path(prefix, name),
            path=path,
            fixes=coerce_fixes(fixes),
        ))

    def add_content(self, text: str, prefix: Optional[str] = None,
                    basename: Optional[str] = None) -> None:
        """Register inline content. Empty content is ignored."""
        if not text:
            return
        if not basename:
            raise ValueError(f"Inline content for [{self.output_file_name}] needs a basename")
        self._append(SourceFragment(basename=safe_add_path(prefix, basename), content=text))

    async def add_files_in_path(self, directory: str, prefix: Optional[str] = None,
                                recursive: bool = False) -> int:
        """Register every matching file below ``directory``; returns how many were added."""
        loader = DirectoryLoader(directory, recursive=recursive, name_filter=self._file_pattern)
        root = directory.rstrip("/\\")

        def add(item_path: str, name: str, base_path: str, depth: int) -> None:
            relative = base_path[len(root):].strip("/\\").replace("\\", "/")
            reference = f"{relative}/{name}" if relative else name
            self._append(SourceFragment(basename=safe_add_path(prefix, reference), path=item_path))

        return await loader.load(add)

    def add_fragments_from(self, other: 'ContentCompressor') -> bool:
        """Append all of ``other``'s fragment declarations (not its compiled output)."""
        if not other._fragments:
            return False
        for fragment in other._fragments:
            self._append(fragment)
        return True

    # Compression

    async def compress(self, options: Any = None) -> Optional[str]:
        """Compress once and return the content hash, or None when there is nothing to compress.

        Concurrent and repeated calls share the first computation.
        """
        if self._compress_task is None:
            self._compress_task = asyncio.ensure_future(self._compress(options))
        return await self._compress_task

    def _check_duplicates(self) -> None:
        seen = set()
        for fragment in self._fragments:
            if fragment.key in seen:
                raise DuplicateBasenameError(fragment.basename, self.output_file_name)
            seen.add(fragment.key)

    async def _compress(self, options: Any) -> Optional[str]:
        if not self._fragments:
            self.logger.debug(f"Nothing to compress for [{self.output_file_name}]")
            return None

        self._check_duplicates()

        sha = hashlib.sha1()
        parsed = []
        for fragment in self._fragments:
            text = await asyncio.to_thread(fragment.read)
            sha.update(text.encode("utf-8"))
            self._sources[fragment.key] = text
            parsed.append(await asyncio.to_thread(self._parse_fragment, fragment, text))

        self._code, self._source_map = await asyncio.to_thread(self._generate, parsed, options)
        self._hash = sha.hexdigest()
        self.logger.debug(
            f"Compressed {len(self._fragments)} fragments into [{self.output_file_name}] ({self._hash})"
        )
        return self._hash

    def _parse_fragment(self, fragment: SourceFragment, text: str) -> Any:
        raise NotImplementedError

    def _generate(self, parsed: List[Any], options: Any) -> Tuple[str, Dict[str, Any]]:
        raise NotImplementedError

    # Lookup

    def file_hash(self) -> Optional[str]:
        return self._hash

    @property
    def compressed(self) -> bool:
        return self._compress_task is not None and self._compress_task.done()

    def source_for(self, name: str) -> Optional[str]:
        """Post-fix text of the fragment registered as ``name`` (case-insensitive)."""
        return self._sources.get(name.lower())

    def lookup_for_base_url_path(self, base_url_path: Optional[str]) -> Optional[CompiledAsset]:
        if self._code is None:
            return None
        key = BaseURLKey(base_url_path or "")
        asset = self._cache.get(key)
        if asset is None:
            source_map = dict(self._source_map)
            source_map["sourceRoot"] = key.base_url_path + self.source_url_base
            asset = CompiledAsset(code=self._code, source_map=json.dumps(source_map))
            self._cache[key] = asset
        return asset

    def invalidate_cache(self) -> None:
        self._cache.clear()

    # Routes

    @property
    def source_map_file_name(self) -> str:
        return change_extension(self.output_file_name, "map")

    def setup_routes(self, http: HttpLayer, logger: Optional[logging.Logger] = None) -> None:
        log = logger or self.logger
        request_base = safe_append_slash(self.root_url)
        asset_path = request_base + self.output_file_name
        map_path = request_base + self.source_map_file_name

        async def serve_compiled(request: Request) -> Response:
            base_url_path = request_base_url_path(request)
            asset = self.lookup_for_base_url_path(base_url_path)
            if asset is None:
                log.warning(f"No compressed output for [{self.output_file_name}] at [{base_url_path}]")
                raise NotFoundError()

            revision = request.query_params.get("r", "").lower()
            if revision and revision != self._hash:
                return RedirectResponse(base_url_path + request.url.path, status_code=302)

            headers = {"X-SourceMap": base_url_path + map_path}
            if revision:
                headers["Cache-Control"] = LONG_LIVED_CACHE_CONTROL
            return Response(asset.code, media_type=self.content_type, headers=headers)

        async def serve_source_map(request: Request) -> Response:
            asset = self.lookup_for_base_url_path(request_base_url_path(request))
            if asset is None:
                raise NotFoundError()
            return Response(asset.source_map, media_type=self.source_map_content_type)

        async def serve_source(request: Request) -> Response:
            text = self.source_for(request.path_params["path"])
            if text is None:
                raise NotFoundError()
            return Response(text, media_type=self.content_type)

        add_get_route(http, asset_path, serve_compiled)
        add_get_route(http, map_path, serve_source_map)
        add_get_route(
            http,
            self.source_url_base + "{path:path}",
            serve_source,
            lookup=lambda params: self.source_for(params.get("path", "")) is not None,
        )
        log.debug(f"Registered routes for [{asset_path}]")

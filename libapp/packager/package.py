"""AssetPackage: one JS compressor, one CSS compressor and one static resource index."""

import asyncio
import logging
import posixpath
from typing import Iterable, List, Optional, Pattern, Union

from ..errors import PackageContentError, PackageNotCompressedError
from ..server.routing import HttpLayer
from .css_compressor import CSSCompressor
from .js_compressor import JSCompressor
from .static_resources import CacheOptions, StaticResourceIndex

logger = logging.getLogger(__name__)


class AssetPackage:
    """A named bundle of JS, CSS and static resources served as one fingerprinted unit.

    Content is accumulated while packages are resolved at startup. ``compress``
    seals the package; routes can only be registered after it resolves.
    """

    def __init__(self, js_file_path: Optional[str] = None, css_file_path: Optional[str] = None,
                 static_resource_path: Optional[str] = None,
                 logger: Optional[logging.Logger] = None, debug: bool = False):
        self.logger = logger or logging.getLogger(__name__)
        self.debug = debug

        self._js_file_path = js_file_path or None
        self._js_compressor: Optional[JSCompressor] = None
        if self._js_file_path:
            self._js_compressor = JSCompressor(
                posixpath.basename(js_file_path), posixpath.dirname(js_file_path), debug, self.logger
            )

        self._css_file_path = css_file_path or None
        self._css_compressor: Optional[CSSCompressor] = None
        if self._css_file_path:
            self._css_compressor = CSSCompressor(
                posixpath.basename(css_file_path), posixpath.dirname(css_file_path), debug, self.logger
            )

        self._static_resource_path = static_resource_path
        self._static_resources: Optional[StaticResourceIndex] = None
        if isinstance(static_resource_path, str):
            self._static_resources = StaticResourceIndex(static_resource_path)

        self._has_js = False
        self._has_css = False
        self._has_static_resources = False
        self._js_hash: Optional[str] = None
        self._css_hash: Optional[str] = None
        self._references: List[str] = []
        self._compress_task: Optional[asyncio.Future] = None
        self._compressed = False

    # Accumulation

    def _require(self, component, description: str):
        if component is None:
            self.logger.error(f"Adding {description} to package with no output path for it")
            raise PackageContentError(f"Adding {description} to package with no output path for it")
        return component

    def add_js_file(self, path: str, prefix: Optional[str] = None, fixes=None,
                    basename: Optional[str] = None) -> None:
        self._require(self._js_compressor, "js file").add_file(path, prefix, fixes, basename)
        self._has_js = True

    async def add_js_directory(self, directory: str, prefix: Optional[str] = None,
                               recursive: bool = False) -> None:
        compressor = self._require(self._js_compressor, "js directory")
        self._has_js = True
        await compressor.add_files_in_path(directory, prefix, recursive)

    def add_javascript(self, content: str, prefix: Optional[str] = None,
                       basename: Optional[str] = None) -> None:
        self._require(self._js_compressor, "javascript").add_content(content, prefix, basename)
        self._has_js = True

    def add_css_file(self, path: str, prefix: Optional[str] = None, fixes=None,
                     basename: Optional[str] = None) -> None:
        self._require(self._css_compressor, "css file").add_file(path, prefix, fixes, basename)
        self._has_css = True

    async def add_css_directory(self, directory: str, prefix: Optional[str] = None,
                                recursive: bool = False) -> None:
        compressor = self._require(self._css_compressor, "css directory")
        self._has_css = True
        await compressor.add_files_in_path(directory, prefix, recursive)

    def add_css(self, content: str, prefix: Optional[str] = None,
                basename: Optional[str] = None) -> None:
        self._require(self._css_compressor, "css").add_content(content, prefix, basename)
        self._has_css = True

    async def add_static_resources(self, directory: str, prefix: Optional[str] = None,
                                   recursive: bool = False,
                                   name_filter: Optional[Union[str, Pattern]] = None,
                                   cache: Optional[CacheOptions] = None) -> None:
        index = self._require(self._static_resources, "static resource directory")
        self._has_static_resources = True
        await index.add_directory(directory, prefix, recursive, name_filter, cache)

    def add_bundle_references(self, references: Union[str, Iterable[str], None]) -> None:
        if not references:
            return
        if isinstance(references, str):
            references = [references]
        for reference in references:
            if reference not in self._references:
                self._references.append(reference)

    def add_package(self, other: 'AssetPackage') -> None:
        """Copy fragment declarations, static entries and bundle references from ``other``."""
        if other._js_compressor and self._js_compressor:
            if self._js_compressor.add_fragments_from(other._js_compressor):
                self._has_js = True
        if other._css_compressor and self._css_compressor:
            if self._css_compressor.add_fragments_from(other._css_compressor):
                self._has_css = True
        if other._static_resources is not None and self._static_resources is not None:
            if self._static_resources.add_from(other._static_resources):
                self._has_static_resources = True
        self.add_bundle_references(other._references)

    # Build

    async def compress(self) -> None:
        if self._compress_task is None:
            self._compress_task = asyncio.ensure_future(self._compress())
        await self._compress_task

    async def _compress(self) -> None:
        compressors = [c for c in (self._js_compressor, self._css_compressor) if c is not None]
        # Both compressors settle before the first failure is raised.
        results = await asyncio.gather(*(c.compress() for c in compressors), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        for compressor, file_hash in zip(compressors, results):
            if compressor is self._js_compressor:
                self._js_hash = file_hash
            else:
                self._css_hash = file_hash
        self._compressed = True

    @property
    def compressed(self) -> bool:
        return self._compressed

    def register_routes(self, http: HttpLayer) -> None:
        if not self._compressed:
            raise PackageNotCompressedError("Routes requested for a package that has not been compressed")
        for component in (self._js_compressor, self._css_compressor, self._static_resources):
            if component is not None:
                component.setup_routes(http, self.logger)

    # State

    @property
    def has_js(self) -> bool:
        return self._has_js

    @property
    def has_css(self) -> bool:
        return self._has_css

    @property
    def has_static_resources(self) -> bool:
        return self._has_static_resources

    @property
    def js_compressor(self) -> Optional[JSCompressor]:
        return self._js_compressor

    @property
    def css_compressor(self) -> Optional[CSSCompressor]:
        return self._css_compressor

    @property
    def static_resources(self) -> Optional[StaticResourceIndex]:
        return self._static_resources

    def bundle_references(self) -> Optional[List[str]]:
        return self._references or None

    def all_bundle_references(self) -> Optional[List[str]]:
        return list(self._references) if self._references else None

    # Links

    @staticmethod
    def _versioned(base_url_path: Optional[str], file_path: str, file_hash: Optional[str]) -> str:
        return (base_url_path or "") + file_path + (f"?r={file_hash}" if file_hash else "")

    def js_links(self, base_url_path: Optional[str] = None) -> str:
        if not self._has_js:
            return ""
        return f'<script src="{self._versioned(base_url_path, self._js_file_path, self._js_hash)}"></script>\n'

    def css_links(self, base_url_path: Optional[str] = None) -> str:
        if not self._has_css:
            return ""
        href = self._versioned(base_url_path, self._css_file_path, self._css_hash)
        return f'<link rel="stylesheet" href="{href}" />\n'

    def links(self, base_url_path: Optional[str] = None) -> str:
        return self.js_links(base_url_path) + self.css_links(base_url_path)

    def static_link(self, base_url_path: Optional[str], *parts: str) -> str:
        link = (base_url_path or "") + (self._static_resource_path or "")
        if not link.endswith("/"):
            link += "/"
        return link + "".join(part[1:] if part.startswith("/") else part for part in parts)

    def js_file_path(self) -> Optional[str]:
        return self._js_file_path if self._has_js else None

    def js_file_hash(self) -> Optional[str]:
        return self._js_hash if self._has_js else None

    def resolved_js_file_path(self, base_url_path: Optional[str] = None) -> Optional[str]:
        if not self._has_js:
            return None
        return self._versioned(base_url_path, self._js_file_path, self._js_hash)

    def css_file_path(self) -> Optional[str]:
        return self._css_file_path if self._has_css else None

    def css_file_hash(self) -> Optional[str]:
        return self._css_hash if self._has_css else None

    def resolved_css_file_path(self, base_url_path: Optional[str] = None) -> Optional[str]:
        if not self._has_css:
            return None
        return self._versioned(base_url_path, self._css_file_path, self._css_hash)

"""Package configuration: a fluent builder and the immutable descriptor it produces.

``PackageConfig`` records declarations without touching the filesystem.
``PackageDescriptor.create_package`` resolves them, in order, into an
``AssetPackage`` at application startup.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Tuple, Union

from ..errors import RendererNotFoundError
from ..utilities import safe_reference
from .declarations import (
    BundleDeclaration,
    CssDeclaration,
    Declaration,
    JsDeclaration,
    PackageRefDeclaration,
    RawCssDeclaration,
    RawJsDeclaration,
    StaticDeclaration,
    TemplatesDeclaration,
)
from .module import ModuleCollection, find_matching_packages
from .package import AssetPackage
from .static_resources import CacheOptions

logger = logging.getLogger(__name__)


def _as_list(value: Union[str, Iterable[str]]) -> List[str]:
    return [value] if isinstance(value, str) else list(value)


@dataclass(frozen=True)
class PackageDescriptor:
    """Immutable description of one package's contents."""
    reference: str
    declarations: Tuple[Declaration, ...] = ()
    default_js_path: Optional[str] = None
    default_css_path: Optional[str] = None
    default_static_path: Optional[str] = None
    include_loader_config: bool = False
    starting_references: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def safe_reference(self) -> str:
        return safe_reference(self.reference)

    @property
    def js_file_path(self) -> str:
        return self.default_js_path or f"/resources/{self.safe_reference}/js/client.js"

    @property
    def css_file_path(self) -> str:
        return self.default_css_path or f"/resources/{self.safe_reference}/css/client.css"

    @property
    def static_path(self) -> str:
        if isinstance(self.default_static_path, str):
            return self.default_static_path
        return f"/resources/{self.safe_reference}"

    def resolved_paths(self) -> Tuple[str, str, str]:
        return self.js_file_path, self.css_file_path, self.static_path

    def js_path(self, base_url_path: Optional[str] = "") -> str:
        return (base_url_path or "") + self.js_file_path

    def with_declaration(self, declaration: Declaration) -> 'PackageDescriptor':
        return replace(self, declarations=self.declarations + (declaration,))

    @property
    def wants_loader_config(self) -> bool:
        return self.include_loader_config

    # Resolution

    async def create_package(self, factory, renderers: Optional[Mapping[str, Any]] = None,
                             modules: Optional[ModuleCollection] = None,
                             logger: Optional[logging.Logger] = None,
                             debug: bool = False) -> Optional[AssetPackage]:
        """Build the package described here, or return None when nothing was declared.

        Declarations are applied strictly one after another; the first failure
        aborts the build.
        """
        log = logger or logging.getLogger(__name__)
        if not self.declarations:
            return None

        package = factory.create_package(
            self.js_file_path, self.css_file_path, self.static_path, log, debug
        )
        for declaration in self.declarations:
            await self._apply(declaration, package, renderers or {}, modules, log)
        return package

    async def _apply(self, declaration: Declaration, package: AssetPackage,
                     renderers: Mapping[str, Any], modules: Optional[ModuleCollection],
                     log: logging.Logger) -> None:
        if isinstance(declaration, JsDeclaration):
            if await asyncio.to_thread(os.path.isdir, declaration.path):
                await package.add_js_directory(declaration.path, declaration.prefix, declaration.recursive)
            else:
                await asyncio.to_thread(os.stat, declaration.path)
                package.add_js_file(declaration.path, declaration.prefix)

        elif isinstance(declaration, CssDeclaration):
            if await asyncio.to_thread(os.path.isdir, declaration.path):
                await package.add_css_directory(declaration.path, declaration.prefix, declaration.recursive)
            else:
                await asyncio.to_thread(os.stat, declaration.path)
                package.add_css_file(declaration.path, declaration.prefix)

        elif isinstance(declaration, RawJsDeclaration):
            package.add_javascript(declaration.content, declaration.prefix, declaration.basename)

        elif isinstance(declaration, RawCssDeclaration):
            package.add_css(declaration.content, declaration.prefix, declaration.basename)

        elif isinstance(declaration, StaticDeclaration):
            await package.add_static_resources(
                declaration.path, declaration.prefix, declaration.recursive,
                declaration.name_filter, declaration.cache,
            )

        elif isinstance(declaration, PackageRefDeclaration):
            matching = find_matching_packages(modules, declaration.reference)
            if not matching:
                log.warning(f"Unable to find any matching packages for [{declaration.reference}]")
            for other in matching:
                package.add_package(other)

        elif isinstance(declaration, TemplatesDeclaration):
            renderer = renderers.get(declaration.renderer_type)
            if renderer is None:
                raise RendererNotFoundError(
                    f"Unable to find renderer [{declaration.renderer_type}] for packed templates "
                    f"[{declaration.template_id}] in package [{self.reference}]"
                )
            packed = await declaration.packer.pack(
                declaration.template_id, renderer, declaration.register, log
            )
            if packed:
                package.add_javascript(packed, declaration.prefix, declaration.output_basename)

        elif isinstance(declaration, BundleDeclaration):
            package.add_bundle_references(declaration.references)

        else:
            raise TypeError(f"Unknown package declaration {declaration!r}")

    # Read-only traversals

    def all_bundle_references(self, modules: Optional[ModuleCollection] = None) -> Optional[List[str]]:
        references: List[str] = []

        def extend(items: Optional[Iterable[str]]) -> None:
            for item in items or ():
                if isinstance(item, str) and item not in references:
                    references.append(item)

        for declaration in self.declarations:
            if isinstance(declaration, BundleDeclaration):
                extend(declaration.references)
            elif isinstance(declaration, PackageRefDeclaration):
                for other in find_matching_packages(modules, declaration.reference):
                    extend(other.bundle_references())
        return references or None

    def contains_js(self, modules: Optional[ModuleCollection] = None) -> bool:
        for declaration in self.declarations:
            if isinstance(declaration, (JsDeclaration, RawJsDeclaration, TemplatesDeclaration)):
                return True
            if isinstance(declaration, PackageRefDeclaration):
                if any(other.has_js for other in find_matching_packages(modules, declaration.reference)):
                    return True
        return False


class PackageConfig:
    """Fluent builder for a ``PackageDescriptor``."""

    def __init__(self, reference: str):
        self._reference = reference
        self._declarations: List[Declaration] = []
        self._js_path: Optional[str] = None
        self._css_path: Optional[str] = None
        self._static_path: Optional[str] = None
        self._include_loader_config = False
        self._starting_references: Tuple[str, ...] = ()

    @property
    def reference(self) -> str:
        return self._reference

    def paths(self, js_path: Optional[str] = None, css_path: Optional[str] = None,
              static_path: Optional[str] = None) -> 'PackageConfig':
        self._js_path = js_path
        self._css_path = css_path
        self._static_path = static_path
        return self

    def insert_loader_config(self, starting_references: Union[str, Iterable[str], None] = None) -> 'PackageConfig':
        """Append the client module loader configuration (``setup.js``) to this package."""
        self._include_loader_config = True
        self._starting_references = tuple(_as_list(starting_references)) if starting_references else ()
        return self

    def javascript(self, path: Union[str, Iterable[str]], prefix: Optional[str] = None,
                   recursive: bool = False) -> 'PackageConfig':
        for p in _as_list(path):
            self._declarations.append(JsDeclaration(p, prefix or None, recursive))
        return self

    def raw_javascript(self, content: str, basename: str, prefix: Optional[str] = None) -> 'PackageConfig':
        self._declarations.append(RawJsDeclaration(content, basename, prefix or None))
        return self

    def css(self, path: Union[str, Iterable[str]], prefix: Optional[str] = None,
            recursive: bool = False) -> 'PackageConfig':
        for p in _as_list(path):
            self._declarations.append(CssDeclaration(p, prefix or None, recursive))
        return self

    def raw_css(self, content: str, basename: str, prefix: Optional[str] = None) -> 'PackageConfig':
        self._declarations.append(RawCssDeclaration(content, basename, prefix or None))
        return self

    def static(self, path: str, prefix: Optional[str] = None, recursive: bool = False,
               name_filter: Optional[Union[str, Pattern]] = None,
               cache: Union[CacheOptions, Dict[str, Any], None] = None) -> 'PackageConfig':
        if isinstance(cache, dict):
            cache = CacheOptions.from_dict(cache)
        self._declarations.append(StaticDeclaration(path, prefix or None, recursive, name_filter, cache))
        return self

    def package(self, reference: str) -> 'PackageConfig':
        self._declarations.append(PackageRefDeclaration(reference))
        return self

    def templates(self, template_id: str, packer, prefix: str = "", basename: Optional[str] = None,
                  register: bool = False, renderer_type: str = "default") -> 'PackageConfig':
        self._declarations.append(TemplatesDeclaration(
            template_id, packer, prefix or "", basename, register, renderer_type or "default"
        ))
        return self

    def bundle(self, references: Union[str, Iterable[str]]) -> 'PackageConfig':
        self._declarations.append(BundleDeclaration(tuple(_as_list(references))))
        return self

    def build(self) -> PackageDescriptor:
        return PackageDescriptor(
            reference=self._reference,
            declarations=tuple(self._declarations),
            default_js_path=self._js_path,
            default_css_path=self._css_path,
            default_static_path=self._static_path,
            include_loader_config=self._include_loader_config,
            starting_references=self._starting_references,
        )

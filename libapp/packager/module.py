"""Modules group packages under a name; PackageIndex resolves package references across them.

A module definition is a mapping (or an object exposing one as ``module``)::

    module = {
        "name": "moduleA",
        "prefix": "moduleA/",            # optional, defaults to name + "/"
        "packages": [
            {
                "name": "core",
                "js": ["lib/core.js"],
                "jsdir": "lib/core",
                "css": "style/core.css",
                "cssdir": ["style/core"],
                "module": "some_python_package",
                "resolved_js": [{"src": "static/vendor.js", "fixes": [...], "basename": "vendor.js"}],
                "static": [{"root": "img", "directory": "assets/img", "match": r"\\.png$", "cache": {"max_age": 3600}}],
                "bundle": ["core-bundle"],
            },
        ],
    }

Each package is keyed as ``<prefix>/<name>`` for cross-package references.
"""

import asyncio
import importlib.util
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from ..errors import ConfigurationError
from ..observability.logging import VERBOSE
from ..utilities import safe_add_with_slash, safe_append_slash
from .package import AssetPackage

logger = logging.getLogger(__name__)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return list(value) if isinstance(value, (list, tuple)) else [value]


def _package_directory(module_name: str) -> str:
    spec = importlib.util.find_spec(module_name)
    if spec is None:
        raise ConfigurationError(f"Unable to resolve Python package [{module_name}]")
    if spec.submodule_search_locations:
        return list(spec.submodule_search_locations)[0]
    return os.path.dirname(spec.origin)


def resolve_module_file(module_name: Optional[str], entry: Mapping[str, Any]) -> Optional[str]:
    """Resolve a ``resolved_js`` entry to a file path.

    ``src`` is relative to ``module_name``'s package directory; ``ref`` is
    ``<package>/<relative path>`` for files owned by another installed package.
    """
    if entry.get("src") and module_name:
        return os.path.join(_package_directory(module_name), entry["src"])
    if entry.get("ref"):
        package_name, _, relative = entry["ref"].partition("/")
        return os.path.join(_package_directory(package_name), relative)
    return None


@dataclass(frozen=True)
class PackageMatcher:
    """Exact (case-insensitive) or ``name/*`` prefix match against package keys."""
    name: str
    wildcard: bool = False

    @classmethod
    def parse(cls, pattern: str) -> 'PackageMatcher':
        pattern = pattern.strip()
        if pattern.endswith("/*"):
            return cls(pattern[:-2].lower(), True)
        return cls(pattern.lower(), False)

    def matches(self, key: str) -> bool:
        key = key.lower()
        if self.wildcard:
            return key.startswith(self.name + "/")
        return key == self.name


class Module:
    """A loaded module and its packages."""

    def __init__(self, definition: Any):
        self._definition = definition
        self._spec = self._extract(definition)
        self.name: Optional[str] = self._spec.get("name") if self._spec else None
        self.prefix: Optional[str] = None
        self._packages: Dict[str, AssetPackage] = {}

    @staticmethod
    def _extract(definition: Any) -> Optional[Mapping[str, Any]]:
        if definition is None:
            return None
        if isinstance(definition, Mapping):
            return definition.get("module", definition)
        return getattr(definition, "module", None)

    @property
    def packages(self) -> Dict[str, AssetPackage]:
        return dict(self._packages)

    async def load(self, root_url: str = "", logger: Optional[logging.Logger] = None,
                   debug: bool = False) -> None:
        log = logger or logging.getLogger(__name__)
        if self._spec is None:
            log.error("Unable to load module, definition has no 'module' mapping")
            raise ConfigurationError("Module definition has no 'module' mapping")
        if not self.name:
            raise ConfigurationError("Module definition has no 'name'")

        self.prefix = self._spec.get("prefix") or f"{self.name}/"
        declarations = [p for p in _as_list(self._spec.get("packages")) if p]
        for declaration in declarations:
            if not declaration.get("name"):
                raise ConfigurationError(
                    f"Unable to load package from module [{self.name}] as package description has no 'name'"
                )

        # Packages are independent, so they load concurrently; the lookup keeps declaration order.
        loaded = await asyncio.gather(
            *(self._load_package(d, root_url, log, debug) for d in declarations)
        )
        for declaration, package in zip(declarations, loaded):
            self._packages[safe_add_with_slash(self.prefix, declaration["name"]).lower()] = package

        log.log(VERBOSE, f"Successfully loaded module [{self.name}]")

    async def _load_package(self, p: Mapping[str, Any], root_url: str,
                            log: logging.Logger, debug: bool) -> AssetPackage:
        file_name = re.sub(r"\s", "", p["name"].replace("/", "-"))
        package_prefix = safe_append_slash(self.prefix)
        base = safe_append_slash(root_url or "") + package_prefix
        js_path = base + (p.get("js_name") or f"{file_name}.js")
        css_path = base + (p.get("css_name") or f"{file_name}.css")
        static_path = base + (p.get("static_path") or file_name) if p.get("static") else None

        package = AssetPackage(js_path, css_path, static_path, log, debug)

        for f in _as_list(p.get("js")):
            package.add_js_file(f, package_prefix)
        for d in _as_list(p.get("jsdir")):
            await package.add_js_directory(d, package_prefix, True)
        for f in _as_list(p.get("css")):
            package.add_css_file(f, package_prefix)
        for d in _as_list(p.get("cssdir")):
            await package.add_css_directory(d, package_prefix, True)
        for entry in _as_list(p.get("resolved_js")):
            path = resolve_module_file(p.get("module"), entry)
            if path:
                package.add_js_file(path, package_prefix, entry.get("fixes"), entry.get("basename"))
        for s in _as_list(p.get("static")):
            if isinstance(s, Mapping) and s.get("root") and s.get("directory"):
                await package.add_static_resources(
                    s["directory"], s["root"], True, s.get("match"), s.get("cache")
                )
        package.add_bundle_references(p.get("bundle"))
        return package

    def find_matching_packages(self, pattern: Union[str, PackageMatcher]) -> List[AssetPackage]:
        matcher = pattern if isinstance(pattern, PackageMatcher) else PackageMatcher.parse(pattern)
        if not matcher.wildcard:
            package = self._packages.get(matcher.name)
            return [package] if package is not None else []
        return [package for key, package in self._packages.items() if matcher.matches(key)]


class PackageIndex:
    """Ordered module name -> Module index. Module names are registered once."""

    def __init__(self, modules: Iterable[Module] = ()):
        self._modules: Dict[str, Module] = {}
        for module in modules:
            self.add(module)

    def add(self, module: Module) -> bool:
        key = (module.name or "").lower()
        if key in self._modules:
            logger.debug(f"Module [{module.name}] already registered")
            return False
        self._modules[key] = module
        return True

    def get(self, name: str) -> Optional[Module]:
        return self._modules.get(name.lower())

    def __iter__(self) -> Iterator[Module]:
        return iter(self._modules.values())

    def __len__(self) -> int:
        return len(self._modules)

    async def load(self, root_url: str = "", logger: Optional[logging.Logger] = None,
                   debug: bool = False) -> None:
        for module in self._modules.values():
            await module.load(root_url, logger, debug)

    def find_matching_packages(self, pattern: str) -> List[AssetPackage]:
        matcher = PackageMatcher.parse(pattern)
        matches: List[AssetPackage] = []
        for module in self._modules.values():
            matches.extend(module.find_matching_packages(matcher))
        return matches


ModuleCollection = Union[PackageIndex, Sequence[Module]]


def find_matching_packages(modules: Optional[ModuleCollection], reference: str) -> List[AssetPackage]:
    if not modules:
        return []
    if isinstance(modules, PackageIndex):
        return modules.find_matching_packages(reference)
    matcher = PackageMatcher.parse(reference)
    matches: List[AssetPackage] = []
    for module in modules:
        if module is not None:
            matches.extend(module.find_matching_packages(matcher))
    return matches

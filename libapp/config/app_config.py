"""Declarative application configuration.

``AppConfig`` collects everything an application needs (config values,
modules, packages, renderers, route and data provider paths, extension
templates) and hands it to ``App`` when run.

Example::

    app = AppConfig("catalogue")
    app.default_package().javascript("client/js", recursive=True).css("client/css")
    app.renderer_templates("templates").routes("routes")
    app.config(ConfigLoader("config").load()).run()
"""

import logging
import sys
from typing import Any, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple, Type, Union

from ..errors import ConfigurationError
from ..packager.package_config import PackageConfig, PackageDescriptor
from ..utilities import safe_reference

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_IO_PATH = "/socket.io"


class Renderers:
    JINJA = "jinja"

    ALL = (JINJA,)


def _as_list(value: Union[str, Iterable[str], None]) -> List[str]:
    if value is None:
        return []
    return [value] if isinstance(value, str) else list(value)


class AppConfig:
    """Fluent builder for an application. Every setter returns ``self``."""

    def __init__(self, app_name: str = "default"):
        self.app_name = app_name or "default"
        self.safe_app_name = safe_reference(self.app_name)

        self._config: Dict[str, Any] = {}
        self._base_url_lookup: Optional[Dict[str, str]] = None

        self._debug = False
        self._verbose = False
        self._port: Optional[int] = None

        self._data_provider_paths: List[Tuple[str, bool]] = []
        self._routes_paths: List[Tuple[str, bool]] = []
        self._middlewares: List[Tuple[Type, Dict[str, Any]]] = []
        self._socket_io_path: Optional[str] = None
        self._modules: List[Any] = []

        self._default_package: Optional[PackageConfig] = None
        self._package_configs: List[PackageConfig] = []

        self._renderer_types: List[str] = []
        self._default_renderer_type: Optional[str] = None
        self._renderer_options: Dict[str, Dict[str, Any]] = {}

        self._error_template: Optional[str] = None
        self._access_restricted_template: Optional[str] = None
        self._not_found_template: Optional[str] = None

    # Application

    def config(self, config: Optional[Dict[str, Any]]) -> 'AppConfig':
        self._config = dict(config or {})
        return self

    def base_url_lookup(self, lookup: Dict[str, str]) -> 'AppConfig':
        """Map of lower-case host name (or ``*``) to base URL path."""
        self._base_url_lookup = {k.lower(): v for k, v in lookup.items()}
        return self

    def data_provider(self, path: str, recursive: bool = False) -> 'AppConfig':
        self._data_provider_paths.append((path, recursive))
        return self

    def routes(self, path: str, recursive: bool = False) -> 'AppConfig':
        self._routes_paths.append((path, recursive))
        return self

    def debug(self, debug: bool = True) -> 'AppConfig':
        self._debug = bool(debug)
        return self

    def verbose(self, verbose: bool = True) -> 'AppConfig':
        self._verbose = bool(verbose)
        return self

    def listen(self, port: int) -> 'AppConfig':
        self._port = int(port)
        return self

    def middleware(self, middleware_class: Type, **options: Any) -> 'AppConfig':
        """Add an ASGI middleware class, installed as ``http.add_middleware(middleware_class, **options)``."""
        self._middlewares.append((middleware_class, options))
        return self

    def socket_io(self, path: Optional[str] = None) -> 'AppConfig':
        """Serve a Socket.IO endpoint next to the HTTP routes, at ``path`` (default ``/socket.io``)."""
        self._socket_io_path = path or DEFAULT_SOCKET_IO_PATH
        return self

    def register(self, module: Any) -> 'AppConfig':
        """Register a module definition (a mapping or an object with a ``module`` attribute)."""
        if module is not None and module not in self._modules:
            self._modules.append(module)
        return self

    # Packages

    def default_package(self, js_path: Optional[str] = None, css_path: Optional[str] = None,
                        static_path: Optional[str] = None,
                        loader_config_start: Union[str, Iterable[str], None] = None) -> PackageConfig:
        """Create (once) and return the application's own package.

        Its files are served below ``/resources/<app>/`` unless paths are given,
        and it carries the client loader configuration which starts
        ``<app>/init`` by default.
        """
        if self._default_package is None:
            name = self.safe_app_name
            package = PackageConfig(self.app_name)
            package.paths(
                js_path or f"/resources/{name}/js/client.js",
                css_path or f"/resources/{name}/css/client.css",
                static_path if static_path is not None else f"/resources/{name}",
            )
            package.insert_loader_config(loader_config_start or f"{name}/init")
            self._default_package = package
            self._package_configs.insert(0, package)
        return self._default_package

    def custom_package(self, package_config: PackageConfig) -> 'AppConfig':
        if package_config is not None and package_config not in self._package_configs:
            self._package_configs.append(package_config)
        return self

    def _require_default_package(self) -> PackageConfig:
        if self._default_package is None:
            raise ConfigurationError(
                f"Application [{self.app_name}] has no default package; call default_package() first"
            )
        return self._default_package

    def javascript(self, path: Union[str, Iterable[str]], prefix: Optional[str] = None,
                   recursive: bool = False) -> 'AppConfig':
        self._require_default_package().javascript(path, prefix, recursive)
        return self

    def raw_javascript(self, content: str, basename: str, prefix: Optional[str] = None) -> 'AppConfig':
        self._require_default_package().raw_javascript(content, basename, prefix)
        return self

    def css(self, path: Union[str, Iterable[str]], prefix: Optional[str] = None,
            recursive: bool = False) -> 'AppConfig':
        self._require_default_package().css(path, prefix, recursive)
        return self

    def raw_css(self, content: str, basename: str, prefix: Optional[str] = None) -> 'AppConfig':
        self._require_default_package().raw_css(content, basename, prefix)
        return self

    def static(self, path: str, prefix: Optional[str] = None, recursive: bool = False,
               name_filter: Optional[Union[str, Pattern]] = None,
               cache: Optional[Dict[str, Any]] = None) -> 'AppConfig':
        self._require_default_package().static(path, prefix, recursive, name_filter, cache)
        return self

    def package(self, reference: str) -> 'AppConfig':
        self._require_default_package().package(reference)
        return self

    def templates(self, template_id: str, packer, prefix: str = "", basename: Optional[str] = None,
                  register: bool = False, renderer_type: str = "default") -> 'AppConfig':
        self._require_default_package().templates(template_id, packer, prefix, basename, register, renderer_type)
        return self

    def bundle(self, references: Union[str, Iterable[str]]) -> 'AppConfig':
        self._require_default_package().bundle(references)
        return self

    def package_descriptors(self) -> List[PackageDescriptor]:
        return [p.build() for p in self._package_configs]

    # Renderers

    def renderer(self, renderer_type: str, default: bool = False) -> 'AppConfig':
        if renderer_type not in Renderers.ALL:
            raise ConfigurationError(f"Unknown renderer type [{renderer_type}]")
        if renderer_type not in self._renderer_types:
            self._renderer_types.append(renderer_type)
        if default or not self._default_renderer_type:
            self._default_renderer_type = renderer_type
        return self

    @property
    def default_renderer_type(self) -> Optional[str]:
        return self._default_renderer_type

    def _options_for(self, renderer_type: Optional[str]) -> Dict[str, Any]:
        renderer_type = renderer_type or self._default_renderer_type or Renderers.JINJA
        if renderer_type not in self._renderer_types:
            self.renderer(renderer_type)
        return self._renderer_options.setdefault(renderer_type, {
            "template_paths": [], "helper_paths": [], "context": {},
        })

    def renderer_templates(self, path: Union[str, Iterable[str]],
                           renderer_type: Optional[str] = None) -> 'AppConfig':
        self._options_for(renderer_type)["template_paths"].extend(_as_list(path))
        return self

    def renderer_helper(self, path: Union[str, Iterable[str]],
                        renderer_type: Optional[str] = None) -> 'AppConfig':
        self._options_for(renderer_type)["helper_paths"].extend(_as_list(path))
        return self

    def renderer_context(self, context: Dict[str, Any],
                         renderer_type: Optional[str] = None) -> 'AppConfig':
        self._options_for(renderer_type)["context"] = dict(context or {})
        return self

    def renderer_options(self, renderer_type: str) -> Dict[str, Any]:
        return self._renderer_options.get(renderer_type, {})

    # Extension templates

    def error_template(self, template: str) -> 'AppConfig':
        self._error_template = template
        return self

    def access_restricted_template(self, template: str) -> 'AppConfig':
        self._access_restricted_template = template
        return self

    def not_found_template(self, template: str) -> 'AppConfig':
        self._not_found_template = template
        return self

    # Run

    def create_app(self):
        from ..server.application import App
        return App(self)

    def run(self, argv: Optional[Sequence[str]] = None) -> None:
        """Build the application and serve it until interrupted; exits non-zero if startup fails."""
        app = self.create_app()
        try:
            app.run(self._config, argv)
        except Exception:
            sys.exit(1)

    # Read access for App

    @property
    def settings(self) -> Dict[str, Any]:
        return {
            "config": self._config,
            "base_url_lookup": self._base_url_lookup,
            "debug": self._debug,
            "verbose": self._verbose,
            "port": self._port,
        }

    @property
    def modules(self) -> List[Any]:
        return list(self._modules)

    @property
    def middlewares(self) -> List[Tuple[Type, Dict[str, Any]]]:
        return list(self._middlewares)

    @property
    def socket_io_path(self) -> Optional[str]:
        return self._socket_io_path

    @property
    def data_provider_paths(self) -> List[Tuple[str, bool]]:
        return list(self._data_provider_paths)

    @property
    def routes_paths(self) -> List[Tuple[str, bool]]:
        return list(self._routes_paths)

    @property
    def extension_templates(self) -> Dict[str, Optional[str]]:
        return {
            "error": self._error_template,
            "access_restricted": self._access_restricted_template,
            "not_found": self._not_found_template,
        }

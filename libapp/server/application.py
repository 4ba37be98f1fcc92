"""The running application built from an ``AppConfig``.

``App.setup`` performs the whole startup sequence and returns the FastAPI
application; ``App.run`` additionally serves ``App.asgi`` (the FastAPI application, or
the Socket.IO wrapper around it) with uvicorn. Startup order:

1. process arguments and config values (environment, debug, port, base URLs)
2. logging, access logging, metrics and CORS
3. modules, renderers and package creation (including the client loader config)
4. the FastAPI application with its middleware, wrapped by Socket.IO when enabled
5. data providers, then route files
6. package compression and route registration, then the error extensions
"""

import asyncio
import json
import logging
import re
import textwrap
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import socketio
import uvicorn
from fastapi import FastAPI, Request
from jinja2 import Template

from ..cli import parse_process_arguments
from ..config.app_config import Renderers
from ..errors import ConfigurationError
from ..observability.access import AccessLogger
from ..observability.logging import VERBOSE, setup_logging_from_config
from ..observability.prometheus_metrics import setup_prometheus_metrics
from ..packager.declarations import RawJsDeclaration
from ..packager.module import Module, PackageIndex
from ..packager.package import AssetPackage
from ..packager.package_config import PackageDescriptor
from ..packager.webpacker import WebPacker
from ..templates.renderer import JinjaRenderer
from .extensions import AccessRestrictedExtension, ErrorExtension, NotFoundExtension
from .loaders import DataProviderLoader, RoutesLoader
from .middleware import RequestContextMiddleware
from .security.cors import CORSHeadersMiddleware, CORSPolicy

logger = logging.getLogger(__name__)

BASE_URL_REPLACEMENT = "$BASEURL$"
DEFAULT_PORT = 8082
LOADER_CONFIG_BASENAME = "setup.js"

_LOADER_CONFIG_BODY = """    var baseURLPath = '';
    try{ var b = JSON.parse(document.getElementById('data').innerHTML); if(b && b.baseURLPath) { baseURLPath = '' + b.baseURLPath; } } catch(e) {}
    if(config && config.paths) {
        for(var k in config.paths) {
            if(!(config.paths.hasOwnProperty(k))) { continue; }
            var v = config.paths[k];
            if(typeof(v) === 'string') { config.paths[k] = v.replace('%(token)s', baseURLPath); }
            if(v instanceof Array) {
                for(var i = 0; i < v.length; i++) {
                    v[i] = v[i].replace('%(token)s', baseURLPath);
                }
            }
        }
    }

    require.config(config);

""" % {"token": BASE_URL_REPLACEMENT}


def loader_config_script(loader_config: Dict[str, Any], starting_references: Iterable[str] = ()) -> str:
    """Client script configuring the module loader with package paths and bundles.

    ``$BASEURL$`` in configured paths is replaced in the browser with the
    ``baseURLPath`` of the page's ``#data`` JSON block.
    """
    config_json = textwrap.indent(json.dumps(loader_config, indent=4), "    ").lstrip()
    script = "(function(require){\n\n"
    script += f"    var config = {config_json};\n"
    script += _LOADER_CONFIG_BODY
    starting_references = list(starting_references or ())
    if starting_references:
        script += f"\n\n    require({json.dumps(starting_references)}, function() {{}});"
    script += "\n})(require);"
    return script


class App:
    """Runs one application described by an ``AppConfig``."""

    def __init__(self, app_config):
        self.app_config = app_config
        self.name = app_config.safe_app_name
        self.logger = logging.getLogger(f"libapp.app.{self.name}")

        self.config: Dict[str, Any] = {}
        self.environment: Optional[str] = None
        self.debug = False
        self.verbose = False
        self.port = DEFAULT_PORT
        self.host = "0.0.0.0"

        self.access: Optional[AccessLogger] = None
        self.metrics_enabled = False
        self.cors: Optional[CORSPolicy] = None
        self.configure_logging = False
        self.http: Optional[FastAPI] = None
        self.socket_io: Optional[socketio.AsyncServer] = None
        self.asgi: Any = None

        self.modules = PackageIndex()
        self.web_packer = WebPacker(self.logger)
        self._renderers: Dict[str, JinjaRenderer] = {Renderers.JINJA: JinjaRenderer()}
        self._default_renderer_type = app_config.default_renderer_type or Renderers.JINJA

        self._packages: List[Tuple[str, AssetPackage]] = []
        self._package_lookup: Dict[str, AssetPackage] = {}
        self.package_bundle_references: Optional[Dict[str, List[str]]] = None
        self.package_js_paths: Optional[Dict[str, str]] = None

        self._data_providers: Dict[str, Any] = {}
        self._data_provider_loader = DataProviderLoader()
        for path, recursive in app_config.data_provider_paths:
            self._data_provider_loader.add_path(path, recursive)
        self._routes_loader = RoutesLoader()
        for path, recursive in app_config.routes_paths:
            self._routes_loader.add_path(path, recursive)

        self._google_analytics_code: Optional[str] = None
        self._base_url_lookup: Optional[Dict[str, str]] = None

        self.not_found_extension = NotFoundExtension(self.default_renderer, self.logger)
        self.error_extension = ErrorExtension(self.default_renderer, self.logger)
        self.access_restricted_extension = AccessRestrictedExtension(self.default_renderer, self.logger)

    # Named packages

    def named_package(self, name: str) -> Optional[AssetPackage]:
        return self._package_lookup.get(name.lower()) if name else None

    def require_named_package(self, name: str) -> AssetPackage:
        package = self.named_package(name)
        if package is None:
            raise ConfigurationError(f"Unable to find required named package {{{name}}}")
        return package

    # Data providers

    def register_data_provider(self, key: str, value: Any) -> None:
        self._data_providers[key] = value

    def get_data_provider(self, key: str) -> Any:
        return self._data_providers.get(key)

    def require_data_provider(self, key: str) -> Any:
        if key not in self._data_providers:
            raise ConfigurationError(f"Unable to find required data provider {{{key}}}")
        return self._data_providers[key]

    # Renderers and templates

    def renderer(self, renderer_type: Optional[str] = None) -> Optional[JinjaRenderer]:
        if renderer_type in (None, "default"):
            renderer_type = self._default_renderer_type
        return self._renderers.get(renderer_type)

    @property
    def default_renderer(self) -> JinjaRenderer:
        return self._renderers[self._default_renderer_type]

    def load_template(self, name: str, renderer_type: Optional[str] = None) -> Optional[Template]:
        renderer = self.renderer(renderer_type)
        return renderer.load_template(name) if renderer is not None else None

    def require_template(self, name: str, renderer_type: Optional[str] = None) -> Template:
        template = self.load_template(name, renderer_type)
        if template is None:
            raise ConfigurationError(f"Unable to find required template {{{name}}}")
        return template

    # Base URL paths

    def base_url_for_host(self, host: Optional[str]) -> str:
        if not host:
            return ""
        host = host.lower()
        if self._base_url_lookup:
            if host in self._base_url_lookup:
                return self._base_url_lookup[host]
            if "*" in self._base_url_lookup:
                return self._base_url_lookup["*"]
        return ""

    def base_url_for_request(self, request: Request) -> str:
        host = request.headers.get("x-forwarded-server")
        if host:
            host = host.split(",")[0].strip()
        else:
            host = request.headers.get("host")
        return self.base_url_for_host(host)

    def init_render_data(self, request: Request) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self._google_analytics_code:
            data["googleAnalyticsCode"] = self._google_analytics_code
        data["baseURLPath"] = self.base_url_for_request(request) or ""
        return data

    # Startup

    async def setup(self, config: Optional[Dict[str, Any]] = None,
                    argv: Optional[Sequence[str]] = None) -> FastAPI:
        """Run the startup sequence and return the configured FastAPI application."""
        try:
            self._configure_process(config, argv)
            self._configure_observability()
            await self._load_modules()
            await self._setup_renderers()
            await self._configure_packages()
            self.http = self._create_http()
            await self._data_provider_loader.load(self, self.config, self.logger)
            await self._routes_loader.load(self, self.config, self.logger)
            await self._register_packages()
            self._setup_extensions()
        except Exception as e:
            self.logger.error(f"Unable to start application due to: {e}")
            raise
        return self.http

    async def serve(self, config: Optional[Dict[str, Any]] = None,
                    argv: Optional[Sequence[str]] = None) -> None:
        self.configure_logging = True
        await self.setup(config, argv)
        server = uvicorn.Server(uvicorn.Config(self.asgi, host=self.host, port=self.port, log_config=None))
        self.logger.log(VERBOSE, f"Listening on port {self.port}")
        await server.serve()

    def run(self, config: Optional[Dict[str, Any]] = None,
            argv: Optional[Sequence[str]] = None) -> None:
        asyncio.run(self.serve(config, argv))

    def _configure_process(self, config: Optional[Dict[str, Any]], argv: Optional[Sequence[str]]) -> None:
        settings = self.app_config.settings
        self.config = dict(config if config is not None else settings["config"])
        config = self.config
        args = parse_process_arguments(argv)

        environment = args.environment or config.get("Environment")
        self.environment = environment if isinstance(environment, str) else None

        self.verbose = bool(args.verbose or config.get("Verbose") or settings["verbose"])
        self.debug = bool(
            args.debug or config.get("Debug") or settings["debug"]
            or (self.environment and self.environment.lower() == "debug")
        )

        port = args.port
        if not port and config.get("Port"):
            try:
                port = int(config["Port"])
            except (TypeError, ValueError):
                port = None
        self.port = port or settings["port"] or DEFAULT_PORT
        self.host = config.get("Host", self.host)

        code = config.get("GoogleAnalyticsCode")
        self._google_analytics_code = code if isinstance(code, str) and code else None

        lookup = settings["base_url_lookup"]
        if not lookup and isinstance(config.get("BaseURLPath"), dict):
            lookup = {k.lower(): v for k, v in config["BaseURLPath"].items()}
        self._base_url_lookup = lookup or None

    def _configure_observability(self) -> None:
        config = self.config
        if self.configure_logging or config.get("Logging") is not None:
            setup_logging_from_config(config.get("Logging"), self.name, self.debug, self.verbose)

        self.access = AccessLogger(config["Access"], self.name) if config.get("Access") else None
        self.metrics_enabled = config.get("Metrics") is not None
        self.cors = CORSPolicy.from_config(config) if config.get("CORSAllowedOrigins") else None

    async def _load_modules(self) -> None:
        for definition in self.app_config.modules:
            module = Module(definition)
            if module.name and self.modules.get(module.name) is not None:
                continue
            try:
                await module.load("", self.logger, self.debug)
            except Exception as e:
                self.logger.error(f"Unable to load module [{module.name}] due to: {e}")
                raise
            self.modules.add(module)
            self.logger.log(VERBOSE, f"Successfully loaded module [{module.name}].")

    async def _setup_renderers(self) -> None:
        for renderer in self._renderers.values():
            self._register_package_helpers(renderer)

        renderer_type = self.app_config.default_renderer_type
        if not renderer_type:
            return
        options = self.app_config.renderer_options(renderer_type)
        templates = options.get("template_paths", [])
        await self._renderers[renderer_type].configure(
            templates, templates, options.get("helper_paths", []), options.get("context", {})
        )
        self.logger.log(VERBOSE, f"Successfully configured renderer [{renderer_type}]")

    def _register_package_helpers(self, renderer: JinjaRenderer) -> None:
        def lookup(helper: str, package_name: Optional[str]) -> Optional[AssetPackage]:
            if not package_name:
                self.logger.error(f"'{helper}' requires a named package to be provided.")
                return None
            return self._package_lookup.get(package_name.lower())

        def package(base_url_path=None, package_name=None):
            p = lookup("package", package_name)
            return renderer.safe_string(p.links(base_url_path or "") if p else "")

        def package_css(base_url_path=None, package_name=None):
            p = lookup("package_css", package_name)
            return renderer.safe_string(p.css_links(base_url_path or "") if p else "")

        def package_js(base_url_path=None, package_name=None):
            p = lookup("package_js", package_name)
            return renderer.safe_string(p.js_links(base_url_path or "") if p else "")

        def package_static_resource(base_url_path=None, package_name=None, *parts):
            p = lookup("package_static_resource", package_name)
            return renderer.safe_string(p.static_link(base_url_path or "", *parts) if p else "")

        def base_config(base_url_path=None):
            data = json.dumps({"baseURLPath": str(base_url_path or "")})
            return renderer.safe_string(f"<script id='baseConfig' type='application/json'>{data}</script>\n")

        renderer.register_helper("package", package)
        renderer.register_helper("package_css", package_css)
        renderer.register_helper("package_js", package_js)
        renderer.register_helper("package_static_resource", package_static_resource)
        renderer.register_helper("base_config", base_config)

    def _renderer_lookup(self) -> Dict[str, JinjaRenderer]:
        renderers = dict(self._renderers)
        renderers["default"] = self.default_renderer
        return renderers

    def build_loader_config(self, descriptors: List[PackageDescriptor]) -> Dict[str, Any]:
        bundles: Dict[str, List[str]] = {}
        js_paths: Dict[str, str] = {}

        for descriptor in descriptors:
            if not descriptor.reference:
                continue
            ref = descriptor.reference.lower()
            references = descriptor.all_bundle_references(self.modules)
            if references:
                bundles[ref] = references
            if descriptor.contains_js(self.modules):
                js_paths[ref] = descriptor.js_path(BASE_URL_REPLACEMENT)

        self.package_bundle_references = bundles or None
        self.package_js_paths = js_paths or None

        loader_config: Dict[str, Any] = {}
        if bundles:
            loader_config["bundles"] = dict(bundles)
        if js_paths:
            loader_config["paths"] = {k: re.sub(r"\.js", "", v, flags=re.IGNORECASE) for k, v in js_paths.items()}
        return loader_config

    async def _configure_packages(self) -> None:
        descriptors = self.app_config.package_descriptors()
        loader_config = self.build_loader_config(descriptors)

        descriptors = [
            d.with_declaration(RawJsDeclaration(
                loader_config_script(loader_config, d.starting_references), LOADER_CONFIG_BASENAME
            )) if d.wants_loader_config else d
            for d in descriptors
        ]

        renderers = self._renderer_lookup()
        for descriptor in descriptors:
            try:
                package = await descriptor.create_package(
                    self.web_packer, renderers, self.modules, self.logger, self.debug
                )
            except Exception as e:
                self.logger.error(f"Unable to create package due to: {e}")
                raise
            if package is None:
                continue
            name = descriptor.reference.lower()
            self._packages.append((name, package))
            self._package_lookup[name] = package

    def _create_http(self) -> FastAPI:
        http = FastAPI(title=self.app_config.app_name, docs_url=None, redoc_url=None, openapi_url=None)

        for middleware_class, options in self.app_config.middlewares:
            http.add_middleware(middleware_class, **options)
        if self.cors is not None:
            http.add_middleware(CORSHeadersMiddleware, policy=self.cors)
        http.add_middleware(RequestContextMiddleware, owner=self)
        if self.metrics_enabled:
            metrics_config = self.config["Metrics"] if isinstance(self.config["Metrics"], dict) else {}
            setup_prometheus_metrics(http, self.name, {"environment": self.environment, **metrics_config})
        self._attach_socket_io(http)
        return http

    def _attach_socket_io(self, http: FastAPI) -> None:
        path = self.app_config.socket_io_path
        if not path:
            self.asgi = http
            return
        self.socket_io = socketio.AsyncServer(async_mode="asgi", logger=self.logger, engineio_logger=False)
        self.asgi = socketio.ASGIApp(self.socket_io, other_asgi_app=http, socketio_path=path.strip("/"))
        self.logger.log(VERBOSE, f"Socket.IO enabled at [{path}]")

    async def _register_packages(self) -> None:
        for name, package in self._packages:
            try:
                await self.web_packer.register_package(name, package, self.http)
            except Exception as e:
                self.logger.error(f"Unable to register package due to: {e}")
                raise
        if self._packages:
            self.logger.log(VERBOSE, "Successfully configured and registered all packages.")

    def _setup_extensions(self) -> None:
        templates = self.app_config.extension_templates
        for key, extension in (
            ("error", self.error_extension),
            ("access_restricted", self.access_restricted_extension),
            ("not_found", self.not_found_extension),
        ):
            if templates.get(key):
                extension.template = self.require_template(templates[key])

        self.access_restricted_extension.setup(self.http)
        self.error_extension.setup(self.http)
        self.not_found_extension.setup(self.http)

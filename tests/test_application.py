"""End to end tests for App: startup sequence, packages, routes and extensions."""

import json
import logging
from unittest.mock import patch

import pytest
import socketio
from fastapi import Request

from libapp.config import AppConfig
from libapp.errors import ConfigurationError
from libapp.observability.access import AccessLogger
from libapp.server.application import App, loader_config_script

ROUTES = '''
from fastapi import Request
from fastapi.responses import HTMLResponse

from libapp.errors import AccessRestrictedError, LibAppError, NotFoundError


def setup(app, config, http):

    @http.get("/")
    async def index(request: Request):
        template = app.require_template("index")
        data = dict(request.state.render_data, greeting=app.require_data_provider("greeting"))
        return HTMLResponse(app.default_renderer.render(template, data, request.state.timer))

    @http.get("/secret")
    async def secret():
        raise AccessRestrictedError("no")

    @http.get("/missing")
    async def missing():
        raise NotFoundError("gone")

    @http.get("/teapot")
    async def teapot():
        raise LibAppError("short and stout", status_code=418)

    @http.get("/boom")
    async def boom():
        raise RuntimeError("boom")
'''

DATA_PROVIDER = '''
async def setup(app, config):
    app.register_data_provider("greeting", config.get("Greeting", "hello"))
'''


@pytest.fixture
def project(write_file, tmp_path):
    write_file("client/js/init.js", "define('app/init', [], function() { return 1; });\n")
    write_file("client/css/site.css", "body { margin: 0 }\n")
    write_file("templates/index.html", "{{ greeting }}|{{ baseURLPath }}|{{ package(baseURLPath, 'app') }}")
    write_file("templates/error.html", "Oops {{ baseURLPath }}")
    write_file("routes/pages.py", ROUTES)
    write_file("routes/_ignored.py", "raise RuntimeError('never imported')\n")
    write_file("providers/greeting.py", DATA_PROVIDER)
    widget_js = write_file("widgets/w.js", "var widget = true;\n")

    app_config = AppConfig("app")
    app_config.default_package().javascript(str(tmp_path / "client/js"), prefix="app").css(
        str(tmp_path / "client/css")
    ).package("widgets/core")
    app_config.register({
        "name": "widgets",
        "packages": [{"name": "core", "js": [widget_js], "bundle": "widgets-bundle"}],
    })
    app_config.renderer_templates(str(tmp_path / "templates"))
    app_config.error_template("error")
    app_config.data_provider(str(tmp_path / "providers"))
    app_config.routes(str(tmp_path / "routes"))
    app_config.base_url_lookup({"*": "/tenant", "Other.Example": "/other"})
    return app_config


@pytest.fixture
async def started(project):
    app = App(project)
    http = await app.setup({"Greeting": "hi there"}, [])
    return app, http


class TestLoaderConfigScript:

    def test_script_with_starting_references(self):
        script = loader_config_script({"paths": {"app": "$BASEURL$/resources/app/js/client"}}, ["app/init"])
        assert script.startswith("(function(require){\n\n    var config = {\n")
        assert "v.replace('$BASEURL$', baseURLPath)" in script
        assert 'require(["app/init"], function() {});' in script
        assert script.endswith("\n})(require);")

    def test_script_without_starting_references(self):
        script = loader_config_script({})
        assert "require([" not in script
        assert script.endswith("require.config(config);\n\n\n})(require);")


class TestStartup:

    async def test_process_arguments_override_config(self, project):
        app = App(project)
        await app.setup({"Port": "9000", "Environment": "prod"}, ["--port", "9100", "-e", "debug"])
        assert app.port == 9100
        assert app.environment == "debug"
        assert app.debug

    async def test_port_defaults(self, project):
        app = App(project)
        await app.setup({}, [])
        assert app.port == 8082
        assert app.access is None
        assert app.cors is None
        assert not app.metrics_enabled

    async def test_socket_io_is_off_by_default(self, started):
        app, http = started
        assert app.socket_io is None
        assert app.asgi is http

    async def test_socket_io_wraps_http(self, project, client_for):
        app = App(project.socket_io("/realtime"))
        http = await app.setup({"Greeting": "hi there"}, [])

        assert isinstance(app.socket_io, socketio.AsyncServer)
        assert app.asgi is not http
        client = client_for(app.asgi)

        handshake = client.get("/realtime/?EIO=4&transport=polling")
        assert handshake.status_code == 200
        assert handshake.text.startswith("0{")
        assert client.get("/", headers={"host": "example.com"}).text.startswith("hi there|/tenant|")

    async def test_named_packages_and_data_providers(self, started):
        app, _ = started
        assert app.named_package("APP") is app.require_named_package("app")
        assert app.get_data_provider("greeting") == "hi there"
        with pytest.raises(ConfigurationError):
            app.require_named_package("nope")
        with pytest.raises(ConfigurationError):
            app.require_data_provider("nope")
        assert app.get_data_provider("nope") is None

    async def test_loader_config_is_built_from_packages(self, started):
        app, _ = started
        assert app.package_bundle_references == {"app": ["widgets-bundle"]}
        assert app.package_js_paths == {"app": "$BASEURL$/resources/app/js/client.js"}
        assert len(app.modules) == 1

    async def test_failed_startup_is_logged_and_raised(self, project, write_file, caplog):
        write_file("routes/zz_broken.py", "def setup(app, config, http):\n    raise ValueError('bad route')\n")
        app = App(project)
        with caplog.at_level(logging.ERROR, logger="libapp.app.app"):
            with pytest.raises(ValueError):
                await app.setup({}, [])
        assert "Unable to start application due to: bad route" in caplog.text

    async def test_missing_extension_template_fails(self, project):
        project.not_found_template("does-not-exist")
        with pytest.raises(ConfigurationError):
            await App(project).setup({}, [])


class TestServedPackages:

    async def test_page_links_use_base_url_path(self, started, client_for):
        app, http = started
        js_hash = app.named_package("app").js_file_hash()
        response = client_for(http).get("/")

        assert response.status_code == 200
        assert response.text.startswith("hi there|/tenant|")
        assert f'<script src="/tenant/resources/app/js/client.js?r={js_hash}"></script>' in response.text
        assert '<link rel="stylesheet" href="/tenant/resources/app/css/client.css?r=' in response.text

    async def test_compiled_js_and_revision_redirect(self, started, client_for):
        app, http = started
        client = client_for(http)
        js_hash = app.named_package("app").js_file_hash()

        response = client.get(f"/resources/app/js/client.js?r={js_hash}")
        assert response.status_code == 200
        assert response.headers["cache-control"] == "public, max-age=31536000"
        assert response.headers["x-sourcemap"] == "/tenant/resources/app/js/client.map"
        assert "widget" in response.text

        response = client.get("/resources/app/js/client.js?r=stale", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/tenant/resources/app/js/client.js"

    async def test_source_map_root_follows_host(self, started, client_for):
        _, http = started
        client = client_for(http)

        source_map = json.loads(client.get("/resources/app/js/client.map").text)
        assert source_map["sourceRoot"] == "/tenant/resources/app/js/src/"
        assert source_map["sources"] == ["app/init.js", "widgets/w.js", "setup.js"]

        forwarded = client.get("/resources/app/js/client.map", headers={"x-forwarded-server": "other.example, proxy"})
        assert json.loads(forwarded.text)["sourceRoot"] == "/other/resources/app/js/src/"

    async def test_loader_config_is_served_as_source(self, started, client_for):
        _, http = started
        response = client_for(http).get("/resources/app/js/src/setup.js")

        assert response.status_code == 200
        assert '"app": "$BASEURL$/resources/app/js/client"' in response.text
        assert '"app": [\n                "widgets-bundle"\n            ]' in response.text
        assert 'require(["app/init"], function() {});' in response.text

    async def test_unknown_resource_is_not_found(self, started, client_for):
        _, http = started
        response = client_for(http).get("/resources/app/js/src/nope.js")
        assert response.status_code == 404
        assert response.text == "Not Found"


class TestExtensions:

    async def test_access_restricted(self, started, client_for):
        _, http = started
        client = client_for(http)

        response = client.get("/secret")
        assert response.status_code == 403
        assert response.text == "Access Restricted"

        response = client.get("/secret", headers={"X-Requested-With": "XMLHttpRequest"})
        assert response.status_code == 403
        assert response.json() == {"status": "error", "error": "access restricted"}

    async def test_not_found_error_from_route(self, started, client_for):
        _, http = started
        response = client_for(http).get("/missing")
        assert response.status_code == 404
        assert response.text == "Not Found"

    async def test_errors_render_template(self, started, client_for):
        _, http = started
        response = client_for(http).get("/boom")
        assert response.status_code == 500
        assert response.text == "Oops /tenant"

    async def test_xhr_errors_keep_status_in_range(self, started, client_for):
        _, http = started
        client = client_for(http)
        xhr = {"X-Requested-With": "XMLHttpRequest"}

        response = client.get("/teapot", headers=xhr)
        assert response.status_code == 418
        assert response.json() == {"status": "error"}

        response = client.get("/boom", headers=xhr)
        assert response.status_code == 500
        assert response.json() == {"status": "error"}

    async def test_custom_handler_replaces_default(self, project, client_for):
        from fastapi.responses import PlainTextResponse

        app = App(project)
        app.not_found_extension.handler = lambda request, exc: PlainTextResponse("custom", status_code=404)
        http = await app.setup({}, [])

        response = client_for(http).get("/nowhere")
        assert response.status_code == 404
        assert response.text == "custom"


class TestRequestContext:

    async def test_base_url_for_host(self, project):
        app = App(project)
        await app.setup({}, [])
        assert app.base_url_for_host("OTHER.example") == "/other"
        assert app.base_url_for_host("anything") == "/tenant"
        assert app.base_url_for_host(None) == ""

    async def test_base_url_from_config(self, client_for):
        app = App(AppConfig("bare"))
        http = await app.setup({"BaseURLPath": {"Example.com": "/ex"}, "GoogleAnalyticsCode": "UA-1"}, [])

        @http.get("/data")
        async def data(request: Request):
            return request.state.render_data

        client = client_for(http)
        assert client.get("/data", headers={"host": "example.com"}).json() == {
            "googleAnalyticsCode": "UA-1", "baseURLPath": "/ex",
        }
        assert client.get("/data").json() == {"googleAnalyticsCode": "UA-1", "baseURLPath": ""}

    async def test_access_log_written_per_request(self, client_for):
        app = App(AppConfig("bare"))
        with patch.object(AccessLogger, "log_request") as log_request:
            http = await app.setup({"Access": {"meta": {"team": "web"}}}, [])
            client_for(http).get("/nowhere")

        assert log_request.call_count == 1
        request, status_code = log_request.call_args[0][:2]
        assert request.url.path == "/nowhere"
        assert status_code == 404

    async def test_cors_and_custom_middleware(self, client_for):
        class Stamp:
            def __init__(self, app, value):
                self.app = app
                self.value = value

            async def __call__(self, scope, receive, send):
                async def send_wrapper(message):
                    if message["type"] == "http.response.start":
                        message.setdefault("headers", []).append((b"x-stamp", self.value.encode()))
                    await send(message)
                await self.app(scope, receive, send_wrapper)

        app_config = AppConfig("bare").middleware(Stamp, value="v1")
        app = App(app_config)
        http = await app.setup({
            "CORSAllowedOrigins": ["https://Client.Example"],
            "CORSHeaders": {"X-Frame-Options": "DENY"},
        }, [])

        response = client_for(http).get("/nowhere", headers={"origin": "https://client.example"})
        assert response.headers["access-control-allow-origin"] == "https://Client.Example"
        assert response.headers["vary"] == "Origin"
        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["x-stamp"] == "v1"

    async def test_metrics_endpoint(self, client_for):
        app = App(AppConfig("bare"))
        http = await app.setup({"Metrics": {}}, [])
        client = client_for(http)
        client.get("/nowhere")

        response = client.get("/metrics")
        assert response.status_code == 200
        assert "libapp_http_requests_total" in response.text

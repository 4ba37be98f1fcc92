"""Tests for PackageConfig / PackageDescriptor resolution."""

from unittest.mock import MagicMock

import pytest

from libapp.errors import RendererNotFoundError
from libapp.packager.declarations import JsDeclaration, RawJsDeclaration
from libapp.packager.module import Module
from libapp.packager.package_config import PackageConfig, PackageDescriptor
from libapp.packager.webpacker import WebPacker
from libapp.templates.renderer import JinjaRenderer
from libapp.templates.template_packer import TemplatePacker


@pytest.fixture
def factory():
    return WebPacker()


@pytest.fixture
async def module_a(write_file):
    module = Module({"module": {
        "name": "moduleA",
        "packages": [
            {"name": "widgets", "js": [write_file("mod/widgets.js", "var w = 1;")], "bundle": ["widgets-bundle"]},
            {"name": "styles", "css": write_file("mod/styles.css", "p { margin: 0 }")},
        ],
    }})
    await module.load()
    return module


class TestDescriptor:

    def test_default_paths_use_safe_reference(self):
        descriptor = PackageConfig("My_App").build()
        assert descriptor.safe_reference == "my-app"
        assert descriptor.resolved_paths() == (
            "/resources/my-app/js/client.js",
            "/resources/my-app/css/client.css",
            "/resources/my-app",
        )
        assert descriptor.js_path("$BASEURL$") == "$BASEURL$/resources/my-app/js/client.js"

    def test_with_declaration_returns_new_descriptor(self):
        descriptor = PackageConfig("app").build()
        extended = descriptor.with_declaration(RawJsDeclaration("var a;", "a.js"))
        assert descriptor.declarations == ()
        assert len(extended.declarations) == 1

    def test_builder_records_declarations_in_order(self):
        descriptor = (PackageConfig("app")
                      .javascript(["a.js", "b.js"], prefix="lib")
                      .raw_javascript("var c;", "c.js")
                      .build())
        assert descriptor.declarations[:2] == (JsDeclaration("a.js", "lib", False), JsDeclaration("b.js", "lib", False))
        assert isinstance(descriptor.declarations[2], RawJsDeclaration)


class TestCreatePackage:

    @pytest.mark.asyncio
    async def test_no_declarations_gives_none(self, factory):
        assert await PackageDescriptor("empty").create_package(factory) is None

    @pytest.mark.asyncio
    async def test_file_and_raw_javascript(self, factory, write_file, client_for):
        from fastapi import FastAPI

        descriptor = (PackageConfig("app")
                      .paths("/r/app/js/client.js", "/r/app/css/client.css", "/r/app")
                      .javascript(write_file("a.js", "var a = 1;"))
                      .raw_javascript("var b = 2;", "b.js")
                      .build())

        package = await descriptor.create_package(factory)
        await package.compress()
        http = FastAPI()
        package.register_routes(http)
        client = client_for(http)
        compiled = client.get("/r/app/js/client.js").text
        assert compiled.index("var a=1;") < compiled.index("var b=2;")
        assert client.get("/r/app/js/src/a.js").text == "var a = 1;"
        assert client.get("/r/app/js/src/b.js").text == "var b = 2;"

    @pytest.mark.asyncio
    async def test_directories_and_static(self, factory, write_file, tmp_path):
        write_file("client/js/one.js", "var one;")
        write_file("client/js/sub/two.js", "var two;")
        write_file("client/css/site.css", "body { margin: 0 }")
        write_file("client/img/logo.png", "png")

        package = await (PackageConfig("app")
                         .javascript(str(tmp_path / "client/js"), recursive=True)
                         .css(str(tmp_path / "client/css"))
                         .static(str(tmp_path / "client/img"), prefix="img", cache={"max_age": 10})
                         .build()
                         .create_package(factory))

        assert [f.basename for f in package.js_compressor.fragments] == ["one.js", "sub/two.js"]
        assert [f.basename for f in package.css_compressor.fragments] == ["site.css"]
        assert "/img/logo.png" in package.static_resources

    @pytest.mark.asyncio
    async def test_missing_file_aborts(self, factory, tmp_path):
        descriptor = PackageConfig("app").javascript(str(tmp_path / "missing.js")).build()
        with pytest.raises(FileNotFoundError):
            await descriptor.create_package(factory)

    @pytest.mark.asyncio
    async def test_unresolved_package_reference_warns(self, factory):
        log = MagicMock()
        package = await (PackageConfig("app").package("nowhere/*").raw_javascript("var a;", "a.js")
                         .build().create_package(factory, modules=[], logger=log))
        assert package is not None
        log.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_missing_renderer_is_fatal(self, factory, write_file):
        packer = TemplatePacker()
        packer.add_file(write_file("t/a.html", "<p>{{ a }}</p>"), "a")
        descriptor = PackageConfig("app").templates("app/templates", packer, renderer_type="jinja").build()
        with pytest.raises(RendererNotFoundError):
            await descriptor.create_package(factory, renderers={})

    @pytest.mark.asyncio
    async def test_templates_are_packed_into_javascript(self, factory, write_file):
        packer = TemplatePacker()
        packer.add_file(write_file("t/a.html", "<p>{{ a }}</p>"), "a")
        renderer = JinjaRenderer()
        package = await (PackageConfig("app").templates("app/templates", packer, register=True)
                         .build().create_package(factory, renderers={"default": renderer}))

        assert [f.basename for f in package.js_compressor.fragments] == ["app/templates.js"]
        assert renderer.load_template("ref:a") is not None

    @pytest.mark.asyncio
    async def test_module_package_reference(self, factory, module_a):
        package = await (PackageConfig("app").package("moduleA/*").build()
                         .create_package(factory, modules=[module_a]))

        assert package.has_js
        assert package.has_css
        assert package.bundle_references() == ["widgets-bundle"]

    @pytest.mark.asyncio
    async def test_module_reference_without_javascript(self, factory, write_file):
        module = Module({"module": {
            "name": "moduleA",
            "packages": [
                {"name": "styles", "css": write_file("mod/styles.css", "p { margin: 0 }")},
                {"name": "print", "css": write_file("mod/print.css", "p { color: black }")},
            ],
        }})
        await module.load()

        package = await (PackageConfig("app").package("moduleA/*").build()
                         .create_package(factory, modules=[module]))

        assert not package.has_js
        assert package.has_css
        assert package.js_compressor.fragments == ()
        assert PackageConfig("app").package("moduleA/*").build().contains_js([module]) is False


class TestTraversals:

    @pytest.mark.asyncio
    async def test_contains_js_through_module_reference(self, module_a):
        descriptor = PackageConfig("app").package("moduleA/*").build()
        assert descriptor.contains_js([module_a]) is True
        assert PackageConfig("app").package("moduleA/styles").build().contains_js([module_a]) is False

    def test_raw_and_template_declarations_count_as_js(self):
        assert PackageConfig("a").raw_javascript("var a;", "a.js").build().contains_js() is True
        assert PackageConfig("b").templates("t", TemplatePacker()).build().contains_js() is True
        assert PackageConfig("c").raw_css("a{}", "a.css").build().contains_js() is False

    @pytest.mark.asyncio
    async def test_all_bundle_references(self, module_a):
        descriptor = PackageConfig("app").bundle(["own", "widgets-bundle"]).package("moduleA/widgets").build()
        assert descriptor.all_bundle_references([module_a]) == ["own", "widgets-bundle"]
        assert PackageConfig("empty").build().all_bundle_references() is None

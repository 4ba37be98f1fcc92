"""Tests for modules and package reference matching."""

import pytest

from libapp.errors import ConfigurationError
from libapp.packager.module import Module, PackageIndex, PackageMatcher, find_matching_packages


class Definition:
    """A module definition exposed as an attribute, like an imported Python module."""

    def __init__(self, module):
        self.module = module


class TestPackageMatcher:

    def test_exact_match_is_case_insensitive(self):
        matcher = PackageMatcher.parse("ModA/Core")
        assert matcher.matches("moda/core")
        assert not matcher.matches("moda/core2")

    def test_wildcard_matches_prefix(self):
        matcher = PackageMatcher.parse("modA/*")
        assert matcher.wildcard
        assert matcher.matches("MODA/anything")
        assert not matcher.matches("modab/x")


class TestModule:

    @pytest.mark.asyncio
    async def test_load_builds_packages_under_prefix(self, write_file, tmp_path):
        write_file("mod/lib/a.js", "var a;")
        write_file("mod/lib/deep/b.js", "var b;")
        write_file("mod/assets/x.png", "png")
        module = Module(Definition({
            "name": "modA",
            "packages": [{
                "name": "core",
                "jsdir": str(tmp_path / "mod/lib"),
                "static": [{"root": "img", "directory": str(tmp_path / "mod/assets")}],
                "bundle": "core-bundle",
            }],
        }))

        await module.load("/root")

        assert module.prefix == "modA/"
        package = module.packages["moda/core"]
        assert package.js_compressor.output_file_name == "core.js"
        assert package.js_compressor.root_url == "/root/modA"
        assert [f.basename for f in package.js_compressor.fragments] == ["modA/a.js", "modA/deep/b.js"]
        assert "/img/x.png" in package.static_resources
        assert package.bundle_references() == ["core-bundle"]

    @pytest.mark.asyncio
    async def test_missing_definition_fails(self):
        with pytest.raises(ConfigurationError):
            await Module(None).load()

    @pytest.mark.asyncio
    async def test_package_without_name_fails(self):
        module = Module({"module": {"name": "m", "packages": [{"js": "x.js"}]}})
        with pytest.raises(ConfigurationError):
            await module.load()

    @pytest.mark.asyncio
    async def test_find_matching_packages(self):
        module = Module({"module": {"name": "m", "prefix": "shared/", "packages": [{"name": "one"}, {"name": "two"}]}})
        await module.load()

        assert len(module.find_matching_packages("shared/*")) == 2
        assert len(module.find_matching_packages("SHARED/one")) == 1
        assert module.find_matching_packages("m/*") == []


class TestPackageIndex:

    @pytest.mark.asyncio
    async def test_modules_are_registered_once(self):
        index = PackageIndex()
        assert index.add(Module({"module": {"name": "m", "packages": [{"name": "p"}]}}))
        assert not index.add(Module({"module": {"name": "M", "packages": []}}))
        assert len(index) == 1

        await index.load()
        assert len(find_matching_packages(index, "m/p")) == 1
        assert find_matching_packages(None, "m/p") == []

"""Tests for the CSS compressor."""

import json

import pytest

from libapp.errors import CompressionError
from libapp.packager.css_compressor import CSSCompressor


class TestCSSCompressor:

    @pytest.mark.asyncio
    async def test_one_rule_per_line(self):
        compressor = CSSCompressor("client.css", "/resources/app/css")
        compressor.add_content("a { color: red; }\n\nb {\n  margin: 0;\n}\n", basename="base.css")
        compressor.add_content("/* comment */ .x { padding: 1px }", basename="extra.css")

        await compressor.compress()
        code = compressor.lookup_for_base_url_path("").code
        lines = code.split("\n")

        assert len(lines) == 3
        assert lines[0].startswith("a{color:red")
        assert lines[1].startswith("b{margin:0")
        assert lines[2].startswith(".x{padding:1px")
        assert "comment" not in code

    @pytest.mark.asyncio
    async def test_source_map_points_at_rule_origins(self):
        compressor = CSSCompressor("client.css", "/css")
        compressor.add_content("a { color: red }\n\nb { margin: 0 }", basename="base.css")
        await compressor.compress()

        source_map = json.loads(compressor.lookup_for_base_url_path("").source_map)

        assert source_map["sources"] == ["base.css"]
        # second rule starts on source line 2 (zero based)
        assert source_map["mappings"] == "AAAA;AAEA"
        assert source_map["sourceRoot"] == "/css/src/"

    @pytest.mark.asyncio
    async def test_debug_keeps_rules_verbatim(self):
        compressor = CSSCompressor("client.css", "/css", debug=True)
        compressor.add_content("a { color: red; }", basename="a.css")
        await compressor.compress()
        assert compressor.lookup_for_base_url_path("").code == "a { color: red; }"

    @pytest.mark.asyncio
    async def test_parse_error_raises(self):
        compressor = CSSCompressor("client.css", "/css")
        compressor.add_content("a { color: red } .broken", basename="broken.css")
        with pytest.raises(CompressionError):
            await compressor.compress()

    def test_source_map_content_type(self):
        assert CSSCompressor.source_map_content_type == "application/javascript"
        assert CSSCompressor.content_type == "text/css"

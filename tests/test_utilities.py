"""Tests for path helpers, source map encoding and directory traversal."""

import pytest

from libapp.directory_loader import DirectoryLoader
from libapp.packager.sourcemap import SourceMapBuilder, encode_vlq
from libapp.utilities import (
    change_extension,
    safe_add_path,
    safe_add_with_slash,
    safe_append_slash,
    safe_reference,
)


class TestPathHelpers:

    @pytest.mark.parametrize("root,addition,expected", [
        ("/a", "b", "/a/b"),
        ("/a/", "/b", "/a/b"),
        ("", "b", "b"),
        (None, "/b", "/b"),
    ])
    def test_safe_add_with_slash(self, root, addition, expected):
        assert safe_add_with_slash(root, addition) == expected

    def test_safe_add_path_normalizes_separators(self):
        assert safe_add_path("lib", "deep\\file.js") == "lib/deep/file.js"

    def test_safe_append_slash(self):
        assert safe_append_slash("") == "/"
        assert safe_append_slash("/a") == "/a/"
        assert safe_append_slash("/a/") == "/a/"

    def test_safe_reference(self):
        assert safe_reference("My_App") == "my-app"
        assert safe_reference("Shop Front!") == "shopfront"

    def test_change_extension(self):
        assert change_extension("client.js", "map") == "client.map"
        assert change_extension("client.min.css", "map") == "client.min.map"
        assert change_extension("client", "map") == "client.map"


class TestSourceMap:

    @pytest.mark.parametrize("value,expected", [(0, "A"), (1, "C"), (-1, "D"), (15, "e"), (16, "gB"), (-16, "hB")])
    def test_encode_vlq(self, value, expected):
        assert encode_vlq(value) == expected

    def test_builder_uses_relative_segments(self):
        builder = SourceMapBuilder("client.js")
        builder.add_line("a.js", 0)
        builder.add_line("a.js", 1)
        builder.add_line("b.js", 0)
        builder.add_line("a.js", 5, 2)

        source_map = builder.to_dict()
        assert source_map["version"] == 3
        assert source_map["file"] == "client.js"
        assert source_map["sources"] == ["a.js", "b.js"]
        assert source_map["mappings"] == "AAAA;AACA;ACDA;ADKE"


class TestDirectoryLoader:

    async def test_sorted_depth_first_traversal(self, write_file, tmp_path):
        write_file("b.js", "")
        write_file("a.js", "")
        write_file("sub/c.js", "")
        write_file("notes.txt", "")
        seen = []

        count = await DirectoryLoader(str(tmp_path), recursive=True, name_filter=r"\.js$").load(
            lambda item_path, name, base_path, depth: seen.append((name, depth))
        )

        assert count == 3
        assert seen == [("a.js", 0), ("b.js", 0), ("c.js", 1)]

    def test_non_recursive_skips_folders(self, write_file, tmp_path):
        write_file("a.js", "")
        write_file("sub/c.js", "")
        names = [name for _, name, _, _ in DirectoryLoader(str(tmp_path)).list_files()]
        assert names == ["a.js"]

    async def test_async_callback_is_awaited(self, write_file, tmp_path):
        write_file("a.js", "")
        seen = []

        async def callback(item_path, name, base_path, depth):
            seen.append(name)

        await DirectoryLoader(str(tmp_path)).load(callback)
        assert seen == ["a.js"]

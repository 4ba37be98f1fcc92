"""Tests for the static resource index and its routes."""

import pytest
from fastapi import FastAPI

from libapp.packager.static_resources import CacheOptions, StaticResourceIndex
from libapp.server.extensions import AccessRestrictedExtension


class TestIndex:

    def test_add_file_key_is_lowercase_and_rooted(self, write_file):
        index = StaticResourceIndex("/resources/app")
        index.add_file(write_file("Logo.PNG", "png"), prefix="img")
        assert list(index) == ["/img/logo.png"]
        assert "/IMG/Logo.png" in index

    def test_first_add_wins(self, write_file):
        index = StaticResourceIndex("/r")
        first = write_file("one/x.txt", "1")
        second = write_file("two/x.txt", "2")
        assert index.add_file(first) is True
        assert index.add_file(second) is False
        assert index.lookup("/x.txt").file_path == first

    def test_merge_keeps_existing_entries(self, write_file):
        f1 = write_file("a/x", "1")
        f2 = write_file("b/x", "2")
        f3 = write_file("b/y", "3")
        target = StaticResourceIndex("/r")
        target.add_file(f1)
        source = StaticResourceIndex("/r")
        source.add_file(f2)
        source.add_file(f3)

        assert target.add_from(source) is True
        assert target.lookup("/x").file_path == f1
        assert target.lookup("/y").file_path == f3
        assert target.add_from(source) is False

    @pytest.mark.asyncio
    async def test_add_directory_with_filter(self, write_file, tmp_path):
        write_file("assets/a.png", "a")
        write_file("assets/deep/b.png", "b")
        write_file("assets/c.txt", "c")
        index = StaticResourceIndex("/r")

        await index.add_directory(str(tmp_path / "assets"), "img", True, r"\.png$", {"max_age": 60})

        assert sorted(index) == ["/img/a.png", "/img/deep/b.png"]
        assert index.lookup("/img/a.png").cache == CacheOptions(max_age=60)


class TestRoutes:

    @pytest.fixture
    def app(self, write_file):
        index = StaticResourceIndex("/resources/app")
        index.add_file(write_file("logo.png", "PNG"), cache={"maxAge": 3600})
        index.add_file(write_file("notes.txt", "notes"))
        index.add_file(write_file(".secret", "hidden"))
        app = FastAPI()
        AccessRestrictedExtension().setup(app)
        index.setup_routes(app)
        return app

    def test_serves_file_with_cache_header(self, app, client_for):
        response = client_for(app).get("/resources/app/LOGO.png")
        assert response.status_code == 200
        assert response.text == "PNG"
        assert response.headers["cache-control"] == "public, max-age=3600"

    def test_no_cache_header_without_policy(self, app, client_for):
        response = client_for(app).get("/resources/app/notes.txt")
        assert response.status_code == 200
        assert "cache-control" not in response.headers

    def test_unknown_file_falls_through(self, app, client_for):
        @app.get("/resources/app/other.txt")
        async def other():
            return {"handled": "later"}

        client = client_for(app)
        assert client.get("/resources/app/other.txt").json() == {"handled": "later"}
        assert client.get("/resources/app/missing.png").status_code == 404

    def test_dot_files_are_restricted(self, app, client_for):
        response = client_for(app).get("/resources/app/.secret")
        assert response.status_code == 403
        assert response.text == "Access Restricted"

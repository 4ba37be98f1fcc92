"""Tests for the CORS policy and its middleware."""

import pytest
from fastapi import FastAPI
from starlette.datastructures import MutableHeaders

from libapp.server.security import CORSHeadersMiddleware, CORSPolicy, validate_origin


@pytest.fixture
def policy():
    return CORSPolicy(
        ["https://App.Example", "https://other.example"],
        default_origin="https://app.example",
        headers={"Access-Control-Allow-Credentials": "true"},
    )


class TestCORSPolicy:

    def test_validate_origin(self):
        allowed = ["https://App.Example"]
        assert validate_origin("https://app.example", allowed) == "https://App.Example"
        assert validate_origin("https://evil.example", allowed) is None
        assert validate_origin(None, allowed) is None

    def test_from_config(self):
        policy = CORSPolicy.from_config({"CORSAllowedOrigins": ["https://a"], "CORSHeaders": {"X-A": 1}})
        assert policy.allowed_origins == ["https://a"]
        assert policy.default_origin is None
        assert policy.configured
        assert not CORSPolicy.from_config(None).configured

    def test_apply_allowed_origin(self, policy):
        headers = MutableHeaders()
        headers["Vary"] = "Accept-Encoding"
        policy.apply("https://OTHER.example", headers)

        assert headers["Access-Control-Allow-Origin"] == "https://other.example"
        assert headers["Vary"] == "Accept-Encoding, Origin"
        assert headers["Access-Control-Allow-Credentials"] == "true"

    def test_apply_falls_back_to_default_origin(self, policy):
        headers = MutableHeaders()
        policy.apply("https://evil.example", headers)
        assert headers["Access-Control-Allow-Origin"] == "https://app.example"
        assert headers["Vary"] == "Origin"

    def test_apply_without_match_or_default(self):
        headers = MutableHeaders()
        CORSPolicy(["https://a"]).apply("https://b", headers)
        assert "Access-Control-Allow-Origin" not in headers
        assert "Vary" not in headers


class TestCORSHeadersMiddleware:

    def test_headers_added_to_responses(self, policy, client_for):
        http = FastAPI()
        http.add_middleware(CORSHeadersMiddleware, policy=policy)

        @http.get("/ping")
        async def ping():
            return {"ok": True}

        http.add_api_route("/ping", policy.options_endpoint(), methods=["OPTIONS"])
        client = client_for(http)

        response = client.get("/ping", headers={"Origin": "https://app.example"})
        assert response.json() == {"ok": True}
        assert response.headers["access-control-allow-origin"] == "https://App.Example"
        assert response.headers["vary"] == "Origin"

        preflight = client.options("/ping", headers={"Origin": "https://other.example"})
        assert preflight.status_code == 200
        assert preflight.headers["access-control-allow-origin"] == "https://other.example"
        assert preflight.headers["access-control-allow-credentials"] == "true"

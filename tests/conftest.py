"""Shared fixtures for the libapp test suite."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient


@pytest.fixture
def write_file(tmp_path):
    """Write ``content`` to ``tmp_path / relative`` (creating folders) and return the path as str."""
    def _write(relative, content):
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return str(path)
    return _write


@pytest.fixture
def http():
    return FastAPI()


@pytest.fixture
def client_for():
    def _client(app):
        return TestClient(app, raise_server_exceptions=False)
    return _client

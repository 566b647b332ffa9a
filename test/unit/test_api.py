"""
Tests for the SSR dev server HTTP surface.

Covers: health, module listing, invalidation, rendering through the
entry module, and the structured error envelope for loader and
evaluation failures.
"""
from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from ssrloader.api.main import create_app
from ssrloader.app_config import ServerConfig

ENTRY = """
from .pages import title


def render(url):
    return f"<h1>{title}</h1><p>{url}</p>"
"""


@pytest.fixture
def make_client(project):
    clients = []

    def factory(**overrides):
        config = ServerConfig(root=str(project.root), watch=False, **overrides)
        client = TestClient(create_app(config), raise_server_exceptions=False)
        client.__enter__()
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(project, make_client):
    project.write("/entry_server.py", ENTRY)
    project.write("/pages.py", "title = 'Home'\n")
    return make_client()


class TestHealth:

    def test_health(self, client, project):
        resp = client.get("/__ssr/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "up"
        assert data["root"] == str(project.root)
        assert data["modules_loaded"] == 0
        assert "loader" in data["stats"]

    def test_unavailable_outside_lifespan(self, project):
        client = TestClient(create_app(ServerConfig(root=str(project.root), watch=False)))
        resp = client.get("/__ssr/health")
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "SERVICE_UNAVAILABLE"


class TestRender:

    def test_render_page(self, client):
        resp = client.get("/blog/post?id=1")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert resp.text == "<h1>Home</h1><p>/blog/post?id=1</p>"

    def test_async_render(self, project, make_client):
        project.write("/entry_server.py", """
            async def render(url):
                return "async " + url
        """)
        resp = make_client().get("/")
        assert resp.text == "async /"

    def test_entry_without_render(self, project, make_client):
        project.write("/entry_server.py", "x = 1\n")
        resp = make_client().get("/")
        assert resp.status_code == 500
        assert "render(url)" in resp.json()["error"]["message"]

    def test_missing_entry(self, make_client):
        resp = make_client(entry="/nope.py").get("/")
        assert resp.status_code == 404
        error = resp.json()["error"]
        assert error["code"] == "MODULE_NOT_FOUND"
        assert error["details"] == {"url": "/nope.py"}

    def test_unresolved_dependency(self, project, make_client, caplog):
        project.write("/entry_server.py", "import missing_dep_qq\n")
        client = make_client()
        with caplog.at_level(logging.ERROR, logger="ssrloader"):
            resp = client.get("/")
        records = [r for r in caplog.records if "Unresolved dependency" in r.getMessage()]
        assert records[0].request_path == "/"
        assert resp.status_code == 500
        error = resp.json()["error"]
        assert error["code"] == "DEPENDENCY_NOT_FOUND"
        assert error["details"]["dep_id"] == "missing_dep_qq"

    def test_evaluation_error(self, project, make_client):
        project.write("/entry_server.py", "raise ValueError('broken entry')\n")
        resp = make_client().get("/")
        assert resp.status_code == 500
        error = resp.json()["error"]
        assert error["code"] == "SSR_EVALUATION_ERROR"
        assert error["details"] is None

    def test_evaluation_error_stack_in_debug(self, project, make_client):
        path = project.write("/entry_server.py", "x = 1\nraise ValueError('broken entry')\n")
        resp = make_client(debug=True).get("/")
        details = resp.json()["error"]["details"]
        assert details["type"] == "ValueError"
        assert f'File "{path}", line 2' in details["stack"]


class TestModules:

    def test_list_after_render(self, client):
        client.get("/")
        resp = client.get("/__ssr/modules")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 2
        by_url = {m["url"]: m for m in data["modules"]}
        assert by_url["/entry_server.py"]["status"] == "complete"
        assert by_url["/entry_server.py"]["imported_modules"] == ["/pages.py"]
        assert by_url["/pages.py"]["importers"] == ["/entry_server.py"]

    def test_invalidate_picks_up_edits(self, client, project):
        assert "Home" in client.get("/").text
        project.write("/pages.py", "title = 'Edited'\n")
        resp = client.post("/__ssr/invalidate")
        assert resp.json() == {"invalidated": 2}
        assert "Edited" in client.get("/").text

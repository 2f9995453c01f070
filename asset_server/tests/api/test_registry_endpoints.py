"""Tests for the HTTP endpoints of the asset registry server."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from asset_server.errors import SerializationError
from asset_server.main import create_app
from asset_server.watchers.file_watcher import WatcherConfig

CORS_EXPECTED = {
    "access-control-allow-origin": "*",
    "access-control-allow-methods": "GET, POST, OPTIONS",
    "access-control-allow-headers": "Content-Type",
}


def assert_cors(response):
    for name, value in CORS_EXPECTED.items():
        assert response.headers[name] == value


@pytest.fixture
def client(site_config):
    """Client for an app watching the asset tree; the lifespan runs the initial walk."""
    with TestClient(create_app(site_config)) as test_client:
        yield test_client


@pytest.fixture
def empty_client():
    with TestClient(create_app(WatcherConfig())) as test_client:
        yield test_client


class TestRegistryListing:
    """Test GET /registry.json."""

    def test_empty_registry(self, empty_client):
        response = empty_client.get("/registry.json")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert response.json() == []

    def test_lists_walked_entries(self, client, assets_dir):
        response = client.get("/registry.json")

        assert response.status_code == 200
        assert response.json() == [
            {
                "label": "site/img/a",
                "type": "png",
                "url": "http://localhost:9191/files/site/img/a.png",
                "absolutePath": str(assets_dir / "img" / "a.png"),
            }
        ]

    def test_listing_matches_registry_snapshot(self, client):
        registry = client.app.state.file_watcher.registry

        listed = client.get("/registry.json").json()

        assert sorted(listed, key=lambda e: e["url"]) == sorted(
            (entry.to_dict() for entry in registry.snapshot()), key=lambda e: e["url"]
        )

    def test_encoding_failure_returns_500(self, client):
        with patch("asset_server.main.encode_registry", side_effect=SerializationError("bad entry")):
            response = client.get("/registry.json")

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to generate JSON"
        assert_cors(response)

    def test_cors_headers(self, client):
        assert_cors(client.get("/registry.json"))


class TestFileContent:
    """Test GET /files/..."""

    def test_serves_registered_file(self, client, assets_dir):
        response = client.get("/files/site/img/a.png")

        assert response.status_code == 200
        assert response.content == (assets_dir / "img" / "a.png").read_bytes()
        assert response.headers["content-type"] == "image/png"
        assert_cors(response)

    def test_range_request(self, client, assets_dir):
        response = client.get("/files/site/img/a.png", headers={"Range": "bytes=0-3"})

        assert response.status_code == 206
        assert response.content == (assets_dir / "img" / "a.png").read_bytes()[:4]

    def test_deleted_file_returns_404(self, client, assets_dir):
        assert client.get("/files/site/img/a.png").status_code == 200

        (assets_dir / "img" / "a.png").unlink()

        response = client.get("/files/site/img/a.png")
        assert response.status_code == 404
        assert_cors(response)

    def test_unknown_path_returns_404(self, client):
        response = client.get("/files/unknown/path")

        assert response.status_code == 404
        assert_cors(response)

    def test_unregistered_extension_returns_404(self, client):
        assert client.get("/files/site/doc/b.txt").status_code == 404

    def test_lookup_uses_configured_port(self, assets_dir):
        config = WatcherConfig(directories={"site": assets_dir}, extensions=frozenset({"png"}), port=8123)

        with TestClient(create_app(config)) as client:
            listed = client.get("/registry.json").json()
            response = client.get("/files/site/img/a.png")

        assert listed[0]["url"] == "http://localhost:8123/files/site/img/a.png"
        assert response.status_code == 200


class TestCorsPreflight:
    """Test OPTIONS handling."""

    @pytest.mark.parametrize("path", ["/registry.json", "/files/site/img/a.png"])
    def test_preflight(self, client, path):
        response = client.options(
            path,
            headers={"Origin": "http://example.test", "Access-Control-Request-Method": "GET"},
        )

        assert response.status_code == 204
        assert_cors(response)


class TestStatusEndpoints:
    """Test the health and watcher status endpoints."""

    def test_health_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["registered_files"] == 1
        assert data["configured_directories"] == 1
        assert data["file_watcher_active"] is True
        assert data["startup_errors"] == []

    def test_health_degraded_on_walk_error(self, assets_dir, tmp_path):
        config = WatcherConfig(
            directories={"site": assets_dir, "gone": tmp_path / "gone"}, extensions=frozenset({"png"})
        )

        with TestClient(create_app(config)) as client:
            data = client.get("/health").json()
            listed = client.get("/registry.json").json()

        assert data["status"] == "degraded"
        assert data["startup_errors_count"] == 2
        assert len(listed) == 1

    def test_watcher_status(self, client):
        response = client.get("/api/watcher/status")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "active"
        assert data["watcher_info"]["registered_files"] == 1
        assert data["watcher_info"]["config"]["extensions"] == ["png"]
        assert isinstance(data["recent_events"], list)


def test_app_restarts_after_shutdown(site_config):
    app = create_app(site_config)

    with TestClient(app) as first:
        assert first.get("/files/site/img/a.png").status_code == 200

    with TestClient(app) as second:
        assert second.get("/health").json()["status"] == "healthy"
        assert second.get("/files/site/img/a.png").status_code == 200
        assert len(second.get("/registry.json").json()) == 1

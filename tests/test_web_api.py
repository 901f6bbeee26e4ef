"""Tests for FastAPI web API.

Uses TestClient to test all endpoints.
"""

import os
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tiny11_builder import __version__
from tiny11_builder.service import BuildManager
from web.app import include_routers


def create_test_app() -> FastAPI:
    """Create a minimal FastAPI app for testing without lifespan."""
    application = FastAPI(title="Tiny11 Builder API", version=__version__)
    return include_routers(application)


@pytest.fixture
def work_dir(tmp_path):
    work_dir = tmp_path / "work"
    with patch.dict(os.environ, {"TINY11_WORK_DIR": str(work_dir)}):
        yield work_dir


@pytest.fixture
def client(work_dir, settings, session_factory, elevated):
    """Create a test client whose build manager runs fake sessions."""
    app = create_test_app()
    manager = BuildManager(
        settings=settings, session_factory=session_factory, elevation_check=elevated
    )
    app.state.build_manager = manager

    with TestClient(app) as test_client:
        yield test_client

    manager.shutdown()


class TestHealth:
    """Test health endpoints."""

    def test_health(self, client) -> None:
        """Health should report ok and the version."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}

    def test_root(self, client) -> None:
        """Root should name the API."""
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "Tiny11 Builder API"


class TestConfig:
    """Test config endpoint."""

    def test_config(self, client, work_dir) -> None:
        """Config should reflect the environment."""
        response = client.get("/config")
        assert response.status_code == 200
        data = response.json()
        assert data["work_dir"] == str(work_dir)
        assert data["themes_dir"] == str(work_dir / "themes")


class TestVariants:
    """Test variant endpoints."""

    def test_list_variants(self, client) -> None:
        """Every variant should be listed."""
        response = client.get("/variants")
        assert response.status_code == 200
        assert [v["name"] for v in response.json()] == ["standard", "core", "nano"]

    def test_get_variant(self, client) -> None:
        """A variant lookup should ignore case."""
        response = client.get("/variants/NANO")
        assert response.status_code == 200
        assert response.json()["name"] == "nano"

    def test_unknown_variant(self, client) -> None:
        """An unknown variant should return 404 with a stable code."""
        response = client.get("/variants/micro")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "variant_not_found"


class TestThemes:
    """Test theme endpoints."""

    def test_list_themes(self, client, work_dir) -> None:
        """Themes in the work dir should be listed."""
        theme_dir = work_dir / "themes" / "ocean"
        theme_dir.mkdir(parents=True)
        (theme_dir / "theme.json").write_text('{"name": "Ocean", "version": "1.0"}')

        response = client.get("/themes")

        assert response.status_code == 200
        assert response.json() == [
            {"id": "ocean", "name": "Ocean", "version": "1.0", "author": "", "description": ""}
        ]

    def test_get_theme(self, client, work_dir) -> None:
        """A theme should be returned with its asset warnings."""
        theme_dir = work_dir / "themes" / "ocean"
        theme_dir.mkdir(parents=True)
        (theme_dir / "theme.json").write_text(
            '{"name": "Ocean", "wallpapers": {"enabled": true, "desktop": "desk.jpg"}}'
        )

        response = client.get("/themes/ocean")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "ocean"
        assert data["wallpapers"]["enabled"] is True
        assert data["warnings"] == ["desktop wallpaper not found: desk.jpg"]

    def test_missing_theme(self, client) -> None:
        """A missing theme should return 404."""
        response = client.get("/themes/missing")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "theme_not_found"

    def test_invalid_theme(self, client, work_dir) -> None:
        """An invalid theme document should return 422."""
        theme_dir = work_dir / "themes" / "broken"
        theme_dir.mkdir(parents=True)
        (theme_dir / "theme.json").write_text("{}")

        response = client.get("/themes/broken")

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_input"


class TestPreinstall:
    """Test preinstall endpoint."""

    def test_empty_manifest(self, client) -> None:
        """No manifest should return an empty, disabled one."""
        response = client.get("/preinstall")
        assert response.status_code == 200
        assert response.json() == {"enabled": False, "apps": []}

    def test_invalid_manifest(self, client, work_dir) -> None:
        """An invalid manifest should return 422."""
        (work_dir / "preinstall").mkdir(parents=True)
        (work_dir / "preinstall" / "preinstall.json").write_text('{"apps": [{"id": "x"}]}')

        response = client.get("/preinstall")
        assert response.status_code == 422


class TestBuilds:
    """Test build endpoints."""

    def test_list_empty(self, client) -> None:
        """No builds should list nothing."""
        response = client.get("/builds")
        assert response.status_code == 200
        assert response.json() == []

    def test_start_and_get_build(self, client, tmp_path) -> None:
        """A queued build should be retrievable and eventually succeed."""
        response = client.post("/builds", json={"source": str(tmp_path), "variant": "core"})
        assert response.status_code == 202
        build_id = response.json()["build_id"]
        assert response.json()["status"] in ("pending", "running", "succeeded")

        client.app.state.build_manager.wait(build_id, timeout=10)
        response = client.get(f"/builds/{build_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "succeeded"
        assert data["variant"] == "core"
        assert data["output_path"] == str(tmp_path / "tiny11.iso")

    def test_failed_build_reports_error(self, client, tmp_path) -> None:
        """A failed build should expose its error code."""
        response = client.post(
            "/builds", json={"source": str(tmp_path), "theme": "missing-source"}
        )
        build_id = response.json()["build_id"]
        client.app.state.build_manager.wait(build_id, timeout=10)

        data = client.get(f"/builds/{build_id}").json()
        assert data["status"] == "failed"
        assert data["error"]["code"] == "not_found"

    def test_filter_by_status(self, client, tmp_path) -> None:
        """The status filter should only return matching builds."""
        ok = client.post("/builds", json={"source": str(tmp_path)}).json()["build_id"]
        bad = client.post(
            "/builds", json={"source": str(tmp_path), "theme": "crash"}
        ).json()["build_id"]
        manager = client.app.state.build_manager
        manager.wait(ok, timeout=10)
        manager.wait(bad, timeout=10)

        failed = client.get("/builds", params={"status": "failed"}).json()
        assert [b["build_id"] for b in failed] == [bad]

    def test_invalid_status_filter(self, client) -> None:
        """An unknown status should return 400."""
        response = client.get("/builds", params={"status": "exploded"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_status"

    def test_unknown_build(self, client) -> None:
        """An unknown id should return 404."""
        response = client.get("/builds/nope")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "build_not_found"

    def test_invalid_request(self, client) -> None:
        """Unknown fields and bad indexes should be rejected."""
        response = client.post("/builds", json={"source": "D:/", "index": 0})
        assert response.status_code == 422
        response = client.post("/builds", json={"source": "D:/", "bogus": True})
        assert response.status_code == 422

    def test_start_build_without_elevation(self, work_dir, settings, session_factory) -> None:
        """A server without administrator rights should refuse builds with 403."""
        app = create_test_app()
        manager = BuildManager(
            settings=settings, session_factory=session_factory, elevation_check=lambda: False
        )
        app.state.build_manager = manager
        try:
            with TestClient(app) as test_client:
                response = test_client.post("/builds", json={"source": "D:/"})
        finally:
            manager.shutdown()

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "not_elevated"
        assert manager.list() == []

"""Unit tests for the drover.runtime module."""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

import falcon.asgi
import falcon.testing
import pytest

from drover.discovery import ProviderKind
from drover.github import GitHubProviderFactory

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> falcon.testing.TestClient:
    """Create a test client for the health-only runtime app."""
    from drover.runtime import create_app

    monkeypatch.delenv("DROVER_DATABASE_URL", raising=False)
    return falcon.testing.TestClient(create_app())


class TestHealthOnlyMode:
    """Without a database URL only the health checks are served."""

    def test_health_returns_json_status_ok(
        self, client: falcon.testing.TestClient
    ) -> None:
        """GET /health returns JSON with status ok."""
        result = client.simulate_get("/health")
        assert result.status_code == HTTPStatus.OK
        assert result.json == {"status": "ok"}
        assert result.headers.get("content-type", "").startswith("application/json")

    def test_ready_returns_json_status_ready(
        self, client: falcon.testing.TestClient
    ) -> None:
        """GET /ready returns JSON with status ready."""
        result = client.simulate_get("/ready")
        assert result.status_code == HTTPStatus.OK
        assert result.json == {"status": "ready"}

    def test_api_routes_absent(self, client: falcon.testing.TestClient) -> None:
        """API routes are not registered in health-only mode."""
        result = client.simulate_get("/api/v1/dependencies/graph")
        assert result.status_code == HTTPStatus.NOT_FOUND


class TestFullMode:
    """A database URL enables the orchestrator and API routes."""

    def test_ready_reports_discovery_state(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """The readiness check includes discovery activity."""
        from drover.runtime import create_app

        monkeypatch.setenv(
            "DROVER_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'rt.db'}"
        )
        monkeypatch.delenv("DROVER_GITHUB_TOKEN", raising=False)

        app = create_app()
        result = falcon.testing.TestClient(app).simulate_get("/ready")

        assert isinstance(app, falcon.asgi.App)
        assert result.json == {"status": "ready", "discovery_running": False}


class TestConfiguredProviders:
    """Provider factories are built only when credentials exist."""

    def test_github_enabled_by_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A GitHub token registers the GitHub factory."""
        from drover.runtime import _configured_providers

        monkeypatch.setenv("DROVER_GITHUB_TOKEN", "ghp_example")

        providers = _configured_providers()

        assert isinstance(providers[ProviderKind.GITHUB], GitHubProviderFactory)

    def test_no_token_no_provider(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without a token GitHub discovery stays disabled."""
        from drover.runtime import _configured_providers

        monkeypatch.delenv("DROVER_GITHUB_TOKEN", raising=False)

        assert _configured_providers() == {}


class TestParsePort:
    """Tests for DROVER_PORT validation."""

    @pytest.mark.parametrize("value", ["8080", "1", "65535"])
    def test_valid(self, value: str) -> None:
        """Ports inside the TCP range are accepted."""
        from drover.runtime import _parse_port

        assert _parse_port(value) == int(value)

    @pytest.mark.parametrize("value", ["0", "65536", "http"])
    def test_invalid_exits(self, value: str) -> None:
        """Invalid ports stop the process with exit code 1."""
        from drover.runtime import _parse_port

        with pytest.raises(SystemExit) as excinfo:
            _parse_port(value)
        assert excinfo.value.code == 1


class TestMain:
    """Tests for the Granian entrypoint."""

    def test_serves_factory_with_configured_address(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """main() hands the app factory and bind address to Granian."""
        import granian

        from drover import runtime

        calls: dict[str, typ.Any] = {}

        class _FakeGranian:
            def __init__(self, target: str, **kwargs: object) -> None:
                calls["target"] = target
                calls.update(kwargs)

            def serve(self) -> None:
                calls["served"] = True

        monkeypatch.setattr(granian, "Granian", _FakeGranian)
        monkeypatch.setattr(runtime, "configure_logging", lambda level: (level, False))
        monkeypatch.setenv("DROVER_HOST", "127.0.0.1")
        monkeypatch.setenv("DROVER_PORT", "9090")

        runtime.main()

        assert calls["target"] == "drover.runtime:create_app"
        assert (calls["address"], calls["port"]) == ("127.0.0.1", 9090)
        assert calls["factory"] is True
        assert calls["served"] is True

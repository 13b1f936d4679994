"""Tests for the command line entry point and app factory."""

import pytest

from guardrail_mcp import cli
from guardrail_mcp.main import create_app


class TestCreateApp:
    """Tests for create_app transport selection."""

    def _paths(self, app) -> set[str]:
        return {route.path for route in app.routes}

    def test_streamable_only(self):
        paths = self._paths(create_app("streamable-http"))
        assert "/mcp" in paths
        assert "/sse" not in paths

    def test_sse_only(self):
        paths = self._paths(create_app("sse"))
        assert {"/sse", "/message"} <= paths
        assert "/mcp" not in paths

    def test_unknown_transport(self):
        with pytest.raises(ValueError):
            create_app("websocket")


class TestMain:
    """Tests for cli.main."""

    def test_stdio_without_credentials_exits_nonzero(self, monkeypatch):
        monkeypatch.setattr("guardrail_mcp.config.API_KEY", None)
        monkeypatch.setattr("guardrail_mcp.config.STRATEGY_KEY", None)

        assert cli.main(["stdio"]) == 1

    def test_serve_passes_options(self, monkeypatch):
        calls = []

        def fake_run(self, sockets=None):
            calls.append(self.config)

        monkeypatch.setattr(cli.GuardrailHTTPServer, "run", fake_run)

        assert cli.main(["serve", "--transport", "sse", "--host", "127.0.0.1", "--port", "3100"]) == 0

        [uvicorn_config] = calls
        assert uvicorn_config.host == "127.0.0.1"
        assert uvicorn_config.port == 3100

    def test_unknown_transport_is_rejected(self):
        with pytest.raises(SystemExit):
            cli.main(["serve", "--transport", "websocket"])

"""Tests for health check endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from atlas_operator import health
from atlas_operator.health import create_combined_wsgi_app, set_ready


def _environ(path: str) -> dict:
    return {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": path,
        "SCRIPT_NAME": "",
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8080",
        "wsgi.url_scheme": "http",
    }


@pytest.fixture(autouse=True)
def reset_ready():
    set_ready(False)
    yield
    set_ready(False)


class TestCombinedWsgiApp:
    """Test cases for combined WSGI application."""

    def test_healthz(self):
        """Test combined app handles /healthz."""
        app = create_combined_wsgi_app()
        start_response = MagicMock()

        result = app(_environ("/healthz"), start_response)

        assert b'"status":"ok"' in b"".join(result)
        assert "200" in start_response.call_args[0][0]

    def test_readyz_not_ready(self):
        """Test /readyz answers 503 before the runtime starts."""
        app = create_combined_wsgi_app()
        start_response = MagicMock()

        result = app(_environ("/readyz"), start_response)

        assert b'"status":"not ready"' in b"".join(result)
        assert "503" in start_response.call_args[0][0]

    def test_readyz_ready(self):
        """Test /readyz answers 200 once ready."""
        set_ready(True)
        app = create_combined_wsgi_app()
        start_response = MagicMock()

        result = app(_environ("/readyz"), start_response)

        assert b'"status":"ready"' in b"".join(result)
        assert "200" in start_response.call_args[0][0]

    def test_content_type_is_json(self):
        """Test that content type is application/json."""
        app = create_combined_wsgi_app()
        start_response = MagicMock()

        app(_environ("/healthz"), start_response)

        headers = start_response.call_args[0][1]
        content_type = [h for h in headers if h[0].lower() == "content-type"]
        assert "application/json" in content_type[0][1]

    @patch("atlas_operator.health.make_wsgi_app")
    def test_delegates_to_metrics(self, mock_make_wsgi):
        """Test combined app delegates /metrics to prometheus."""
        mock_metrics_app = MagicMock(return_value=[b"metrics data"])
        mock_make_wsgi.return_value = mock_metrics_app
        app = create_combined_wsgi_app()

        result = app(_environ("/metrics"), MagicMock())

        assert result == [b"metrics data"]
        assert mock_metrics_app.called


class TestMetricsServer:
    """Test cases for the metrics server thread."""

    @patch("atlas_operator.health.make_server")
    @patch("atlas_operator.health.threading.Thread")
    def test_start_metrics_server(self, mock_thread, mock_make_server):
        """Test the server is created on the port and served from a daemon thread."""
        server = MagicMock()
        mock_make_server.return_value = server

        assert health.start_metrics_server(9090) is server

        assert mock_make_server.call_args[0][1] == 9090
        assert mock_thread.call_args[1]["daemon"] is True
        mock_thread.return_value.start.assert_called_once()

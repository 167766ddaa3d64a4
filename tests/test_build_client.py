"""Tests for the build service client."""
import base64

import httpx
import pytest

from apphost.core.exceptions import ConfigurationError
from apphost.modules.apps.schemas import App
from apphost.modules.builds.client import BuildClient


def _client(settings, handler):
    http = httpx.Client(base_url=settings.build_service_url, transport=httpx.MockTransport(handler))
    return BuildClient(settings, http_client=http)


class TestBuildClient:

    def test_decodes_files(self, settings, app_row):
        png = b"\x89PNG\r\n"

        def handler(request):
            assert request.url.path == "/builds"
            return httpx.Response(200, json={
                "success": True,
                "files": {
                    "index.html": "<html></html>",
                    "logo.png": {"content": base64.b64encode(png).decode(), "encoding": "base64"},
                },
            })

        artifact = _client(settings, handler).build(App(**app_row))
        assert artifact.success is True
        assert artifact.files["index.html"] == "<html></html>"
        assert artifact.files["logo.png"] == png
        assert artifact.total_bytes == len("<html></html>") + len(png)

    def test_service_error(self, settings, app_row):
        artifact = _client(settings, lambda request: httpx.Response(500, text="oops")).build(App(**app_row))
        assert artifact.success is False
        assert "500" in artifact.error

    def test_build_failure_payload(self, settings, app_row):
        handler = lambda request: httpx.Response(200, json={"success": False, "error": "vite failed"})
        artifact = _client(settings, handler).build(App(**app_row))
        assert artifact.error == "vite failed"

    def test_non_json_success_body(self, settings, app_row):
        handler = lambda request: httpx.Response(200, text="<html>gateway</html>")
        artifact = _client(settings, handler).build(App(**app_row))
        assert artifact.success is False
        assert artifact.error == "Build service returned an invalid response"

    def test_undecodable_binary_file(self, settings, app_row):
        payload = {"success": True, "files": {"logo.png": {"content": "abc", "encoding": "base64"}}}
        artifact = _client(settings, lambda request: httpx.Response(200, json=payload)).build(App(**app_row))
        assert artifact.success is False
        assert "could not be decoded" in artifact.error

    def test_transport_error(self, settings, app_row):
        def handler(request):
            raise httpx.ConnectError("refused")

        artifact = _client(settings, handler).build(App(**app_row))
        assert artifact.success is False
        assert "unreachable" in artifact.error

    def test_unconfigured(self, settings, app_row):
        settings.build_service_url = None
        with pytest.raises(ConfigurationError):
            BuildClient(settings).build(App(**app_row))

"""Tests for the Cloudflare Workers client against a mocked REST API."""
import json

import httpx
import pytest

from apphost.core.exceptions import ConfigurationError, EdgeApiError, UploadError
from apphost.modules.deployments.cloudflare_client import CloudflareClient


def _client(settings, handler):
    http = httpx.Client(base_url="https://cf.test/client/v4", transport=httpx.MockTransport(handler))
    return CloudflareClient(settings, http_client=http)


class TestCloudflareClient:

    def test_requires_credentials(self, settings):
        settings.cloudflare_zone_id = None
        with pytest.raises(ConfigurationError):
            CloudflareClient(settings)

    def test_deploy_uploads_module(self, settings):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = request.content
            return httpx.Response(200, json={"success": True, "result": {"id": "staging-77"}})

        _client(settings, handler).deploy("staging-77", "export default {}")

        assert seen["method"] == "PUT"
        assert seen["path"] == "/client/v4/accounts/acct_123/workers/scripts/staging-77"
        assert seen["auth"] == "Bearer cf-token"
        assert b'"main_module": "worker.js"' in seen["body"]
        assert b"export default {}" in seen["body"]

    def test_deploy_error(self, settings):
        def handler(request):
            return httpx.Response(400, json={"success": False, "errors": [{"message": "script too large"}]})

        with pytest.raises(UploadError, match="script too large"):
            _client(settings, handler).deploy("staging-77", "x")

    def test_set_env_vars(self, settings):
        names = []

        def handler(request):
            assert request.url.path.endswith("/workers/scripts/production-1/secrets")
            names.append(json.loads(request.content)["name"])
            return httpx.Response(200, json={"success": True})

        count = _client(settings, handler).set_env_vars("production-1", "production", {"A": "1", "B": "2"})
        assert count == 2
        assert names == ["A", "B"]

    def test_ensure_route_creates(self, settings):
        calls = []

        def handler(request):
            calls.append((request.method, request.url.path))
            if request.method == "GET":
                return httpx.Response(200, json={"result": []})
            assert json.loads(request.content) == {"pattern": "notes.overskill.app/*", "script": "production-1"}
            return httpx.Response(200, json={"success": True})

        pattern = _client(settings, handler).ensure_route("notes", "production-1")
        assert pattern == "notes.overskill.app/*"
        assert calls[-1] == ("POST", "/client/v4/zones/zone-1/workers/routes")

    def test_ensure_route_updates_existing(self, settings):
        calls = []

        def handler(request):
            calls.append((request.method, request.url.path))
            if request.method == "GET":
                return httpx.Response(200, json={"result": [{"id": "r1", "pattern": "notes.overskill.app/*"}]})
            return httpx.Response(200, json={"success": True})

        _client(settings, handler).ensure_route("notes", "production-1")
        assert calls[-1] == ("PUT", "/client/v4/zones/zone-1/workers/routes/r1")

    def test_route_listing_retries_server_errors(self, settings):
        attempts = []

        def handler(request):
            if request.method == "GET":
                attempts.append(1)
                if len(attempts) < 3:
                    return httpx.Response(503, json={"errors": [{"message": "unavailable"}]})
                return httpx.Response(200, json={"result": []})
            return httpx.Response(200, json={"success": True})

        _client(settings, handler).ensure_route("notes", "production-1")
        assert len(attempts) == 3

    def test_route_listing_gives_up(self, settings):
        def handler(request):
            return httpx.Response(500, text="down")

        with pytest.raises(EdgeApiError):
            _client(settings, handler).ensure_route("notes", "production-1")

    def test_urls(self, settings):
        client = _client(settings, lambda request: httpx.Response(200))
        assert client.workers_dev_url("staging-77") == "https://staging-77.acct-123.workers.dev"
        assert client.custom_domain_url("preview--notes") == "https://preview--notes.overskill.app"

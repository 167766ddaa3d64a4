"""Cloudflare Workers REST API: script upload, secrets, workers.dev subdomain, zone routes."""
import json
import logging
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from apphost.config import Settings, settings as default_settings
from apphost.core.exceptions import ConfigurationError, EdgeApiError, UploadError

logger = logging.getLogger(__name__)

MAIN_MODULE = "worker.js"
COMPATIBILITY_DATE = "2024-09-23"


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500]
    errors = payload.get("errors") or []
    if errors:
        return "; ".join(str(e.get("message", e)) for e in errors)
    return response.text[:500]


class CloudflareClient:
    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.Client] = None):
        self.settings = settings or default_settings
        if not self.settings.cloudflare_configured:
            raise ConfigurationError("Missing Cloudflare credentials")
        self.account_id = self.settings.cloudflare_account_id
        self.zone_id = self.settings.cloudflare_zone_id
        self._http = http_client or httpx.Client(
            base_url=self.settings.cloudflare_api_base,
            timeout=self.settings.http_timeout_seconds,
        )
        self._http.headers["Authorization"] = f"Bearer {self.settings.cloudflare_api_token}"

    def _script_path(self, unit_name: str) -> str:
        return f"/accounts/{self.account_id}/workers/scripts/{unit_name}"

    def _get(self, path: str) -> httpx.Response:
        """GET with bounded retries and exponential backoff; GETs are idempotent."""
        attempts = max(1, self.settings.http_max_retries)
        delay = self.settings.http_backoff_seconds
        last_error: Optional[Exception] = None
        for attempt in range(attempts):
            try:
                response = self._http.get(path)
                if response.status_code < 500:
                    return response
                last_error = EdgeApiError(_error_detail(response), response.status_code)
            except httpx.TransportError as e:
                last_error = e
            if attempt < attempts - 1:
                logger.warning(f"[Cloudflare] GET {path} failed (attempt {attempt + 1}/{attempts}), retrying in {delay}s")
                time.sleep(delay)
                delay *= 2
        raise EdgeApiError(f"GET {path} failed after {attempts} attempts: {last_error}")

    def deploy(self, unit_name: str, script_text: str) -> Dict[str, Any]:
        """Upload (or replace) the worker script as an ES module."""
        metadata = {"main_module": MAIN_MODULE, "compatibility_date": COMPATIBILITY_DATE}
        files = {
            "metadata": (None, json.dumps(metadata), "application/json"),
            MAIN_MODULE: (MAIN_MODULE, script_text.encode("utf-8"), "application/javascript+module"),
        }
        try:
            response = self._http.put(self._script_path(unit_name), files=files)
        except httpx.HTTPError as e:
            raise UploadError(f"Failed to upload worker {unit_name}: {e}") from e

        if response.status_code >= 400:
            raise UploadError(f"Failed to upload worker {unit_name}: {_error_detail(response)}")
        payload = response.json()
        if not payload.get("success"):
            raise UploadError(f"Failed to upload worker {unit_name}: {_error_detail(response)}")
        logger.info(f"[Cloudflare] Uploaded worker {unit_name} ({len(script_text.encode('utf-8'))} bytes)")
        return payload

    def set_env_vars(self, unit_name: str, environment: str, variables: Mapping[str, str]) -> int:
        """Store each variable as a worker secret; the worker decides what is public."""
        count = 0
        for key, value in variables.items():
            if value is None:
                continue
            try:
                response = self._http.put(
                    f"{self._script_path(unit_name)}/secrets",
                    json={"name": key, "text": str(value), "type": "secret_text"},
                )
            except httpx.HTTPError as e:
                raise EdgeApiError(f"Failed to set {key} on {unit_name}: {e}") from e
            if response.status_code >= 400:
                raise EdgeApiError(f"Failed to set {key} on {unit_name}: {_error_detail(response)}", response.status_code)
            count += 1
        logger.info(f"[Cloudflare] Set {count} variables on {unit_name} ({environment})")
        return count

    def enable_default_domain(self, unit_name: str) -> None:
        try:
            response = self._http.post(f"{self._script_path(unit_name)}/subdomain", json={"enabled": True})
        except httpx.HTTPError as e:
            raise EdgeApiError(f"Failed to enable workers.dev subdomain for {unit_name}: {e}") from e
        if response.status_code >= 400:
            raise EdgeApiError(
                f"Failed to enable workers.dev subdomain for {unit_name}: {_error_detail(response)}",
                response.status_code,
            )
        logger.info(f"[Cloudflare] Enabled workers.dev subdomain for {unit_name}")

    def ensure_route(self, subdomain: str, unit_name: str) -> str:
        """Point {subdomain}.{base_domain}/* at the worker, updating an existing route in place."""
        pattern = f"{subdomain}.{self.settings.base_domain}/*"
        routes_path = f"/zones/{self.zone_id}/workers/routes"
        routes_response = self._get(routes_path)
        if routes_response.status_code >= 400:
            raise EdgeApiError(f"Failed to list routes: {_error_detail(routes_response)}", routes_response.status_code)
        routes = routes_response.json().get("result") or []
        existing = next((r for r in routes if r.get("pattern") == pattern), None)

        body = {"pattern": pattern, "script": unit_name}
        try:
            if existing:
                response = self._http.put(f"{routes_path}/{existing['id']}", json=body)
            else:
                response = self._http.post(routes_path, json=body)
        except httpx.HTTPError as e:
            raise EdgeApiError(f"Failed to ensure route {pattern}: {e}") from e
        if response.status_code >= 400:
            raise EdgeApiError(f"Failed to ensure route {pattern}: {_error_detail(response)}", response.status_code)
        logger.info(f"[Cloudflare] Route {pattern} -> {unit_name} ({'updated' if existing else 'created'})")
        return pattern

    def workers_dev_url(self, unit_name: str) -> str:
        return f"https://{unit_name}.{self.account_id.replace('_', '-')}.workers.dev"

    def custom_domain_url(self, subdomain: str) -> str:
        return f"https://{subdomain}.{self.settings.base_domain}"

"""Client for the external build service that turns an app's sources into built files."""
import base64
import logging
from typing import Any, Dict, Optional

import httpx

from apphost.config import Settings, settings as default_settings
from apphost.core.exceptions import ConfigurationError
from apphost.modules.apps.schemas import App
from apphost.modules.builds.schemas import BuildArtifact, FileContent

logger = logging.getLogger(__name__)


def _decode_file(entry: Any) -> FileContent:
    # Binary outputs arrive as {"content": "...", "encoding": "base64"}
    if isinstance(entry, dict):
        content = entry.get("content") or ""
        if entry.get("encoding") == "base64" or entry.get("binary"):
            return base64.b64decode(content)
        return content
    return entry


class BuildClient:
    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.Client] = None):
        self.settings = settings or default_settings
        self._http = http_client

    def _client(self) -> httpx.Client:
        if self._http is None:
            if not self.settings.build_service_url:
                raise ConfigurationError("Build service URL not configured")
            self._http = httpx.Client(
                base_url=self.settings.build_service_url,
                timeout=self.settings.build_timeout_seconds,
            )
        return self._http

    def build(self, app: App) -> BuildArtifact:
        """Build the app; transport and service failures come back as success=False."""
        client = self._client()
        try:
            response = client.post("/builds", json={"app_id": app.id, "slug": app.slug})
        except httpx.HTTPError as e:
            logger.error(f"[Build] App {app.id} build request failed: {e}")
            return BuildArtifact(success=False, error=f"Build service unreachable: {e}")

        if response.status_code >= 400:
            logger.error(f"[Build] App {app.id} build returned {response.status_code}: {response.text[:500]}")
            return BuildArtifact(success=False, error=f"Build service returned {response.status_code}")

        try:
            payload: Dict[str, Any] = response.json()
        except ValueError:
            logger.error(f"[Build] App {app.id} build returned a non-JSON body: {response.text[:200]}")
            return BuildArtifact(success=False, error="Build service returned an invalid response")
        if not isinstance(payload, dict):
            return BuildArtifact(success=False, error="Build service returned an invalid response")
        if not payload.get("success"):
            return BuildArtifact(success=False, error=payload.get("error") or "Unknown build error")

        try:
            files = {path: _decode_file(entry) for path, entry in (payload.get("files") or {}).items()}
        except (ValueError, AttributeError) as e:
            logger.error(f"[Build] App {app.id} build files could not be decoded: {e}")
            return BuildArtifact(success=False, error=f"Build output could not be decoded: {e}")
        artifact = BuildArtifact(success=True, files=files)
        logger.info(f"[Build] App {app.id} built {len(files)} files ({artifact.total_bytes} bytes)")
        return artifact

"""
Table creation without DDL privileges.

The app database creates a table and infers its columns from the first row
inserted into it, so a table is created by inserting a template row and then
deleting that row again. Anything that can create tables directly only needs to
implement TableCreator.ensure_table.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from apphost.config import Settings, settings as default_settings
from apphost.modules.schema.rls import SENTINEL_OWNER_ID
from apphost.modules.schema.schemas import TableConfig, TableStatus

logger = logging.getLogger(__name__)

TEMPLATE_TEXT = "_template_"

NUMERIC_TYPES = frozenset({"integer", "int", "bigint", "number", "numeric", "float", "decimal"})


def build_template_row(config: TableConfig) -> Dict[str, Any]:
    now = datetime.now(timezone.utc).isoformat()
    row: Dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "created_at": now,
        "updated_at": now,
    }
    if config.user_scoped:
        row["user_id"] = SENTINEL_OWNER_ID

    for column in config.columns:
        if column.default is not None:
            row[column.name] = column.default
        elif column.type == "text":
            row[column.name] = TEMPLATE_TEXT
        elif column.type == "boolean":
            row[column.name] = False
        elif column.type == "jsonb":
            row[column.name] = {}
        elif column.type in NUMERIC_TYPES:
            row[column.name] = 0
        else:
            row[column.name] = ""
    return row


@dataclass
class EnsureResult:
    status: TableStatus
    detail: Optional[str] = None


class TableCreator:
    def ensure_table(self, name: str, template_row: Dict[str, Any]) -> EnsureResult:
        raise NotImplementedError


def _already_exists(response: httpx.Response) -> bool:
    return response.status_code == 409 or "already exists" in response.text.lower()


class PostgrestTableCreator(TableCreator):
    """Probe / insert template row / delete template row against the PostgREST API."""

    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.Client] = None):
        self.settings = settings or default_settings
        self._http = http_client or httpx.Client(
            base_url=self.settings.app_db_url,
            timeout=self.settings.http_timeout_seconds,
        )
        self._headers = {
            "Authorization": f"Bearer {self.settings.app_db_service_key}",
            "apikey": self.settings.app_db_anon_key or self.settings.app_db_service_key,
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _with_retries(self, method: str, url: str) -> httpx.Response:
        """Retry idempotent requests on transport errors and 5xx with exponential backoff."""
        attempts = max(1, self.settings.http_max_retries)
        delay = self.settings.http_backoff_seconds
        for attempt in range(attempts):
            try:
                response = self._http.request(method, url, headers=self._headers)
                if response.status_code < 500 or attempt == attempts - 1:
                    return response
            except httpx.TransportError:
                if attempt == attempts - 1:
                    raise
            logger.warning(f"[AutoTable] {method} {url} failed (attempt {attempt + 1}/{attempts}), retrying in {delay}s")
            time.sleep(delay)
            delay *= 2
        raise RuntimeError("unreachable")

    def exists(self, name: str) -> bool:
        response = self._with_retries("GET", f"/rest/v1/{name}?limit=1")
        return response.status_code == 200

    def ensure_table(self, name: str, template_row: Dict[str, Any]) -> EnsureResult:
        if self.exists(name):
            logger.info(f"[AutoTable] Table {name} already exists")
            return EnsureResult(TableStatus.EXISTS)

        # Not retried: a blind retry could leave a second template row behind.
        try:
            response = self._http.post(f"/rest/v1/{name}", json=template_row, headers=self._headers)
        except httpx.HTTPError as e:
            logger.error(f"[AutoTable] Failed to create {name}: {e}")
            return EnsureResult(TableStatus.FAILED, f"Template insert failed: {e}")

        if response.status_code in (200, 201):
            self._delete_template_row(name, template_row["id"])
            logger.info(f"[AutoTable] Created table {name} via auto-schema")
            return EnsureResult(TableStatus.CREATED)

        if _already_exists(response):
            # A concurrent first writer got there between our probe and insert.
            logger.info(f"[AutoTable] Table {name} was created concurrently")
            return EnsureResult(TableStatus.EXISTS)

        logger.error(f"[AutoTable] Failed to create {name}: {response.status_code} {response.text[:500]}")
        return EnsureResult(TableStatus.FAILED, f"Template insert returned {response.status_code}")

    def _delete_template_row(self, name: str, row_id: str) -> None:
        try:
            response = self._with_retries("DELETE", f"/rest/v1/{name}?id=eq.{row_id}")
            if response.status_code >= 400:
                logger.warning(
                    f"[AutoTable] Template row {row_id} left in {name}: delete returned {response.status_code}"
                )
        except httpx.HTTPError as e:
            logger.warning(f"[AutoTable] Template row {row_id} left in {name}: {e}")

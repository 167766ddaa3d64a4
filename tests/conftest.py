"""Pytest configuration and fixtures."""
import threading
import uuid
from typing import Any, Dict, List

import pytest

from apphost.config.settings import Settings


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Covers the slice of the supabase-py query builder the services use."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.filters: List[tuple] = []
        self.op = "select"
        self.payload: Any = None
        self.mode = "many"

    def select(self, *args, **kwargs):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def maybe_single(self):
        self.mode = "single"
        return self

    def single(self):
        self.mode = "single"
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self):
        with self.db.lock:
            self.db.calls.append((self.table_name, self.op))
            rows = self.db.tables.setdefault(self.table_name, [])
            if self.op == "insert":
                items = self.payload if isinstance(self.payload, list) else [self.payload]
                inserted = []
                for item in items:
                    row = dict(item)
                    row.setdefault("id", str(uuid.uuid4()))
                    rows.append(row)
                    inserted.append(dict(row))
                return FakeResponse(inserted)
            matches = [row for row in rows if self._matches(row)]
            if self.op == "update":
                for row in matches:
                    row.update(self.payload)
                return FakeResponse([dict(row) for row in matches])
            if self.op == "delete":
                self.db.tables[self.table_name] = [row for row in rows if not self._matches(row)]
                return FakeResponse([dict(row) for row in matches])
            data = [dict(row) for row in matches]
            if self.mode == "single":
                return FakeResponse(data[0] if data else None)
            return FakeResponse(data)


class FakeSupabase:
    def __init__(self, tables: Dict[str, List[Dict[str, Any]]] = None):
        self.tables = {name: [dict(r) for r in rows] for name, rows in (tables or {}).items()}
        self.calls: List[tuple] = []
        self.lock = threading.RLock()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> List[Dict[str, Any]]:
        return self.tables.get(name, [])


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        supabase_url="https://platform.example.supabase.co",
        supabase_key="platform-anon",
        app_db_url="https://appdb.example.supabase.co",
        app_db_anon_key="anon-key",
        app_db_service_key="service-key",
        cloudflare_account_id="acct_123",
        cloudflare_api_token="cf-token",
        cloudflare_zone_id="zone-1",
        r2_access_key_id="r2-key",
        r2_secret_access_key="r2-secret",
        r2_endpoint="https://r2.example.com",
        r2_bucket="assets",
        r2_public_url="https://cdn.example.com",
        r2_files_bucket="files",
        build_service_url="https://builds.example.com",
        http_backoff_seconds=0,
        pending_rls_dir=str(tmp_path / "rls"),
    )


@pytest.fixture
def app_row():
    return {
        "id": 77,
        "slug": "notes-app",
        "name": "Notes App",
        "team_id": "team-1",
        "user_id": "user-1",
        "subdomain": None,
        "env_vars": {},
        "metadata": {},
    }


@pytest.fixture
def supabase(app_row):
    return FakeSupabase({
        "apps": [app_row],
        "teams": [{"id": "team-1", "name": "Team One"}],
        "team_members": [{"id": "m-1", "team_id": "team-1", "user_id": "member-1"}],
    })

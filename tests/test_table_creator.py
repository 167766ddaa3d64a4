"""Tests for insert-then-delete table creation against a mocked PostgREST."""
import json
import logging

import httpx

from apphost.modules.schema.detectors import build_table_config
from apphost.modules.schema.rls import SENTINEL_OWNER_ID
from apphost.modules.schema.schemas import TableStatus
from apphost.modules.schema.table_creator import PostgrestTableCreator, build_template_row


class FakePostgrest:
    """Tables spring into existence on first insert, like schema-on-write."""

    def __init__(self, existing=(), insert_status=201, insert_body=None, probe_failures=0, delete_status=204):
        self.tables = {name: [] for name in existing}
        self.requests = []
        self.insert_status = insert_status
        self.insert_body = insert_body
        self.probe_failures = probe_failures
        self.delete_status = delete_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        name = request.url.path.rsplit("/", 1)[-1]
        self.requests.append((request.method, name))
        if request.method == "GET":
            if self.probe_failures:
                self.probe_failures -= 1
                return httpx.Response(503)
            if name in self.tables:
                return httpx.Response(200, json=self.tables[name][:1])
            return httpx.Response(404, json={"message": f"relation \"{name}\" does not exist"})
        if request.method == "POST":
            if self.insert_status in (200, 201):
                row = json.loads(request.content)
                self.tables.setdefault(name, []).append(row)
                return httpx.Response(self.insert_status, json=[row])
            return httpx.Response(self.insert_status, json=self.insert_body or {})
        if request.method == "DELETE":
            if self.delete_status >= 400:
                return httpx.Response(self.delete_status)
            row_id = request.url.params["id"].split("eq.", 1)[1]
            self.tables[name] = [r for r in self.tables.get(name, []) if r["id"] != row_id]
            return httpx.Response(204)
        return httpx.Response(405)

    def count(self, method):
        return sum(1 for m, _ in self.requests if m == method)


def _creator(settings, backend):
    http = httpx.Client(base_url=settings.app_db_url, transport=httpx.MockTransport(backend))
    return PostgrestTableCreator(settings, http_client=http)


class TestTemplateRow:

    def test_user_scoped_row(self):
        row = build_template_row(build_table_config("todos"))
        assert row["user_id"] == SENTINEL_OWNER_ID
        assert row["text"] == "_template_"
        assert row["completed"] is False
        assert {"id", "created_at", "updated_at"} <= set(row)

    def test_generic_row(self):
        config = build_table_config("widgets", user_scoped=False)
        row = build_template_row(config)
        assert "user_id" not in row
        assert row["data"] == {}


class TestEnsureTable:

    def test_creates_and_removes_template_row(self, settings):
        backend = FakePostgrest()
        result = _creator(settings, backend).ensure_table("app_1_todos", build_template_row(build_table_config("todos")))

        assert result.status == TableStatus.CREATED
        assert backend.tables["app_1_todos"] == []
        assert [m for m, _ in backend.requests] == ["GET", "POST", "DELETE"]

    def test_template_row_delete_failure_only_warns(self, settings, caplog):
        backend = FakePostgrest(delete_status=500)
        with caplog.at_level(logging.WARNING):
            result = _creator(settings, backend).ensure_table(
                "app_1_todos", build_template_row(build_table_config("todos"))
            )

        assert result.status == TableStatus.CREATED
        assert backend.count("DELETE") == settings.http_max_retries
        assert any(
            r.levelno == logging.WARNING and "Template row" in r.getMessage() for r in caplog.records
        )

    def test_existing_table_is_not_touched(self, settings):
        backend = FakePostgrest(existing=["app_1_todos"])
        result = _creator(settings, backend).ensure_table("app_1_todos", {"id": "x"})

        assert result.status == TableStatus.EXISTS
        assert backend.count("POST") == 0

    def test_already_exists_race_is_success(self, settings):
        backend = FakePostgrest(insert_status=409, insert_body={"message": "relation already exists"})
        result = _creator(settings, backend).ensure_table("app_1_todos", {"id": "x"})
        assert result.status == TableStatus.EXISTS

    def test_insert_failure(self, settings):
        backend = FakePostgrest(insert_status=400, insert_body={"message": "bad column"})
        result = _creator(settings, backend).ensure_table("app_1_todos", {"id": "x"})

        assert result.status == TableStatus.FAILED
        assert "400" in result.detail
        assert backend.count("POST") == 1

    def test_probe_retries_server_errors(self, settings):
        backend = FakePostgrest(existing=["app_1_todos"], probe_failures=2)
        result = _creator(settings, backend).ensure_table("app_1_todos", {"id": "x"})

        assert result.status == TableStatus.EXISTS
        assert backend.count("GET") == 3

    def test_headers(self, settings):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, json=[])

        _creator(settings, handler).exists("app_1_todos")
        assert seen["authorization"] == "Bearer service-key"
        assert seen["apikey"] == "anon-key"

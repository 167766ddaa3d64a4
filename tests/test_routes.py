"""Route tests with FastAPI TestClient and dependency overrides."""
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from apphost.core.dependencies import get_current_user_id
from apphost.database.supabase_client import get_supabase
from apphost.main import app as fastapi_app
from apphost.modules.apps.service import AppService
from apphost.modules.builds.schemas import BuildArtifact
from apphost.modules.deployments.pipeline import DeploymentPipeline
from apphost.modules.deployments.routes import get_deployment_pipeline
from apphost.modules.schema.provisioner import SchemaProvisioner
from apphost.modules.schema.routes import get_schema_provisioner
from apphost.modules.storage_migration.routes import get_storage_flags
from apphost.modules.storage_migration.phase import StorageFlags
from tests.test_pipeline import FakeUploader
from tests.test_provisioner import InMemoryTableCreator, RecordingRLSApplier

OWNER = {"id": "user-1", "email": "owner@example.com", "app_metadata": {}}
MEMBER = {"id": "member-1", "email": "member@example.com", "app_metadata": {}}
STRANGER = {"id": "user-9", "email": "x@example.com", "app_metadata": {}}
SUPER_USER = {"id": "admin", "email": "admin@example.com", "app_metadata": {"type": "super_user"}}


@pytest.fixture
def current_user():
    return {"user": OWNER}


@pytest.fixture
def client(supabase, settings, current_user):
    builder = MagicMock()
    builder.build.return_value = BuildArtifact(success=True, files={
        "index.html": "<html><head></head><body>home</body></html>",
        "logo.png": b"\x89PNG",
    })
    pipeline = DeploymentPipeline(
        AppService(supabase),
        builder=builder,
        asset_uploader_factory=FakeUploader,
        edge_client=MagicMock(),
        settings=settings,
    )
    provisioner = SchemaProvisioner(
        supabase,
        settings,
        table_creator=InMemoryTableCreator(),
        rls_applier=RecordingRLSApplier(fail=True),
    )

    fastapi_app.dependency_overrides[get_supabase] = lambda: supabase
    fastapi_app.dependency_overrides[get_current_user_id] = lambda: current_user["user"]
    fastapi_app.dependency_overrides[get_deployment_pipeline] = lambda: pipeline
    fastapi_app.dependency_overrides[get_schema_provisioner] = lambda: provisioner
    fastapi_app.dependency_overrides[get_storage_flags] = lambda: StorageFlags(storage_enabled=True, migration_phase="active")
    with TestClient(fastapi_app) as test_client:
        yield test_client
    fastapi_app.dependency_overrides.clear()


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestAccess:

    def test_missing_token(self, supabase):
        fastapi_app.dependency_overrides[get_supabase] = lambda: supabase
        try:
            with TestClient(fastapi_app) as test_client:
                response = test_client.get("/api/v1/apps/77/deployments")
            assert response.status_code in (401, 403)
        finally:
            fastapi_app.dependency_overrides.clear()

    def test_stranger_forbidden(self, client, current_user):
        current_user["user"] = STRANGER
        assert client.get("/api/v1/apps/77/deployments").status_code == 403

    @pytest.mark.parametrize("user", [OWNER, MEMBER, SUPER_USER])
    def test_allowed(self, client, current_user, user):
        current_user["user"] = user
        assert client.get("/api/v1/apps/77/deployments").status_code == 200

    def test_unknown_app(self, client):
        assert client.get("/api/v1/apps/999/deployments").status_code == 404


class TestDeploymentRoutes:

    def test_queue_deployment(self, client):
        with patch("apphost.modules.deployments.routes.deploy_app_async") as worker:
            response = client.post("/api/v1/apps/77/deployments", json={"environment": "production"})

        assert response.status_code == 202
        assert response.json() == {
            "app_id": 77,
            "environment": "production",
            "unit_name": "production-77",
            "status": "queued",
        }
        worker.assert_called_once_with(app_id=77, environment="production")

    def test_invalid_environment(self, client):
        response = client.post("/api/v1/apps/77/deployments", json={"environment": "qa"})
        assert response.status_code == 422

    def test_current_deployments(self, client, supabase):
        supabase.tables["apps"][0]["staging_url"] = "https://preview--notes-app.overskill.app"
        body = client.get("/api/v1/apps/77/deployments").json()
        assert body["app_id"] == 77
        assert body["staging_url"] == "https://preview--notes-app.overskill.app"
        assert body["deployment_url"] is None

    def test_preview_index(self, client):
        response = client.get("/api/v1/apps/77/preview/")
        assert response.status_code == 200
        assert "home" in response.text
        assert response.text.count("window.ENV") == 1

    def test_preview_asset_redirect(self, client):
        response = client.get("/api/v1/apps/77/preview/logo.png", follow_redirects=False)
        assert response.status_code == 301
        assert response.headers["location"] == "https://cdn/app-77/staging/logo.png"

    def test_preview_backend_proxy_not_available(self, client):
        response = client.get("/api/v1/apps/77/preview/api/supabase/rest/v1/app_77_todos")
        assert response.status_code == 501

    def test_delete_assets(self, client):
        response = client.delete("/api/v1/apps/77/assets")
        assert response.status_code == 200
        assert response.json() == {"app_id": 77, "deleted": 2}


class TestTableRoutes:

    def test_provision(self, client, supabase):
        supabase.tables["app_files"] = [
            {"id": "f1", "app_id": 77, "path": "src/App.tsx", "content": "todo"},
        ]
        body = client.post("/api/v1/apps/77/tables/provision").json()

        assert body["success"] is True
        assert body["created"] == ["todos"]
        assert body["pending_rls"] == ["todos"]

        pending = client.get("/api/v1/apps/77/tables/pending-rls").json()
        assert [p["table"] for p in pending] == ["app_77_todos"]

        replay = client.post("/api/v1/apps/77/tables/pending-rls/replay").json()
        assert replay == {"app_id": 77, "applied": [], "remaining": ["app_77_todos"]}


class TestStorageRoutes:

    def test_phase(self, client):
        body = client.get("/api/v1/apps/77/storage/phase").json()
        assert body["phase"] == "active"
        assert body["should_write"] is True
        assert body["should_read"] is True
        assert body["decided_by"] == "global"

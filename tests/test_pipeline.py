"""Tests for the staged deployment pipeline (apphost/modules/deployments/pipeline.py)."""
from unittest.mock import MagicMock

import pytest

from apphost.core.exceptions import UploadError
from apphost.modules.apps.schemas import App
from apphost.modules.apps.service import AppService
from apphost.modules.assets.schemas import AssetUploadResult
from apphost.modules.builds.schemas import BuildArtifact
from apphost.modules.deployments.pipeline import DeploymentPipeline, subdomain_for, unit_name_for
from apphost.modules.deployments.worker_bundle import WorkerBundle, generate_worker_bundle


class FakeUploader:
    reachable = True

    def __init__(self, app_id, environment):
        self.app_id = app_id
        self.environment = environment
        self.uploaded = None

    def verify_connection(self):
        return self.reachable

    def delete_app_assets(self):
        return 2

    def public_url_for(self, path):
        return f"https://cdn/app-{self.app_id}/{self.environment}/{path}"

    def upload(self, asset_files):
        self.uploaded = dict(asset_files)
        urls = {path: self.public_url_for(path) for path in asset_files}
        return AssetUploadResult(asset_urls=urls, uploaded_count=len(urls), total_files=len(urls))


@pytest.fixture
def builder():
    builder = MagicMock()
    builder.build.return_value = BuildArtifact(success=True, files={
        "index.html": "<html><head></head><body></body></html>",
        "assets/app.js": "console.log(1)",
        "logo.png": b"\x89PNG",
    })
    return builder


@pytest.fixture
def edge():
    edge = MagicMock()
    edge.workers_dev_url.side_effect = lambda unit: f"https://{unit}.acct.workers.dev"
    edge.custom_domain_url.side_effect = lambda sub: f"https://{sub}.overskill.app"
    return edge


@pytest.fixture
def uploaders():
    return []


@pytest.fixture
def pipeline(supabase, settings, builder, edge, uploaders):
    def factory(app_id, environment):
        uploader = FakeUploader(app_id, environment)
        uploaders.append(uploader)
        return uploader

    return DeploymentPipeline(
        AppService(supabase),
        builder=builder,
        asset_uploader_factory=factory,
        edge_client=edge,
        settings=settings,
    )


@pytest.fixture
def app(app_row):
    return App(**app_row)


class TestNaming:

    def test_unit_name(self):
        assert unit_name_for("staging", 42) == "staging-42"
        assert unit_name_for("production", 42) == "production-42"

    def test_subdomains(self, app):
        assert subdomain_for(app, "production") == "notes-app"
        assert subdomain_for(app, "staging") == "preview--notes-app"
        app.subdomain = "custom"
        assert subdomain_for(app, "production") == "custom"


class TestDeploy:

    def test_staging_success(self, pipeline, app, edge, supabase, uploaders):
        result = pipeline.deploy_staging(app)

        assert result.success is True
        assert result.unit_name == "staging-77"
        assert result.deployment_url == "https://preview--notes-app.overskill.app"
        assert result.secondary_url == "https://staging-77.acct.workers.dev"
        assert result.assets_uploaded == 1
        assert uploaders[0].uploaded == {"logo.png": b"\x89PNG"}

        unit_name, script = edge.deploy.call_args.args
        assert unit_name == "staging-77"
        assert "https://cdn/app-77/staging/logo.png" in script
        edge.ensure_route.assert_called_once_with("preview--notes-app", "staging-77")

        row = supabase.rows("apps")[0]
        assert row["staging_url"] == "https://preview--notes-app.overskill.app"
        assert "deployment_url" not in row

    def test_production_records_deployment(self, pipeline, app, supabase):
        result = pipeline.deploy_production(app)

        assert result.success is True
        assert result.unit_name == "production-77"
        row = supabase.rows("apps")[0]
        assert row["deployment_url"] == "https://notes-app.overskill.app"
        assert row["deployment_status"] == "deployed"

    def test_build_failure_stops_pipeline(self, pipeline, app, builder, edge, supabase, uploaders):
        builder.build.return_value = BuildArtifact(success=False, error="npm exited 1")
        result = pipeline.deploy_staging(app)

        assert result.success is False
        assert result.stage == "build"
        assert "npm exited 1" in result.error
        assert uploaders == []
        edge.deploy.assert_not_called()
        assert ("apps", "update") not in supabase.calls

    def test_unknown_environment_is_a_failure(self, pipeline, app, builder, edge, supabase):
        result = pipeline.deploy(app, "qa")

        assert result.success is False
        assert result.stage == "environment-check"
        assert result.environment == "qa"
        builder.build.assert_not_called()
        edge.deploy.assert_not_called()
        assert ("apps", "update") not in supabase.calls

    def test_oversized_bundle_is_not_uploaded(self, pipeline, app, edge, supabase):
        pipeline.bundle_generator = lambda code, assets, env: WorkerBundle(
            code_files={}, asset_urls={}, environment=env, script="x" * (10 * 1024 * 1024 + 1)
        )
        result = pipeline.deploy_production(app)

        assert result.success is False
        assert result.stage == "size-check"
        assert "limit: 10MB" in result.error
        edge.deploy.assert_not_called()
        assert "deployment_url" not in supabase.rows("apps")[0]

    def test_unreachable_bucket_stops_before_upload(self, pipeline, app, edge, uploaders, monkeypatch):
        monkeypatch.setattr(FakeUploader, "reachable", False)
        result = pipeline.deploy_staging(app)

        assert result.success is False
        assert result.stage == "asset-upload"
        assert uploaders[0].uploaded is None
        edge.deploy.assert_not_called()

    def test_upload_failure_leaves_app_record(self, pipeline, app, edge, supabase):
        edge.deploy.side_effect = UploadError("Failed to upload worker staging-77: quota")
        result = pipeline.deploy_staging(app)

        assert result.success is False
        assert result.stage == "bundle-upload"
        edge.set_env_vars.assert_not_called()
        assert "staging_url" not in supabase.rows("apps")[0]

    def test_route_failure_leaves_app_record(self, pipeline, app, edge, supabase):
        edge.ensure_route.side_effect = RuntimeError("boom")
        result = pipeline.deploy_production(app)

        assert result.success is False
        assert result.stage == "route-ensure"
        assert "deployment_url" not in supabase.rows("apps")[0]

    def test_missing_credentials(self, supabase, settings, builder, app):
        settings.cloudflare_api_token = None
        pipeline = DeploymentPipeline(
            AppService(supabase),
            builder=builder,
            asset_uploader_factory=FakeUploader,
            settings=settings,
        )
        result = pipeline.deploy_staging(app)

        assert result.success is False
        assert result.stage == "credentials-check"
        builder.build.assert_not_called()

    def test_env_vars(self, pipeline, app):
        app.env_vars = {"VITE_FEATURE": "on"}
        variables = pipeline.worker_env_vars(app, "staging")
        assert variables["APP_ID"] == "77"
        assert variables["ENVIRONMENT"] == "staging"
        assert variables["SUPABASE_URL"] == "https://appdb.example.supabase.co"
        assert variables["VITE_FEATURE"] == "on"


class TestDeleteAssets:

    def test_delete_assets_uses_app_prefix(self, pipeline, app, uploaders):
        assert pipeline.delete_assets(app) == 2
        assert uploaders[0].app_id == 77


class TestPreview:

    def test_preview_bundle_does_not_upload(self, pipeline, app, edge, uploaders):
        bundle = pipeline.preview_bundle(app)

        assert bundle.asset_urls == {"logo.png": "https://cdn/app-77/staging/logo.png"}
        assert set(bundle.code_files) == {"index.html", "assets/app.js"}
        assert uploaders[0].uploaded is None
        edge.deploy.assert_not_called()

    def test_default_generator(self, pipeline):
        assert pipeline.bundle_generator is generate_worker_bundle

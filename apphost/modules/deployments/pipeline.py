"""
Deployment pipeline: build -> classify -> offload assets -> bundle -> upload -> route -> record.

The pipeline is composed once from its collaborators (builder, asset uploader
factory, bundle generator, edge client) and run per app and environment. It is
terminal on the first failing stage, and the app record is only touched after
the worker has been uploaded and routed.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional, Protocol

from apphost.config import Settings, settings as default_settings
from apphost.core.exceptions import AppHostError, BuildError, ConfigurationError, UploadError
from apphost.modules.apps.schemas import App
from apphost.modules.apps.service import AppService
from apphost.modules.assets.r2_storage import R2AssetUploader
from apphost.modules.assets.schemas import AssetUploadResult
from apphost.modules.builds.classifier import classify_build
from apphost.modules.builds.client import BuildClient
from apphost.modules.builds.schemas import BuildArtifact, FileContent
from apphost.modules.deployments.cloudflare_client import CloudflareClient
from apphost.modules.deployments.schemas import DeploymentResult, Environment
from apphost.modules.deployments.worker_bundle import (
    WorkerBundle,
    check_bundle_size,
    generate_worker_bundle,
)

logger = logging.getLogger(__name__)


class Builder(Protocol):
    def build(self, app: App) -> BuildArtifact: ...


class AssetUploader(Protocol):
    def upload(self, asset_files: Dict[str, FileContent]) -> AssetUploadResult: ...

    def public_url_for(self, path: str) -> str: ...

    def verify_connection(self) -> bool: ...

    def delete_app_assets(self) -> int: ...


AssetUploaderFactory = Callable[[int, str], AssetUploader]
BundleGenerator = Callable[[Mapping[str, str], Mapping[str, str], str], WorkerBundle]


def unit_name_for(environment: str, app_id: int) -> str:
    return f"{environment}-{app_id}"


def subdomain_for(app: App, environment: str) -> str:
    if environment == Environment.PRODUCTION.value:
        return app.effective_subdomain
    return f"preview--{app.effective_subdomain}"


@dataclass
class DeploymentRun:
    app: App
    environment: str
    unit_name: str
    subdomain: str
    artifact: Optional[BuildArtifact] = None
    code_files: Dict[str, FileContent] = field(default_factory=dict)
    asset_files: Dict[str, FileContent] = field(default_factory=dict)
    assets: Optional[AssetUploadResult] = None
    bundle: Optional[WorkerBundle] = None
    deployment_url: Optional[str] = None
    secondary_url: Optional[str] = None


class DeploymentPipeline:
    STAGES = (
        ("credentials-check", "_check_credentials"),
        ("build", "_build"),
        ("classify", "_classify"),
        ("asset-upload", "_upload_assets"),
        ("bundle-generate", "_generate_bundle"),
        ("size-check", "_check_size"),
        ("bundle-upload", "_upload_bundle"),
        ("env-vars-set", "_set_env_vars"),
        ("default-domain-enable", "_enable_default_domain"),
        ("route-ensure", "_ensure_route"),
        ("app-record-update", "_update_app_record"),
    )

    def __init__(
        self,
        app_service: AppService,
        builder: Optional[Builder] = None,
        asset_uploader_factory: Optional[AssetUploaderFactory] = None,
        bundle_generator: BundleGenerator = generate_worker_bundle,
        edge_client: Optional[CloudflareClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.app_service = app_service
        self.builder = builder or BuildClient(self.settings)
        self._default_uploader = asset_uploader_factory is None
        self.asset_uploader_factory = asset_uploader_factory or (
            lambda app_id, environment: R2AssetUploader(app_id, environment, settings=self.settings)
        )
        self.bundle_generator = bundle_generator
        self._edge_client = edge_client

    @property
    def edge(self) -> CloudflareClient:
        if self._edge_client is None:
            self._edge_client = CloudflareClient(self.settings)
        return self._edge_client

    def deploy_staging(self, app: App) -> DeploymentResult:
        return self.deploy(app, Environment.STAGING.value)

    def deploy_production(self, app: App) -> DeploymentResult:
        return self.deploy(app, Environment.PRODUCTION.value)

    def deploy(self, app: App, environment: str) -> DeploymentResult:
        """Run every stage in order; the first failure ends the run."""
        try:
            environment = Environment(environment).value
        except ValueError:
            logger.error(f"[Deploy] App {app.id}: unknown environment {environment!r}")
            return DeploymentResult.failure(str(environment), "environment-check", f"Unknown environment: {environment}")
        run = DeploymentRun(
            app=app,
            environment=environment,
            unit_name=unit_name_for(environment, app.id),
            subdomain=subdomain_for(app, environment),
        )
        logger.info(f"[Deploy] App {app.id}: starting {environment} deployment as {run.unit_name}")

        for stage, method_name in self.STAGES:
            logger.info(f"[Deploy] App {app.id} stage={stage}")
            try:
                getattr(self, method_name)(run)
            except AppHostError as e:
                logger.error(f"[Deploy] App {app.id} stage={stage} failed: {e}")
                return DeploymentResult.failure(environment, stage, str(e), run.unit_name)
            except Exception as e:
                logger.exception(f"[Deploy] App {app.id} stage={stage} crashed: {e}")
                return DeploymentResult.failure(environment, stage, str(e), run.unit_name)

        result = DeploymentResult(
            success=True,
            environment=environment,
            unit_name=run.unit_name,
            deployment_url=run.deployment_url,
            secondary_url=run.secondary_url,
            bundle_size_mb=run.bundle.size_mb,
            assets_uploaded=run.assets.uploaded_count,
        )
        logger.info(
            f"[Deploy] App {app.id} {environment} deployed to {run.deployment_url} "
            f"({result.bundle_size_mb} MB, {result.assets_uploaded} assets offloaded)"
        )
        return result

    def preview_bundle(self, app: App, environment: str = Environment.STAGING.value) -> WorkerBundle:
        """Build and bundle without uploading anything; asset URLs are the ones a deploy would produce."""
        artifact = self.builder.build(app)
        if not artifact.success:
            raise BuildError(f"Build failed: {artifact.error}")
        code_files, asset_files = classify_build(artifact.files)
        uploader = self.asset_uploader_factory(app.id, environment)
        asset_urls = {path: uploader.public_url_for(path) for path in asset_files}
        return self.bundle_generator(code_files, asset_urls, environment)

    def delete_assets(self, app: App) -> int:
        """Remove every offloaded asset of the app, across environments."""
        return self.asset_uploader_factory(app.id, Environment.STAGING.value).delete_app_assets()

    def worker_env_vars(self, app: App, environment: str) -> Dict[str, str]:
        variables = {
            "SUPABASE_URL": self.settings.app_db_url,
            "SUPABASE_ANON_KEY": self.settings.app_db_anon_key,
            "SUPABASE_SERVICE_KEY": self.settings.app_db_service_key,
            "APP_ID": str(app.id),
            "ENVIRONMENT": environment,
        }
        variables.update(app.env_vars or {})
        return {key: value for key, value in variables.items() if value}

    # Stages

    def _check_credentials(self, run: DeploymentRun) -> None:
        missing = []
        if not self.settings.cloudflare_configured and self._edge_client is None:
            missing.append("Cloudflare")
        if self._default_uploader and not self.settings.r2_configured:
            missing.append("R2")
        if missing:
            raise ConfigurationError(f"Missing {' and '.join(missing)} credentials")

    def _build(self, run: DeploymentRun) -> None:
        artifact = self.builder.build(run.app)
        if not artifact.success:
            raise BuildError(f"Build failed: {artifact.error}")
        run.artifact = artifact
        logger.info(f"[Deploy] App {run.app.id}: build produced {len(artifact.files)} files")

    def _classify(self, run: DeploymentRun) -> None:
        run.code_files, run.asset_files = classify_build(run.artifact.files)
        logger.info(
            f"[Deploy] App {run.app.id}: {len(run.code_files)} code files, {len(run.asset_files)} assets"
        )

    def _upload_assets(self, run: DeploymentRun) -> None:
        uploader = self.asset_uploader_factory(run.app.id, run.environment)
        if run.asset_files and not uploader.verify_connection():
            raise UploadError("Asset bucket is not reachable")
        run.assets = uploader.upload(run.asset_files)
        if run.assets.failed:
            logger.warning(
                f"[Deploy] App {run.app.id}: {len(run.assets.failed)} assets failed to upload: "
                f"{', '.join(run.assets.failed)}"
            )
        logger.info(f"[Deploy] App {run.app.id}: uploaded {run.assets.uploaded_count} assets")

    def _generate_bundle(self, run: DeploymentRun) -> None:
        run.bundle = self.bundle_generator(run.code_files, run.assets.asset_urls, run.environment)

    def _check_size(self, run: DeploymentRun) -> None:
        logger.info(f"[Deploy] App {run.app.id}: worker script size {run.bundle.size_mb} MB")
        check_bundle_size(run.bundle)

    def _upload_bundle(self, run: DeploymentRun) -> None:
        self.edge.deploy(run.unit_name, run.bundle.script)

    def _set_env_vars(self, run: DeploymentRun) -> None:
        self.edge.set_env_vars(run.unit_name, run.environment, self.worker_env_vars(run.app, run.environment))

    def _enable_default_domain(self, run: DeploymentRun) -> None:
        self.edge.enable_default_domain(run.unit_name)
        run.secondary_url = self.edge.workers_dev_url(run.unit_name)

    def _ensure_route(self, run: DeploymentRun) -> None:
        self.edge.ensure_route(run.subdomain, run.unit_name)
        run.deployment_url = self.edge.custom_domain_url(run.subdomain)

    def _update_app_record(self, run: DeploymentRun) -> None:
        self.app_service.record_deployment(run.app.id, run.environment, run.deployment_url)

import logging

from apphost.modules.apps.service import AppService
from apphost.modules.deployments.pipeline import DeploymentPipeline
from apphost.modules.deployments.schemas import DeploymentResult
from apphost.modules.schema.provisioner import SchemaProvisioner

logger = logging.getLogger(__name__)


def deploy_app_async(app_id: int, environment: str) -> DeploymentResult:
    """
    Background deployment worker.
    Runs after the request returns. Uses the service-role Supabase client so the
    app record and table metadata can be written regardless of RLS.
    Table provisioning runs first and never blocks the deployment.
    """
    from apphost.database.supabase_client import SupabaseClient
    client = SupabaseClient.get_service_client()
    app_service = AppService(client)

    try:
        app = app_service.get_app(app_id)
    except Exception as e:
        logger.error(f"[Deploy] App {app_id}: could not load app: {e}")
        return DeploymentResult.failure(environment, "app-load", str(e))

    try:
        provisioning = SchemaProvisioner(client).ensure_tables(app)
        if not provisioning.success:
            logger.warning(
                f"[Deploy] App {app_id}: table provisioning incomplete "
                f"(failed={provisioning.failed}, error={provisioning.error}); continuing"
            )
    except Exception as e:
        logger.error(f"[Deploy] App {app_id}: table provisioning crashed: {e}; continuing")

    result = DeploymentPipeline(app_service).deploy(app, environment)
    if result.success:
        logger.info(f"[Deploy] App {app_id} {environment} live at {result.deployment_url}")
    else:
        logger.error(f"[Deploy] App {app_id} {environment} failed at {result.stage}: {result.error}")
    return result

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response
from apphost.core.dependencies import get_accessible_app
from apphost.core.exceptions import AppHostError, BuildError, ConfigurationError
from apphost.database.supabase_client import get_supabase
from apphost.modules.apps.schemas import App, AppDeploymentsResponse
from apphost.modules.apps.service import AppService
from apphost.modules.deployments.deployment_worker import deploy_app_async
from apphost.modules.deployments.pipeline import DeploymentPipeline, unit_name_for
from apphost.modules.deployments.schemas import AssetsDeletedResponse, DeploymentCreate, DeploymentQueuedResponse
from apphost.modules.deployments.worker_bundle import dispatch
from supabase import Client
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/apps", tags=["deployments"])


def get_deployment_pipeline(supabase: Client = Depends(get_supabase)) -> DeploymentPipeline:
    return DeploymentPipeline(AppService(supabase))


@router.post("/{app_id}/deployments", response_model=DeploymentQueuedResponse, status_code=202)
async def create_deployment(
    app_id: int,
    deployment_data: DeploymentCreate,
    background_tasks: BackgroundTasks,
    app: App = Depends(get_accessible_app),
):
    """Queue a deployment of the app to staging or production. Progress is visible in the app record."""
    environment = deployment_data.environment.value
    background_tasks.add_task(deploy_app_async, app_id=app.id, environment=environment)
    logger.info(f"[Deploy] App {app.id}: {environment} deployment queued")
    return DeploymentQueuedResponse(
        app_id=app.id,
        environment=environment,
        unit_name=unit_name_for(environment, app.id),
    )


@router.get("/{app_id}/deployments", response_model=AppDeploymentsResponse)
async def get_deployments(
    app_id: int,
    app: App = Depends(get_accessible_app),
):
    """Current staging and production URLs for the app"""
    return AppDeploymentsResponse(
        app_id=app.id,
        staging_url=app.staging_url,
        staging_deployed_at=app.staging_deployed_at,
        deployment_url=app.deployment_url,
        deployed_at=app.deployed_at,
        deployment_status=app.deployment_status,
    )


@router.get("/{app_id}/preview/{path:path}")
def preview(
    app_id: int,
    path: str,
    app: App = Depends(get_accessible_app),
    pipeline: DeploymentPipeline = Depends(get_deployment_pipeline),
):
    """
    Answer a request the way the staging worker would, without deploying.
    Backend proxy paths are not forwarded from here.
    """
    try:
        bundle = pipeline.preview_bundle(app)
    except BuildError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except AppHostError as e:
        raise HTTPException(status_code=500, detail=str(e))

    env = pipeline.worker_env_vars(app, bundle.environment)
    worker_response = dispatch(bundle, "/" + path, env)
    if worker_response.proxy_target:
        raise HTTPException(status_code=501, detail="Backend proxy is not available in preview")
    return Response(
        content=worker_response.body,
        status_code=worker_response.status,
        headers=worker_response.headers,
    )


@router.delete("/{app_id}/assets", response_model=AssetsDeletedResponse)
def delete_assets(
    app_id: int,
    app: App = Depends(get_accessible_app),
    pipeline: DeploymentPipeline = Depends(get_deployment_pipeline),
):
    """Remove the app's offloaded assets from object storage."""
    try:
        deleted = pipeline.delete_assets(app)
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))
    logger.info(f"[R2Asset] App {app.id}: {deleted} assets removed")
    return AssetsDeletedResponse(app_id=app.id, deleted=deleted)

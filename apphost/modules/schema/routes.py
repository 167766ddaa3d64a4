from fastapi import APIRouter, Depends
from apphost.core.dependencies import get_accessible_app
from apphost.database.supabase_client import get_supabase
from apphost.modules.apps.schemas import App, PendingRLS
from apphost.modules.schema.provisioner import SchemaProvisioner
from apphost.modules.schema.schemas import ProvisioningResult, RLSReplayResult
from supabase import Client
from typing import List

router = APIRouter(prefix="/apps", tags=["tables"])


def get_schema_provisioner(supabase: Client = Depends(get_supabase)) -> SchemaProvisioner:
    return SchemaProvisioner(supabase)


@router.post("/{app_id}/tables/provision", response_model=ProvisioningResult)
def provision_tables(
    app_id: int,
    app: App = Depends(get_accessible_app),
    provisioner: SchemaProvisioner = Depends(get_schema_provisioner),
):
    """Detect the tables the app's source uses and create any that are missing"""
    return provisioner.ensure_tables(app)


@router.get("/{app_id}/tables/pending-rls", response_model=List[PendingRLS])
def list_pending_rls(
    app_id: int,
    app: App = Depends(get_accessible_app),
):
    return app.pending_rls


@router.post("/{app_id}/tables/pending-rls/replay", response_model=RLSReplayResult)
def replay_pending_rls(
    app_id: int,
    app: App = Depends(get_accessible_app),
    provisioner: SchemaProvisioner = Depends(get_schema_provisioner),
):
    """Retry row-level security policies that could not be applied at creation time"""
    return provisioner.replay_pending_rls(app)

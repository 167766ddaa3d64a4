from fastapi import APIRouter, Depends
from apphost.config import settings
from apphost.core.dependencies import get_accessible_app
from apphost.database.supabase_client import get_supabase
from apphost.modules.apps.schemas import App
from apphost.modules.apps.service import AppService
from apphost.modules.storage_migration.phase import PhaseController, PhaseState, StorageFlags
from supabase import Client

router = APIRouter(prefix="/apps", tags=["storage"])


def get_storage_flags() -> StorageFlags:
    return StorageFlags.from_settings(settings)


@router.get("/{app_id}/storage/phase", response_model=PhaseState)
def get_storage_phase(
    app_id: int,
    app: App = Depends(get_accessible_app),
    flags: StorageFlags = Depends(get_storage_flags),
    supabase: Client = Depends(get_supabase),
):
    """Where this app's files are currently written to and read from"""
    team = AppService(supabase).get_team(app.team_id)
    return PhaseController(flags).for_app(app, team)

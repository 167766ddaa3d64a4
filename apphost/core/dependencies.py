"""
Core dependencies for route protection and app access checks
"""

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from apphost.database.supabase_client import get_supabase
from apphost.modules.apps.schemas import App
from apphost.modules.apps.service import AppService
from apphost.modules.auth.service import AuthService
from supabase import Client
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    token = credentials.credentials
    return auth_service.get_current_user(token)


def is_super_user(user_data: dict) -> bool:
    """Check if user is a super user from app_metadata"""
    # app_metadata is set server-side and cannot be modified by users
    app_metadata = user_data.get("app_metadata") or {}
    return app_metadata.get("type") == "super_user"


def is_team_member(team_id: str, user_id: str, supabase: Client) -> bool:
    try:
        member_result = supabase.table("team_members")\
            .select("id")\
            .eq("team_id", team_id)\
            .eq("user_id", user_id)\
            .execute()
        return bool(member_result.data)
    except Exception as e:
        logger.error(f"Error checking team membership: {e}")
        return False


def check_app_access(app_id: int, user_data: dict, supabase: Client) -> App:
    """Allow if super_user, app owner, or member of the app's team. Returns the app."""
    app = AppService(supabase).get_app(app_id)
    if is_super_user(user_data):
        return app
    user_id = user_data["id"]
    if app.user_id and app.user_id == user_id:
        return app
    if app.team_id and is_team_member(app.team_id, user_id, supabase):
        return app
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You must be the app owner or a member of its team to access it"
    )


def get_accessible_app(
    app_id: int,
    user_data: dict = Depends(get_current_user_id),
    supabase: Client = Depends(get_supabase)
) -> App:
    """Dependency resolving the path's app after the access check"""
    return check_app_access(app_id, user_data, supabase)

from supabase import Client
from apphost.modules.apps.schemas import App, Team, PendingRLS
from typing import List, Optional
from fastapi import HTTPException
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AppService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_app(self, app_id: int) -> App:
        """Get app by ID"""
        try:
            result = self.supabase.table("apps")\
                .select("*")\
                .eq("id", app_id)\
                .maybe_single()\
                .execute()

            if not result or not result.data:
                raise HTTPException(status_code=404, detail="App not found")

            return App(**result.data)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error getting app {app_id}: {str(e)}")
            raise HTTPException(status_code=500, detail=str(e))

    def get_team(self, team_id: Optional[str]) -> Optional[Team]:
        """Get team by ID; None when the app has no team or the lookup fails"""
        if not team_id:
            return None
        try:
            result = self.supabase.table("teams")\
                .select("*")\
                .eq("id", team_id)\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                return None
            return Team(**result.data)
        except Exception as e:
            logger.warning(f"Could not load team {team_id}: {e}")
            return None

    def record_deployment(self, app_id: int, environment: str, deployment_url: str) -> None:
        """Point the app's per-environment deployment fields at a freshly deployed worker"""
        now = _now()
        if environment == "production":
            update_data = {
                "deployment_url": deployment_url,
                "deployed_at": now,
                "deployment_status": "deployed",
            }
        else:
            update_data = {
                "staging_url": deployment_url,
                "staging_deployed_at": now,
            }
        update_data["updated_at"] = now

        self.supabase.table("apps")\
            .update(update_data)\
            .eq("id", app_id)\
            .execute()
        logger.info(f"[Apps] App {app_id} {environment} deployment recorded: {deployment_url}")

    def list_pending_rls(self, app_id: int) -> List[PendingRLS]:
        return self.get_app(app_id).pending_rls

    def append_pending_rls(self, app_id: int, entry: PendingRLS) -> None:
        """Append a deferred RLS policy to the app metadata. Never drops existing entries."""
        app = self.get_app(app_id)
        metadata = dict(app.metadata or {})
        pending = list(metadata.get("pending_rls") or [])
        pending.append(entry.model_dump(mode="json"))
        metadata["pending_rls"] = pending
        self._update_metadata(app_id, metadata)

    def remove_pending_rls(self, app_id: int, entries: List[PendingRLS]) -> int:
        """Drop the given entries, matched on (table, created_at), from the current metadata."""
        done = {(e.table, e.created_at) for e in entries}
        app = self.get_app(app_id)
        metadata = dict(app.metadata or {})
        kept = [e for e in app.pending_rls if (e.table, e.created_at) not in done]
        removed = len(app.pending_rls) - len(kept)
        if removed:
            metadata["pending_rls"] = [e.model_dump(mode="json") for e in kept]
            self._update_metadata(app_id, metadata)
        return removed

    def _update_metadata(self, app_id: int, metadata: dict) -> None:
        self.supabase.table("apps")\
            .update({"metadata": metadata, "updated_at": _now()})\
            .eq("id", app_id)\
            .execute()

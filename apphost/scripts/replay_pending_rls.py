"""
Replay Pending RLS Script
Retries row-level security policies that could not be applied when their
tables were created. Runs for the given app ids, or every app with pending
entries when none are given.
Can be run manually or as part of a nightly job.
"""

import sys
import argparse
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from apphost.database.supabase_client import SupabaseClient
from apphost.modules.apps.schemas import App
from apphost.modules.schema.provisioner import SchemaProvisioner
from supabase import Client
from typing import List
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def apps_with_pending_rls(supabase: Client) -> List[App]:
    result = supabase.table("apps").select("*").execute()
    apps = [App(**row) for row in (result.data or [])]
    return [app for app in apps if app.pending_rls]


def replay(supabase: Client, app_ids: List[int]) -> int:
    """Replay pending RLS; returns the number of tables still pending"""
    provisioner = SchemaProvisioner(supabase)
    if app_ids:
        apps = [provisioner.app_service.get_app(app_id) for app_id in app_ids]
    else:
        apps = apps_with_pending_rls(supabase)
    logger.info(f"Replaying pending RLS for {len(apps)} apps...")

    remaining = 0
    for app in apps:
        result = provisioner.replay_pending_rls(app)
        remaining += len(result.remaining)
        logger.info(f"App {app.id}: applied {len(result.applied)}, still pending {len(result.remaining)}")
    return remaining


def main():
    parser = argparse.ArgumentParser(description="Replay pending RLS policies")
    parser.add_argument("app_ids", nargs="*", type=int, help="App ids (default: every app with pending entries)")
    args = parser.parse_args()
    try:
        supabase = SupabaseClient.get_service_client()
        remaining = replay(supabase, args.app_ids)
        logger.info(f"Replay completed, {remaining} tables still pending")
        if remaining:
            sys.exit(2)
    except Exception as e:
        logger.error(f"Error during replay: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

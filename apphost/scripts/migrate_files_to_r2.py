"""
Migrate App Files to R2 Script
Copies app file content from the database column into the R2 files bucket for
apps whose storage migration phase allows writes. Dry run unless --execute is
given.
"""

import sys
import argparse
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from apphost.config import settings
from apphost.database.supabase_client import SupabaseClient
from apphost.modules.app_files.service import FileMigrationService
from apphost.modules.storage_migration.phase import PhaseController, StorageFlags
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Migrate app files to R2")
    parser.add_argument("app_ids", nargs="*", type=int, help="App ids (default: all apps)")
    parser.add_argument("--execute", action="store_true", help="Upload files instead of only counting them")
    args = parser.parse_args()
    try:
        supabase = SupabaseClient.get_service_client()
        controller = PhaseController(StorageFlags.from_settings(settings))
        service = FileMigrationService(supabase, controller)

        stats = service.migrate(args.app_ids or None, dry_run=not args.execute)

        logger.info(f"Processed {stats.processed} files ({stats.bytes} bytes)")
        logger.info(f"Successful: {stats.successful}, failed: {stats.failed}, skipped apps: {stats.skipped_apps}")
        for error in stats.errors:
            logger.error(error)
        if stats.failed:
            sys.exit(2)
    except Exception as e:
        logger.error(f"Error during migration: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

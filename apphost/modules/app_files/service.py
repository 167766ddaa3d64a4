from supabase import Client
from botocore.exceptions import BotoCoreError, ClientError
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional
import hashlib
import logging

from apphost.config import Settings, settings as default_settings
from apphost.core.exceptions import ConfigurationError
from apphost.modules.app_files.schemas import AppFileRecord, FileMigrationStats
from apphost.modules.apps.service import AppService
from apphost.modules.assets.r2_storage import create_r2_client
from apphost.modules.storage_migration.phase import PhaseController, PhaseState

logger = logging.getLogger(__name__)


def _sha256(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def file_object_key(app_id: int, path: str) -> str:
    clean_path = path[1:] if path.startswith("/") else path
    return f"app-{app_id}/files/{clean_path}"


class AppFileStore:
    """App source files behind the legacy column and the R2 files bucket, gated by the migration phase."""

    def __init__(self, supabase: Client, phase: PhaseState, settings: Optional[Settings] = None, s3_client=None):
        self.supabase = supabase
        self.phase = phase
        self.settings = settings or default_settings
        self.bucket_name = self.settings.r2_files_bucket
        self._s3 = s3_client

    @property
    def s3(self):
        if self._s3 is None:
            if not self.bucket_name:
                raise ConfigurationError("R2 files bucket not configured")
            self._s3 = create_r2_client(self.settings)
        return self._s3

    def _read_object(self, key: str) -> str:
        response = self.s3.get_object(Bucket=self.bucket_name, Key=key)
        return response["Body"].read().decode("utf-8")

    def list_records(self, app_id: int) -> Iterable[AppFileRecord]:
        result = self.supabase.table("app_files")\
            .select("*")\
            .eq("app_id", app_id)\
            .execute()
        return [AppFileRecord(**row) for row in (result.data or [])]

    def list_sources(self, app_id: int) -> Dict[str, str]:
        """Path -> text for every app file, read from whichever store the phase says."""
        sources: Dict[str, str] = {}
        for record in self.list_records(app_id):
            content = record.content
            if self.phase.should_read and record.r2_content_key:
                try:
                    content = self._read_object(record.r2_content_key)
                except (ClientError, BotoCoreError, ConfigurationError) as e:
                    logger.warning(f"[AppFiles] R2 read failed for app {app_id} {record.path}, using database copy: {e}")
            if content is not None:
                sources[record.path] = content
        logger.info(f"[AppFiles] Loaded {len(sources)} files for app {app_id} (phase={self.phase.phase.value})")
        return sources

    def write_file(self, app_id: int, path: str, content: str) -> AppFileRecord:
        """Write a file to the stores the phase allows and upsert its row"""
        r2_key = None
        if self.phase.should_write:
            r2_key = file_object_key(app_id, path)
            self.s3.put_object(
                Bucket=self.bucket_name,
                Key=r2_key,
                Body=content.encode("utf-8"),
                ContentType="text/plain; charset=utf-8",
            )

        keep_legacy = self.phase.should_write_legacy or r2_key is None
        if r2_key and keep_legacy:
            location = "hybrid"
        elif r2_key:
            location = "r2"
        else:
            location = "database"

        row = {
            "app_id": app_id,
            "path": path,
            "content": content if keep_legacy else None,
            "r2_content_key": r2_key,
            "content_hash": _sha256(content),
            "size_bytes": len(content.encode("utf-8")),
            "storage_location": location,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

        existing = self.supabase.table("app_files")\
            .select("id")\
            .eq("app_id", app_id)\
            .eq("path", path)\
            .execute()
        if existing.data:
            result = self.supabase.table("app_files")\
                .update(row)\
                .eq("id", existing.data[0]["id"])\
                .execute()
        else:
            result = self.supabase.table("app_files").insert(row).execute()

        data = (result.data or [row])[0]
        return AppFileRecord(**data)


class FileMigrationService:
    """Copies legacy file content into the R2 files bucket for apps whose phase allows writes."""

    def __init__(
        self,
        supabase: Client,
        phase_controller: PhaseController,
        settings: Optional[Settings] = None,
        s3_client=None,
    ):
        self.supabase = supabase
        self.phase_controller = phase_controller
        self.settings = settings or default_settings
        if not self.settings.r2_files_bucket:
            raise ConfigurationError("R2 files bucket not configured")
        self.bucket_name = self.settings.r2_files_bucket
        self.s3 = s3_client or create_r2_client(self.settings)
        self.app_service = AppService(supabase)

    def _app_ids(self) -> Iterable[int]:
        result = self.supabase.table("apps").select("id").execute()
        return [row["id"] for row in (result.data or [])]

    def migrate(self, app_ids: Optional[Iterable[int]] = None, dry_run: bool = True) -> FileMigrationStats:
        stats = FileMigrationStats(dry_run=dry_run)
        for app_id in (list(app_ids) if app_ids else self._app_ids()):
            app = self.app_service.get_app(app_id)
            state = self.phase_controller.for_app(app, self.app_service.get_team(app.team_id))
            if not state.should_write:
                logger.info(f"[FileMigration] Skipping app {app_id}: phase={state.phase.value} enabled={state.enabled}")
                stats.skipped_apps.append(app_id)
                continue
            self._migrate_app(app_id, stats, dry_run)

        logger.info(
            f"[FileMigration] {'Dry run' if dry_run else 'Migration'} complete: processed={stats.processed} "
            f"successful={stats.successful} failed={stats.failed} bytes={stats.bytes}"
        )
        return stats

    def _migrate_app(self, app_id: int, stats: FileMigrationStats, dry_run: bool) -> None:
        rows = self.supabase.table("app_files")\
            .select("*")\
            .eq("app_id", app_id)\
            .execute()
        for row in rows.data or []:
            record = AppFileRecord(**row)
            if record.r2_content_key or record.content is None:
                continue
            stats.processed += 1
            size = len(record.content.encode("utf-8"))
            if dry_run:
                stats.bytes += size
                continue
            key = file_object_key(app_id, record.path)
            try:
                self.s3.put_object(Bucket=self.bucket_name, Key=key, Body=record.content.encode("utf-8"))
                stored = self.s3.get_object(Bucket=self.bucket_name, Key=key)["Body"].read().decode("utf-8")
                if _sha256(stored) != _sha256(record.content):
                    raise ValueError("content hash mismatch after upload")
                self.supabase.table("app_files")\
                    .update({
                        "r2_content_key": key,
                        "content_hash": _sha256(record.content),
                        "storage_location": "hybrid",
                    })\
                    .eq("id", record.id)\
                    .execute()
                stats.successful += 1
                stats.bytes += size
            except (ClientError, BotoCoreError, ValueError) as e:
                stats.failed += 1
                stats.errors.append(f"App {app_id} {record.path}: {e}")
                logger.error(f"[FileMigration] Failed to migrate app {app_id} {record.path}: {e}")

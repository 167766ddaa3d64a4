from supabase import Client
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import logging
import threading

from apphost.config import Settings, settings as default_settings
from apphost.modules.apps.schemas import App, PendingRLS
from apphost.modules.apps.service import AppService
from apphost.modules.schema.schemas import AppTable, AppTableColumn, TableConfig

logger = logging.getLogger(__name__)


def _default_value_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def build_column_rows(table_id: str, config: TableConfig) -> List[Dict[str, Any]]:
    """Column metadata: id, owner reference for user-scoped tables, declared columns, timestamps."""
    columns: List[AppTableColumn] = [
        AppTableColumn(app_table_id=table_id, name="id", column_type="uuid", is_primary=True, is_required=True),
    ]
    if config.user_scoped:
        columns.append(AppTableColumn(
            app_table_id=table_id,
            name="user_id",
            column_type="uuid",
            is_foreign_key=True,
            foreign_table="auth.users",
        ))
    for column in config.columns:
        columns.append(AppTableColumn(
            app_table_id=table_id,
            name=column.name,
            column_type=column.type or "text",
            is_required=column.required,
            default_value=_default_value_text(column.default),
        ))
    columns += [
        AppTableColumn(app_table_id=table_id, name="created_at", column_type="timestamptz", default_value="now()"),
        AppTableColumn(app_table_id=table_id, name="updated_at", column_type="timestamptz", default_value="now()"),
    ]
    return [c.model_dump(exclude={"id"}) for c in columns]


class AppTableService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def find_table(self, app_id: int, name: str) -> Optional[AppTable]:
        result = self.supabase.table("app_tables")\
            .select("*")\
            .eq("app_id", app_id)\
            .eq("name", name)\
            .execute()
        if not result.data:
            return None
        return AppTable(**result.data[0])

    def list_tables(self, app_id: int) -> List[AppTable]:
        result = self.supabase.table("app_tables")\
            .select("*")\
            .eq("app_id", app_id)\
            .execute()
        return [AppTable(**row) for row in (result.data or [])]

    def count_columns(self, table_id: str) -> int:
        result = self.supabase.table("app_table_columns")\
            .select("id")\
            .eq("app_table_id", table_id)\
            .execute()
        return len(result.data or [])

    def save_table_metadata(self, app: App, config: TableConfig) -> AppTable:
        """Find-or-create the AppTable row; columns are written only while none are recorded."""
        table = self.find_table(app.id, config.name)
        if table is None:
            result = self.supabase.table("app_tables").insert({
                "app_id": app.id,
                "team_id": app.team_id,
                "name": config.name,
                "display_name": config.name.replace("_", " ").capitalize(),
                "scope_type": config.scope_type,
            }).execute()
            table = AppTable(**result.data[0])
            logger.info(f"[AutoTable] Recorded table metadata for app {app.id} {config.name}")

        if self.count_columns(table.id) == 0:
            rows = build_column_rows(table.id, config)
            self.supabase.table("app_table_columns").insert(rows).execute()
            logger.info(f"[AutoTable] Recorded {len(rows)} columns for app {app.id} {config.name}")
        return table


class PendingRLSStore:
    """Durable record of RLS policies that could not be applied: app metadata plus a SQL file."""

    _lock = threading.Lock()

    def __init__(self, app_service: AppService, settings: Optional[Settings] = None):
        self.app_service = app_service
        self.settings = settings or default_settings

    def sql_path(self, table_name: str) -> Path:
        return Path(self.settings.pending_rls_dir) / f"rls_{table_name}.sql"

    def record(self, app_id: int, table_name: str, sql: str) -> PendingRLS:
        sql_file = self.sql_path(table_name)
        try:
            sql_file.parent.mkdir(parents=True, exist_ok=True)
            sql_file.write_text(sql)
        except OSError as e:
            logger.warning(f"[AutoTable] Could not write {sql_file}: {e}")
            sql_file = None

        entry = PendingRLS(
            table=table_name,
            sql_text=sql,
            sql_file=str(sql_file) if sql_file else None,
            created_at=datetime.now(timezone.utc),
        )
        # Metadata is read-modify-write; serialize appends from concurrent table provisioning.
        with self._lock:
            self.app_service.append_pending_rls(app_id, entry)
        logger.warning(f"[AutoTable] RLS pending for {table_name} (app {app_id}); manual setup may be required")
        return entry

    def list_pending(self, app_id: int) -> List[PendingRLS]:
        return self.app_service.list_pending_rls(app_id)

    def remove(self, app_id: int, applied: List[PendingRLS]) -> int:
        # Re-read under the lock; entries appended since the caller listed them survive.
        with self._lock:
            return self.app_service.remove_pending_rls(app_id, applied)

    def discard_file(self, entry: PendingRLS) -> None:
        if not entry.sql_file:
            return
        try:
            Path(entry.sql_file).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"[AutoTable] Could not remove {entry.sql_file}: {e}")

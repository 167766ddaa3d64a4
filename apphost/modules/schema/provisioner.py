"""
Per-app table provisioning.

For each table detected in an app's source: probe or create the physical
table, apply owner-isolation RLS (deferring it to a durable pending list when
that fails), then record table and column metadata. The top-level calls never
raise; every failure ends up in the returned result so a rerun can finish what
is left.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional

from supabase import Client

from apphost.config import Settings, settings as default_settings
from apphost.core.exceptions import RLSApplyError
from apphost.modules.app_files.service import AppFileStore
from apphost.modules.apps.schemas import App
from apphost.modules.apps.service import AppService
from apphost.modules.schema.detectors import TableDetector, detect_tables
from apphost.modules.schema.naming import scoped_name
from apphost.modules.schema.rls import RLSApplier, build_rls_sql
from apphost.modules.schema.schemas import (
    ProvisioningResult,
    RLSReplayResult,
    TableConfig,
    TableOutcome,
    TableStatus,
)
from apphost.modules.schema.service import AppTableService, PendingRLSStore
from apphost.modules.schema.table_creator import PostgrestTableCreator, TableCreator, build_template_row
from apphost.modules.storage_migration.phase import PhaseController, PhaseState, StorageFlags

logger = logging.getLogger(__name__)

FileStoreFactory = Callable[[PhaseState], AppFileStore]


class SchemaProvisioner:
    def __init__(
        self,
        supabase: Client,
        settings: Optional[Settings] = None,
        table_creator: Optional[TableCreator] = None,
        rls_applier: Optional[RLSApplier] = None,
        detectors: Optional[Iterable[TableDetector]] = None,
        file_store_factory: Optional[FileStoreFactory] = None,
    ):
        self.settings = settings or default_settings
        self.supabase = supabase
        self.app_service = AppService(supabase)
        self.table_service = AppTableService(supabase)
        self.pending_rls = PendingRLSStore(self.app_service, self.settings)
        self.table_creator = table_creator or PostgrestTableCreator(self.settings)
        self.rls_applier = rls_applier or RLSApplier(self.settings)
        self.detectors = list(detectors) if detectors else None
        self.file_store_factory = file_store_factory or (
            lambda phase: AppFileStore(self.supabase, phase, self.settings)
        )

    def detect(self, app: App, flags: StorageFlags) -> List[TableConfig]:
        team = self.app_service.get_team(app.team_id)
        phase = PhaseController(flags).for_app(app, team)
        sources = self.file_store_factory(phase).list_sources(app.id)
        tables = detect_tables(sources, self.detectors)
        logger.info(f"[AutoTable] App {app.id}: detected tables {[t.name for t in tables]}")
        return tables

    def ensure_tables(self, app: App, flags: Optional[StorageFlags] = None) -> ProvisioningResult:
        """Detect and provision every table the app's source needs."""
        flags = flags or StorageFlags.from_settings(self.settings)
        logger.info(f"[AutoTable] Ensuring tables for app {app.id}")
        try:
            configs = self.detect(app, flags)
        except Exception as e:
            logger.error(f"[AutoTable] App {app.id}: table detection failed: {e}")
            return ProvisioningResult(success=False, app_id=app.id, error=f"Table detection failed: {e}")
        return self.provision_tables(app, configs)

    def provision_tables(self, app: App, configs: List[TableConfig]) -> ProvisioningResult:
        if not configs:
            return ProvisioningResult(success=True, app_id=app.id)

        workers = max(1, min(self.settings.provision_concurrency, len(configs)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(lambda config: self._provision_table(app, config), configs))

        result = ProvisioningResult(
            success=all(o.status != TableStatus.FAILED and o.rls != "failed" for o in outcomes),
            app_id=app.id,
            tables=outcomes,
        )
        logger.info(
            f"[AutoTable] App {app.id}: created={result.created} existing={result.existing} "
            f"failed={result.failed} pending_rls={result.pending_rls} rls_failed={result.rls_failed}"
        )
        return result

    def _provision_table(self, app: App, config: TableConfig) -> TableOutcome:
        physical_name = None
        try:
            physical_name = scoped_name(config.name, app.id)
            ensured = self.table_creator.ensure_table(physical_name, build_template_row(config))
            if ensured.status == TableStatus.FAILED:
                return TableOutcome(
                    name=config.name,
                    physical_name=physical_name,
                    status=TableStatus.FAILED,
                    error=ensured.detail or "Table creation failed",
                )

            rls = None
            if ensured.status == TableStatus.CREATED or self._unfinished(app, config):
                rls = self._apply_rls(app, physical_name) if config.user_scoped else "skipped"

            if rls == "failed":
                # No metadata row, so the next run sees an unfinished table and retries the policy.
                return TableOutcome(
                    name=config.name,
                    physical_name=physical_name,
                    status=ensured.status,
                    rls=rls,
                    error="RLS could not be applied or deferred",
                )

            self.table_service.save_table_metadata(app, config)
            return TableOutcome(name=config.name, physical_name=physical_name, status=ensured.status, rls=rls)
        except Exception as e:
            logger.error(f"[AutoTable] App {app.id}: provisioning {config.name} failed: {e}")
            return TableOutcome(name=config.name, physical_name=physical_name, status=TableStatus.FAILED, error=str(e))

    def _unfinished(self, app: App, config: TableConfig) -> bool:
        """An existing table without metadata was left behind by a run that never finished."""
        return self.table_service.find_table(app.id, config.name) is None

    def _apply_rls(self, app: App, physical_name: str) -> str:
        sql = build_rls_sql(physical_name)
        try:
            self.rls_applier.apply(physical_name, sql)
            return "applied"
        except RLSApplyError as e:
            logger.warning(f"[AutoTable] {e}")
        try:
            self.pending_rls.record(app.id, physical_name, sql)
            return "pending"
        except Exception as e:
            logger.error(f"[AutoTable] App {app.id}: could not record pending RLS for {physical_name}: {e}")
            return "failed"

    def replay_pending_rls(self, app: App) -> RLSReplayResult:
        """Retry every deferred policy; the ones that apply are dropped from the pending list."""
        result = RLSReplayResult(app_id=app.id)
        try:
            pending = self.pending_rls.list_pending(app.id)
        except Exception as e:
            logger.error(f"[AutoTable] App {app.id}: could not load pending RLS: {e}")
            return result

        applied = []
        for entry in pending:
            try:
                self.rls_applier.apply(entry.table, entry.sql_text)
                applied.append(entry)
                result.applied.append(entry.table)
                self.pending_rls.discard_file(entry)
            except RLSApplyError as e:
                logger.warning(f"[AutoTable] Replay failed: {e}")
                result.remaining.append(entry.table)

        if applied:
            try:
                self.pending_rls.remove(app.id, applied)
            except Exception as e:
                logger.error(f"[AutoTable] App {app.id}: could not update pending RLS list: {e}")
        logger.info(f"[AutoTable] App {app.id}: replayed RLS applied={result.applied} remaining={result.remaining}")
        return result

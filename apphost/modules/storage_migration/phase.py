"""
Storage migration phases.

Which store app files are written to and read from is decided per app from an
explicit StorageFlags value (never read from process state here):

    phase      should_write  should_read
    disabled   no            no
    testing    yes           no          (dual-write, reads stay on legacy)
    hybrid     yes           yes
    active     yes           yes
    complete   yes           yes

Phases are not required to move forward; any value may be set at any time.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from apphost.config import Settings


class MigrationPhase(str, Enum):
    DISABLED = "disabled"
    TESTING = "testing"
    HYBRID = "hybrid"
    ACTIVE = "active"
    COMPLETE = "complete"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MigrationPhase":
        """Map a configured value to a phase; anything unrecognized is testing."""
        if value is None:
            return cls.TESTING
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.TESTING


READ_PHASES = frozenset({MigrationPhase.HYBRID, MigrationPhase.ACTIVE, MigrationPhase.COMPLETE})


class StorageFlags(BaseModel):
    storage_enabled: bool = False
    migration_phase: Optional[str] = None
    disable_override: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageFlags":
        return cls(
            storage_enabled=settings.storage_enabled,
            migration_phase=settings.storage_migration_phase,
            disable_override=settings.storage_disable_override,
        )


class PhaseState(BaseModel):
    phase: MigrationPhase
    enabled: bool
    decided_by: str  # override | app | team | global
    should_write: bool
    should_read: bool

    @property
    def should_write_legacy(self) -> bool:
        # Legacy writes stop only once reads are fully served by the new store.
        return not (self.should_read and self.phase == MigrationPhase.COMPLETE)


def resolve_phase(
    flags: StorageFlags,
    app_setting: Optional[bool] = None,
    team_setting: Optional[bool] = None,
) -> PhaseState:
    if flags.disable_override:
        return PhaseState(
            phase=MigrationPhase.DISABLED,
            enabled=False,
            decided_by="override",
            should_write=False,
            should_read=False,
        )

    if app_setting is not None:
        enabled, decided_by = bool(app_setting), "app"
    elif team_setting is not None:
        enabled, decided_by = bool(team_setting), "team"
    else:
        enabled, decided_by = bool(flags.storage_enabled), "global"

    phase = MigrationPhase.parse(flags.migration_phase)
    return PhaseState(
        phase=phase,
        enabled=enabled,
        decided_by=decided_by,
        should_write=enabled and phase != MigrationPhase.DISABLED,
        should_read=enabled and phase in READ_PHASES,
    )


class PhaseController:
    def __init__(self, flags: StorageFlags):
        self.flags = flags

    def for_app(self, app, team=None) -> PhaseState:
        return resolve_phase(
            self.flags,
            app_setting=getattr(app, "storage_offload_enabled", None),
            team_setting=getattr(team, "storage_offload_enabled", None) if team else None,
        )

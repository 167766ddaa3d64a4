from enum import Enum
from pydantic import BaseModel, Field, computed_field
from typing import Any, List, Optional


class ColumnSpec(BaseModel):
    name: str
    type: str = "text"
    required: bool = False
    default: Optional[Any] = None


class TableConfig(BaseModel):
    name: str
    user_scoped: bool = True
    columns: List[ColumnSpec] = Field(default_factory=list)

    @property
    def scope_type(self) -> str:
        return "user_scoped" if self.user_scoped else "app_scoped"


class TableStatus(str, Enum):
    EXISTS = "exists"
    CREATED = "created"
    FAILED = "failed"


class TableOutcome(BaseModel):
    name: str
    physical_name: Optional[str] = None
    status: TableStatus
    rls: Optional[str] = None  # applied | pending | skipped | failed
    error: Optional[str] = None


class ProvisioningResult(BaseModel):
    success: bool
    app_id: int
    tables: List[TableOutcome] = Field(default_factory=list)
    error: Optional[str] = None

    @computed_field
    @property
    def created(self) -> List[str]:
        return [t.name for t in self.tables if t.status == TableStatus.CREATED]

    @computed_field
    @property
    def existing(self) -> List[str]:
        return [t.name for t in self.tables if t.status == TableStatus.EXISTS]

    @computed_field
    @property
    def failed(self) -> List[str]:
        return [t.name for t in self.tables if t.status == TableStatus.FAILED]

    @computed_field
    @property
    def pending_rls(self) -> List[str]:
        return [t.name for t in self.tables if t.rls == "pending"]

    @computed_field
    @property
    def rls_failed(self) -> List[str]:
        return [t.name for t in self.tables if t.rls == "failed"]


class RLSReplayResult(BaseModel):
    app_id: int
    applied: List[str] = Field(default_factory=list)
    remaining: List[str] = Field(default_factory=list)


class AppTable(BaseModel):
    id: str
    app_id: int
    team_id: Optional[str] = None
    name: str
    display_name: Optional[str] = None
    scope_type: str = "user_scoped"


class AppTableColumn(BaseModel):
    id: Optional[str] = None
    app_table_id: str
    name: str
    column_type: str
    is_primary: bool = False
    is_required: bool = False
    default_value: Optional[str] = None
    is_foreign_key: bool = False
    foreign_table: Optional[str] = None

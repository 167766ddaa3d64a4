from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime


class PendingRLS(BaseModel):
    table: str
    sql_text: str
    sql_file: Optional[str] = None
    created_at: datetime


class App(BaseModel):
    id: int
    slug: str
    name: str
    team_id: Optional[str] = None
    user_id: Optional[str] = None
    subdomain: Optional[str] = None
    staging_url: Optional[str] = None
    staging_deployed_at: Optional[datetime] = None
    deployment_url: Optional[str] = None
    deployed_at: Optional[datetime] = None
    deployment_status: Optional[str] = None
    storage_offload_enabled: Optional[bool] = None
    env_vars: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def effective_subdomain(self) -> str:
        return self.subdomain or self.slug

    @property
    def pending_rls(self) -> List[PendingRLS]:
        return [PendingRLS(**entry) for entry in self.metadata.get("pending_rls") or []]


class Team(BaseModel):
    id: str
    name: Optional[str] = None
    storage_offload_enabled: Optional[bool] = None


class AppDeploymentsResponse(BaseModel):
    app_id: int
    staging_url: Optional[str] = None
    staging_deployed_at: Optional[datetime] = None
    deployment_url: Optional[str] = None
    deployed_at: Optional[datetime] = None
    deployment_status: Optional[str] = None

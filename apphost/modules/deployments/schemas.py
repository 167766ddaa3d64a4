from enum import Enum
from pydantic import BaseModel
from typing import Optional


class Environment(str, Enum):
    STAGING = "staging"
    PRODUCTION = "production"


class DeploymentCreate(BaseModel):
    environment: Environment = Environment.STAGING


class DeploymentResult(BaseModel):
    success: bool
    environment: str
    unit_name: Optional[str] = None
    deployment_url: Optional[str] = None
    secondary_url: Optional[str] = None
    bundle_size_mb: Optional[float] = None
    assets_uploaded: Optional[int] = None
    error: Optional[str] = None
    stage: Optional[str] = None

    @classmethod
    def failure(cls, environment: str, stage: str, error: str, unit_name: Optional[str] = None) -> "DeploymentResult":
        return cls(success=False, environment=environment, stage=stage, error=error, unit_name=unit_name)


class DeploymentQueuedResponse(BaseModel):
    app_id: int
    environment: str
    unit_name: str
    status: str = "queued"


class AssetsDeletedResponse(BaseModel):
    app_id: int
    deleted: int

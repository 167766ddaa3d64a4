from pydantic import BaseModel, Field
from typing import List, Optional


class AppFileRecord(BaseModel):
    id: Optional[str] = None
    app_id: int
    path: str
    content: Optional[str] = None
    r2_content_key: Optional[str] = None
    content_hash: Optional[str] = None
    size_bytes: Optional[int] = None
    storage_location: str = "database"


class FileMigrationStats(BaseModel):
    dry_run: bool
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped_apps: List[int] = Field(default_factory=list)
    bytes: int = 0
    errors: List[str] = Field(default_factory=list)

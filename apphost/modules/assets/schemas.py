from pydantic import BaseModel, Field
from typing import Dict, List


class AssetRecord(BaseModel):
    path: str
    content_type: str
    url: str


class AssetUploadResult(BaseModel):
    asset_urls: Dict[str, str] = Field(default_factory=dict)
    uploaded_count: int = 0
    uploaded_bytes: int = 0
    total_files: int = 0
    failed: List[str] = Field(default_factory=list)

    @classmethod
    def from_records(cls, records: List[AssetRecord], uploaded_bytes: int, total_files: int, failed: List[str]):
        return cls(
            asset_urls={r.path: r.url for r in records},
            uploaded_count=len(records),
            uploaded_bytes=uploaded_bytes,
            total_files=total_files,
            failed=failed,
        )

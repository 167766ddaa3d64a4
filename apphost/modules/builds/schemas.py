from pydantic import BaseModel, Field
from typing import Optional, Dict, Union

FileContent = Union[str, bytes]


class BuildArtifact(BaseModel):
    success: bool
    files: Dict[str, FileContent] = Field(default_factory=dict)
    error: Optional[str] = None

    @property
    def total_bytes(self) -> int:
        return sum(len(c.encode("utf-8") if isinstance(c, str) else c) for c in self.files.values())

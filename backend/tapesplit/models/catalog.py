from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field


class CatalogFile(BaseModel):
    name: str
    format: str = ""
    size: int = 0
    source: str = ""


class CatalogItem(BaseModel):
    identifier: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    files: List[CatalogFile] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def title(self) -> Optional[str]:
        title = self.metadata.get("title")
        if isinstance(title, list):
            return title[0] if title else None
        return title

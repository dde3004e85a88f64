from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceTag(str, Enum):
    STATE_MAP = "state_map"
    KNOWLEDGE_BASE = "knowledge_base"
    DRIVE_FILES = "drive_files"


# Fixed provenance precedence: structured legality > free text > loose file match.
SOURCE_PRECEDENCE: tuple[SourceTag, ...] = (
    SourceTag.STATE_MAP,
    SourceTag.KNOWLEDGE_BASE,
    SourceTag.DRIVE_FILES,
)


class SearchParams(BaseModel):
    """Per-request search parameters; read-only once the classifier has built them."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    state: Optional[str] = None
    brand: Optional[str] = None
    product: Optional[str] = None
    query: Optional[str] = None
    file_type: Optional[str] = Field(default=None, alias="fileType")
    file_id: Optional[str] = Field(default=None, alias="fileId")
    category: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class ClassifierOutput(BaseModel):
    """Strict shape expected from the routing model."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    data_sources: List[SourceTag] = Field(..., alias="dataSources", min_length=1)
    search_params: SearchParams = Field(default_factory=SearchParams, alias="searchParams")

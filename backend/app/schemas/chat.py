from __future__ import annotations

from typing import List, Optional, Literal

from pydantic import BaseModel, Field

RoleType = Literal["system", "user", "assistant"]
ProvenanceSource = Literal["state_map", "knowledge_base", "drive_files", "no_match"]


class ChatMessage(BaseModel):
    role: RoleType
    content: str


class ChatRequest(BaseModel):
    # Empty is allowed here so the router can answer with {"error": ...} instead of a 422.
    messages: List[ChatMessage] = Field(default_factory=list)
    message: Optional[str] = None  # legacy direct-message format
    chatId: Optional[str] = None
    userId: Optional[str] = None


class SourceInfo(BaseModel):
    """Provenance: which evidence source produced the primary answer."""

    source: ProvenanceSource
    found: bool
    brand: Optional[str] = None
    state: Optional[str] = None
    message: Optional[str] = None
    brandLogo: Optional[str] = None


class ChatResponse(BaseModel):
    response: str
    sourceInfo: SourceInfo


class ErrorResponse(BaseModel):
    error: str

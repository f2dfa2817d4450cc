"""
State Layer - Runtime Data Models

This module defines the per-turn WorkflowState threaded through the
orchestrator, and the durable per-session history records.
"""

from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from ..domain.models import ProcessedContent


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ChatHistoryEntry(BaseModel):
    """
    One completed exchange. Entries are append-only; the serialized form
    uses camelCase keys so stored blobs stay readable by existing clients.
    """
    model_config = ConfigDict(populate_by_name=True)

    timestamp: str = Field(default_factory=utc_now_iso)
    user_message: str = Field(alias="userMessage")
    llm_response: str = Field(alias="llmResponse")


class SessionHistoryRecord(BaseModel):
    """
    Metadata row pointing at a session's history blob.
    """
    session_id: str
    history_blob_location: str
    title: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class WorkflowState(BaseModel):
    """
    The mutable record for one chat turn.
    `final_response` stays None until generation has fully finished.
    """
    session_id: str
    text_input: Optional[str] = None
    owner_id: Optional[str] = None
    images: List[ProcessedContent] = Field(default_factory=list)
    documents: List[ProcessedContent] = Field(default_factory=list)
    retrieved_context: List[str] = Field(default_factory=list)
    chat_history: List[ChatHistoryEntry] = Field(default_factory=list)
    final_response: Optional[str] = None
    title: Optional[str] = None
    # Decided from the full stored history, not the prompt window.
    is_first_turn: bool = False

    @property
    def uploaded_content(self) -> List[ProcessedContent]:
        return [*self.images, *self.documents]

"""
API Layer - Request/Response Schemas

Pydantic models for API responses. Field names are snake_case in Python and
camelCase on the wire.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class StartChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stream_id: str = Field(alias="streamId")
    session_id: str = Field(alias="sessionId")


class HistoryEntryRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: str
    user_message: str = Field(alias="userMessage")
    llm_response: str = Field(alias="llmResponse")


class SessionSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    title: Optional[str] = None
    created_at: datetime = Field(alias="createdAt")


class TitleResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    title: Optional[str] = None


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    active_streams: int = Field(alias="activeStreams")


class StreamChunk(BaseModel):
    """Payload of one SSE `data:` frame."""
    chunk: str


class StreamError(BaseModel):
    error: str

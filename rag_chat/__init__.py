"""
RAG Chat Backend

A retrieval-augmented chat backend: messages and uploaded files go in, the
answer streams back token by token, and every session keeps an append-only
history with a generated title.
"""

from rag_chat.domain import (
    ContentMetadata,
    ProcessedContent,
    UploadedFile,
)
from rag_chat.state import (
    ChatHistoryEntry,
    SessionHistoryRecord,
    WorkflowState,
)
from rag_chat.execution import TurnStage, WorkflowOrchestrator
from rag_chat.streaming import StreamBroker

__all__ = [
    # Domain Layer
    "ContentMetadata",
    "ProcessedContent",
    "UploadedFile",
    # State Layer
    "ChatHistoryEntry",
    "SessionHistoryRecord",
    "WorkflowState",
    # Execution Layer
    "TurnStage",
    "WorkflowOrchestrator",
    # Streaming
    "StreamBroker",
]

"""
State Layer - Runtime Data Models

Defines the per-turn workflow state and the durable session history records.
"""

from rag_chat.state.models import (
    ChatHistoryEntry,
    SessionHistoryRecord,
    WorkflowState,
)

__all__ = [
    "ChatHistoryEntry",
    "SessionHistoryRecord",
    "WorkflowState",
]

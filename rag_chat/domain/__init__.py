"""
Domain Layer - Content Models

Defines the immutable records describing uploaded files and the content
chunks extracted from them.
"""

from rag_chat.domain.models import (
    ContentMetadata,
    ContentType,
    ProcessedContent,
    UploadedFile,
)

__all__ = [
    "ContentMetadata",
    "ContentType",
    "ProcessedContent",
    "UploadedFile",
]

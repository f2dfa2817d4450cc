"""
Ingestion Layer - Upload Content Extraction

Turns uploaded images and documents into ProcessedContent chunks.
"""

from rag_chat.ingestion.interface import ContentIngestor
from rag_chat.ingestion.router import (
    ALLOWED_MEDIA_TYPES,
    MediaTypeIngestor,
    is_document,
    is_image,
)

__all__ = [
    "ALLOWED_MEDIA_TYPES",
    "ContentIngestor",
    "MediaTypeIngestor",
    "is_document",
    "is_image",
]

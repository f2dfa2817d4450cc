"""
Domain Layer - Content Models

This module defines the immutable content records that flow from the upload
boundary into a chat turn: the raw uploaded file, and the typed chunks the
ingestors extract from it.
"""

from dataclasses import dataclass, field
from typing import Dict, Literal, Mapping, Optional, Union

"""
ContentType classifies extracted content:
- image: a vision-model description of an uploaded picture
- document: one text chunk of an uploaded document
"""
ContentType = Literal["image", "document"]

Scalar = Union[str, int, float, bool]


@dataclass(frozen=True)
class UploadedFile:
    """
    A file received with a chat request, fully read into memory.

    Attributes:
        filename: Original client-side name (used for extension sniffing).
        media_type: Declared MIME type.
        data: Raw bytes.
    """
    filename: str
    media_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        if "." not in self.filename:
            return ""
        return self.filename.rsplit(".", 1)[-1].lower()


@dataclass(frozen=True)
class ContentMetadata:
    """
    Source metadata attached to a content chunk.

    Well-known fields are typed; anything else goes in `extra`, which only
    accepts scalars so the record can always be flattened for the vector index.
    """
    filename: Optional[str] = None
    media_type: Optional[str] = None
    file_type: Optional[str] = None
    size: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    chunk_index: Optional[int] = None
    total_chunks: Optional[int] = None
    extra: Mapping[str, Scalar] = field(default_factory=dict)

    def flatten(self) -> Dict[str, Scalar]:
        """Returns a flat scalar mapping with unset fields dropped."""
        flat: Dict[str, Scalar] = {}
        for key in (
            "filename",
            "media_type",
            "file_type",
            "size",
            "width",
            "height",
            "chunk_index",
            "total_chunks",
        ):
            value = getattr(self, key)
            if value is not None:
                flat[key] = value
        for key, value in self.extra.items():
            if isinstance(value, (str, int, float, bool)):
                flat[key] = value
        return flat


@dataclass(frozen=True)
class ProcessedContent:
    """
    One unit of extracted content, produced once per image or per document
    chunk. Ownership passes to the WorkflowState of the turn that created it.
    """
    type: ContentType
    content: str
    metadata: ContentMetadata = field(default_factory=ContentMetadata)

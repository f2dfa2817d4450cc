import logging
from typing import List

from ..domain.models import ProcessedContent, UploadedFile
from ..services.exceptions import ExtractionError
from .interface import ContentIngestor

logger = logging.getLogger(__name__)

IMAGE_MEDIA_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
})

DOCUMENT_MEDIA_TYPES = frozenset({
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "text/csv",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
})

ALLOWED_MEDIA_TYPES = IMAGE_MEDIA_TYPES | DOCUMENT_MEDIA_TYPES


def is_image(media_type: str) -> bool:
    return media_type.startswith("image/")


def is_document(media_type: str) -> bool:
    return media_type in DOCUMENT_MEDIA_TYPES


class MediaTypeIngestor(ContentIngestor):
    """
    Dispatches an upload to the image or document extractor by its declared
    media type. Anything matching neither raises ExtractionError.
    """

    def __init__(self, image_ingestor: ContentIngestor, document_ingestor: ContentIngestor):
        self.image_ingestor = image_ingestor
        self.document_ingestor = document_ingestor

    async def extract(self, upload: UploadedFile) -> List[ProcessedContent]:
        if is_image(upload.media_type):
            return await self.image_ingestor.extract(upload)
        if is_document(upload.media_type):
            return await self.document_ingestor.extract(upload)
        raise ExtractionError(f"File type {upload.media_type} not supported ({upload.filename})")

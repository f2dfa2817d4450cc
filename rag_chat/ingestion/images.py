"""
Image description.

Downscales an uploaded image with Pillow and asks the vision model for a
search-oriented description. The description becomes the chunk content.
"""

import asyncio
import base64
import io
import logging
from dataclasses import dataclass
from typing import List

from PIL import Image

from ..config import settings
from ..domain.models import ContentMetadata, ProcessedContent, UploadedFile
from ..llm.interface import LLMProvider
from ..services.exceptions import ExtractionError, GenerationError
from .interface import ContentIngestor

logger = logging.getLogger(__name__)

IMAGE_ANALYSIS_PROMPT = """Analyze this image and provide a detailed description including:
1. Objects and entities present
2. Text content if any (OCR)
3. Overall context and scene description
4. Any relevant details for search and retrieval
5. Emotional tone or mood if applicable
6. Colors, composition, and visual elements

Make the description comprehensive for semantic search purposes."""


@dataclass(frozen=True)
class PreparedImage:
    base64_jpeg: str
    width: int
    height: int


class ImageDescriber(ContentIngestor):
    def __init__(
        self,
        llm_provider: LLMProvider,
        max_dimension: int = settings.IMAGE_MAX_DIMENSION,
        jpeg_quality: int = settings.IMAGE_JPEG_QUALITY,
    ):
        self.llm = llm_provider
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality

    async def extract(self, upload: UploadedFile) -> List[ProcessedContent]:
        prepared = await asyncio.to_thread(self._prepare, upload)

        try:
            description = await self.llm.describe_image(
                IMAGE_ANALYSIS_PROMPT, prepared.base64_jpeg, media_type="image/jpeg"
            )
        except GenerationError as e:
            raise ExtractionError(f"Failed to describe image '{upload.filename}': {e}") from e

        logger.info(
            f"Processed image '{upload.filename}' | {prepared.width}x{prepared.height} "
            f"| description_chars={len(description)}"
        )
        return [
            ProcessedContent(
                type="image",
                content=description,
                metadata=ContentMetadata(
                    filename=upload.filename,
                    media_type=upload.media_type,
                    size=upload.size,
                    width=prepared.width,
                    height=prepared.height,
                ),
            )
        ]

    def _prepare(self, upload: UploadedFile) -> PreparedImage:
        """Reads dimensions, fits the image inside the max box and re-encodes as JPEG."""
        try:
            with Image.open(io.BytesIO(upload.data)) as img:
                width, height = img.size
                rgb = img.convert("RGB")
        except Exception as e:
            raise ExtractionError(f"Cannot open image '{upload.filename}': {e}") from e

        # thumbnail() only ever shrinks, never enlarges
        rgb.thumbnail((self.max_dimension, self.max_dimension))
        buffer = io.BytesIO()
        rgb.save(buffer, format="JPEG", quality=self.jpeg_quality)
        return PreparedImage(
            base64_jpeg=base64.b64encode(buffer.getvalue()).decode("ascii"),
            width=width,
            height=height,
        )

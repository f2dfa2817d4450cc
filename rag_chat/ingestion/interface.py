from abc import ABC, abstractmethod
from typing import List

from ..domain.models import ProcessedContent, UploadedFile


class ContentIngestor(ABC):
    """
    Turns one uploaded file into typed content chunks.
    """

    @abstractmethod
    async def extract(self, upload: UploadedFile) -> List[ProcessedContent]:
        """
        Returns the extracted chunks in source order.
        Raises ExtractionError for unsupported or corrupt files.
        """
        pass

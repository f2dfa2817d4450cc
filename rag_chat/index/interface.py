"""
Context Index Interface.

Defines the contract for the searchable store of session content: chunks go
in tagged with their session, and similarity queries only ever see chunks of
the session they are scoped to.
"""
from abc import ABC, abstractmethod
from typing import List, Sequence

from ..domain.models import ProcessedContent


class ContextIndex(ABC):
    @abstractmethod
    async def index(self, chunks: Sequence[ProcessedContent], session_id: str) -> None:
        """
        Embeds and stores the chunks under the given session.
        Raises ContextIndexError on failure.
        """
        pass

    @abstractmethod
    async def query(self, text: str, session_id: str, k: int = 5) -> List[str]:
        """
        Returns the content of the k chunks most similar to `text`,
        best match first, restricted to `session_id`.
        Raises ContextIndexError on failure.
        """
        pass

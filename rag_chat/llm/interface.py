from abc import ABC, abstractmethod
from typing import AsyncIterator, List

import numpy as np

class LLMProvider(ABC):
    """
    Abstract Base Class interface that defines the contract for any LLM provider
    (OpenAI, Anthropic, Local LLaMA, etc.)
    """

    @abstractmethod
    def stream(self, prompt: str) -> AsyncIterator[str]:
        """
        Generates a response for a single prompt as a lazy sequence of text
        fragments. The sequence is finite and cannot be restarted.
        Raises GenerationError on failure, including mid-stream.
        """
        pass

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """
        Generates a complete response for a single prompt.
        Raises GenerationError on failure.
        """
        pass

    @abstractmethod
    async def describe_image(self, prompt: str, image_base64: str, media_type: str = "image/jpeg") -> str:
        """
        Asks a vision-capable model to describe an image.
        Raises GenerationError on failure.
        """
        pass


class EmbeddingProvider(ABC):
    """
    Contract for turning text into dense vectors for similarity search.
    """

    @abstractmethod
    async def embed(self, texts: List[str]) -> List[np.ndarray]:
        """
        Returns one vector per input text, in input order.
        Raises ContextIndexError on failure.
        """
        pass

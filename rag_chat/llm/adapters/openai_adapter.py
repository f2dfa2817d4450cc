import logging
from typing import AsyncIterator, List, Optional

import numpy as np
from openai import AsyncOpenAI

from ..interface import EmbeddingProvider, LLMProvider
from ...config import settings
from ...services.exceptions import ContextIndexError, GenerationError

logger = logging.getLogger(__name__)


class OpenAIAdapter(LLMProvider):
    def __init__(
        self,
        api_key: str,
        model_name: str = settings.OPENAI_MODEL,
        vision_model_name: str = settings.OPENAI_VISION_MODEL,
        temperature: float = settings.LLM_TEMPERATURE,
    ):
        self.client = AsyncOpenAI(api_key=api_key)
        self.model_name = model_name
        self.vision_model_name = vision_model_name
        self.temperature = temperature

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        # This is where the specific OpenAI implementation lives.
        # If OpenAI changes their API tomorrow, we ONLY change this file.
        try:
            stream = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                stream=True,
            )
            async for chunk in stream:
                choice = chunk.choices[0] if chunk.choices else None
                if choice is None or choice.delta is None:
                    continue
                piece = choice.delta.content or ""
                if piece:
                    yield piece
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"Streaming completion failed: {e}") from e

    async def complete(self, prompt: str) -> str:
        try:
            completion = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
            )
        except Exception as e:
            raise GenerationError(f"Completion failed: {e}") from e

        # We unwrap the specific OpenAI response structure here
        return completion.choices[0].message.content or ""

    async def describe_image(self, prompt: str, image_base64: str, media_type: str = "image/jpeg") -> str:
        try:
            completion = await self.client.chat.completions.create(
                model=self.vision_model_name,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:{media_type};base64,{image_base64}"},
                            },
                        ],
                    }
                ],
            )
        except Exception as e:
            raise GenerationError(f"Image description failed: {e}") from e

        return completion.choices[0].message.content or ""


class OpenAIEmbeddingAdapter(EmbeddingProvider):
    def __init__(
        self,
        api_key: str,
        model_name: str = settings.OPENAI_EMBEDDING_MODEL,
        batch_size: int = 64,
    ):
        self.client = AsyncOpenAI(api_key=api_key)
        self.model_name = model_name
        self.batch_size = max(1, batch_size)
        self.dim: Optional[int] = None

    async def embed(self, texts: List[str]) -> List[np.ndarray]:
        if not texts:
            return []

        out: List[np.ndarray] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            try:
                response = await self.client.embeddings.create(model=self.model_name, input=batch)
            except Exception as e:
                raise ContextIndexError(f"Embedding request failed: {e}") from e

            for item in response.data:
                vector = np.asarray(item.embedding, dtype=np.float32)
                current_dim = int(vector.shape[0])
                if self.dim is None:
                    self.dim = current_dim
                elif self.dim != current_dim:
                    raise ContextIndexError(f"Embedding dimension changed from {self.dim} to {current_dim}")
                out.append(vector)

        logger.debug(f"Embedded {len(out)} texts with {self.model_name}")
        return out

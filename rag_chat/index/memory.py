from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np

from ..domain.models import ProcessedContent, Scalar
from ..llm.interface import EmbeddingProvider
from ..services.exceptions import ContextIndexError
from ..state.models import utc_now_iso
from .interface import ContextIndex

logger = logging.getLogger(__name__)


@dataclass
class IndexedChunk:
    content: str
    vector: np.ndarray
    metadata: Dict[str, Scalar]


def cosine_scores(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    query_vec = query.astype("float32").ravel()
    norms = np.linalg.norm(matrix, axis=1) * float(np.linalg.norm(query_vec))
    dots = matrix @ query_vec
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return scores.astype("float32")


def build_chunk_metadata(chunk: ProcessedContent, session_id: str) -> Dict[str, Scalar]:
    metadata: Dict[str, Scalar] = {
        "type": chunk.type,
        "session_id": session_id,
        "timestamp": utc_now_iso(),
    }
    metadata.update(chunk.metadata.flatten())
    return metadata


class InMemoryVectorIndex(ContextIndex):
    """
    Per-session vector store held in process memory.
    Embeddings come from the injected EmbeddingProvider; similarity is cosine.
    """

    def __init__(self, embedder: EmbeddingProvider):
        self.embedder = embedder
        self._chunks: Dict[str, List[IndexedChunk]] = {}

    async def index(self, chunks: Sequence[ProcessedContent], session_id: str) -> None:
        if not chunks:
            return
        texts = [chunk.content for chunk in chunks]
        vectors = await self.embedder.embed(texts)
        if len(vectors) != len(texts):
            raise ContextIndexError(
                f"Embedding count mismatch: {len(vectors)} vectors for {len(texts)} chunks"
            )

        bucket = self._chunks.setdefault(session_id, [])
        for chunk, vector in zip(chunks, vectors):
            bucket.append(
                IndexedChunk(
                    content=chunk.content,
                    vector=np.asarray(vector, dtype=np.float32),
                    metadata=build_chunk_metadata(chunk, session_id),
                )
            )
        logger.info(f"Indexed {len(chunks)} chunks | session_id={session_id} | total={len(bucket)}")

    async def query(self, text: str, session_id: str, k: int = 5) -> List[str]:
        bucket = self._chunks.get(session_id, [])
        if not bucket or k <= 0:
            return []

        vectors = await self.embedder.embed([text])
        if not vectors:
            raise ContextIndexError("Embedding provider returned no vector for the query")

        matrix = np.vstack([entry.vector for entry in bucket])
        if matrix.shape[1] != vectors[0].shape[0]:
            raise ContextIndexError(
                f"Query dimension {vectors[0].shape[0]} does not match index dimension {matrix.shape[1]}"
            )
        scores = cosine_scores(vectors[0], matrix)

        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:k]
        return [bucket[int(i)].content for i in order]

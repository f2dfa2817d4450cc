"""
FAISS Context Index - Durable Per-Session Vector Store

Each session gets its own FAISS index saved under `root_dir`, so indexed
uploads survive restarts. Vectors are unit-normalized before they are stored
and an inner-product index ranks them, which makes scores cosine similarity.

Embedding always goes through the injected EmbeddingProvider; the langchain
vector store only ever receives precomputed vectors.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import weakref
from pathlib import Path
from typing import Dict, List, Sequence

import numpy as np
from langchain_community.vectorstores import FAISS
from langchain_community.vectorstores.utils import DistanceStrategy
from langchain_core.embeddings import Embeddings

from ..domain.models import ProcessedContent, Scalar
from ..llm.interface import EmbeddingProvider
from ..services.exceptions import ContextIndexError
from .interface import ContextIndex
from .memory import build_chunk_metadata

logger = logging.getLogger(__name__)

INDEX_FILE = "index.faiss"


class ProviderEmbeddings(Embeddings):
    """
    Exposes an EmbeddingProvider through langchain's Embeddings interface.
    The provider is async-only, so the sync methods are unsupported.
    """

    def __init__(self, provider: EmbeddingProvider):
        self.provider = provider

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError("Use aembed_documents; the provider is async")

    def embed_query(self, text: str) -> List[float]:
        raise NotImplementedError("Use aembed_query; the provider is async")

    async def aembed_documents(self, texts: List[str]) -> List[List[float]]:
        return [unit_vector(v).tolist() for v in await self.provider.embed(texts)]

    async def aembed_query(self, text: str) -> List[float]:
        vectors = await self.aembed_documents([text])
        if not vectors:
            raise ContextIndexError("Embedding provider returned no vector for the query")
        return vectors[0]


def unit_vector(vector: np.ndarray) -> np.ndarray:
    vec = np.asarray(vector, dtype=np.float32).ravel()
    norm = float(np.linalg.norm(vec))
    return vec / norm if norm > 0 else vec


class FaissVectorIndex(ContextIndex):
    def __init__(self, embedder: EmbeddingProvider, root_dir: str):
        self.embeddings = ProviderEmbeddings(embedder)
        self.root_dir = Path(root_dir)
        # Writes to one session's files are serialized; readers wait too
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def index(self, chunks: Sequence[ProcessedContent], session_id: str) -> None:
        if not chunks:
            return
        texts = [chunk.content for chunk in chunks]
        vectors = await self.embeddings.aembed_documents(texts)
        if len(vectors) != len(texts):
            raise ContextIndexError(
                f"Embedding count mismatch: {len(vectors)} vectors for {len(texts)} chunks"
            )
        metadatas = [build_chunk_metadata(chunk, session_id) for chunk in chunks]

        directory = self.session_dir(session_id)
        async with self._lock_for(session_id):
            try:
                total = await asyncio.to_thread(self._append, directory, texts, vectors, metadatas)
            except ContextIndexError:
                raise
            except Exception as e:
                raise ContextIndexError(f"Failed to index chunks for session {session_id}: {e}") from e
        logger.info(f"Indexed {len(chunks)} chunks | session_id={session_id} | total={total}")

    async def query(self, text: str, session_id: str, k: int = 5) -> List[str]:
        directory = self.session_dir(session_id)
        if k <= 0 or not (directory / INDEX_FILE).exists():
            return []

        vector = await self.embeddings.aembed_query(text)
        async with self._lock_for(session_id):
            try:
                return await asyncio.to_thread(self._search, directory, vector, k)
            except Exception as e:
                raise ContextIndexError(f"Vector search failed for session {session_id}: {e}") from e

    def session_dir(self, session_id: str) -> Path:
        # Session ids come from clients; hash them into a safe directory name
        digest = hashlib.sha256(session_id.encode("utf-8")).hexdigest()
        return self.root_dir / digest

    # ==========================================================================
    # Blocking FAISS Work (runs in a worker thread)
    # ==========================================================================

    def _load(self, directory: Path) -> FAISS:
        return FAISS.load_local(
            str(directory),
            self.embeddings,
            allow_dangerous_deserialization=True,
            distance_strategy=DistanceStrategy.MAX_INNER_PRODUCT,
        )

    def _append(
        self,
        directory: Path,
        texts: List[str],
        vectors: List[List[float]],
        metadatas: List[Dict[str, Scalar]],
    ) -> int:
        pairs = list(zip(texts, vectors))
        if (directory / INDEX_FILE).exists():
            store = self._load(directory)
            if store.index.d != len(vectors[0]):
                raise ContextIndexError(
                    f"Vector dimension {len(vectors[0])} does not match index dimension {store.index.d}"
                )
            store.add_embeddings(pairs, metadatas=metadatas)
        else:
            directory.mkdir(parents=True, exist_ok=True)
            store = FAISS.from_embeddings(
                pairs,
                embedding=self.embeddings,
                metadatas=metadatas,
                distance_strategy=DistanceStrategy.MAX_INNER_PRODUCT,
            )
        store.save_local(str(directory))
        return store.index.ntotal

    def _search(self, directory: Path, vector: List[float], k: int) -> List[str]:
        store = self._load(directory)
        if store.index.d != len(vector):
            raise ContextIndexError(
                f"Query dimension {len(vector)} does not match index dimension {store.index.d}"
            )
        documents = store.similarity_search_by_vector(vector, k=k)
        return [doc.page_content for doc in documents]

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

from rag_chat.index.interface import ContextIndex
from rag_chat.index.faiss_store import FaissVectorIndex
from rag_chat.index.memory import InMemoryVectorIndex

__all__ = [
    "ContextIndex",
    "FaissVectorIndex",
    "InMemoryVectorIndex",
]

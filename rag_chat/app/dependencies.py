"""
Dependency Injection Wiring (Composition Root).

This module acts as the central "container" for the application's services.
It is responsible for:
1. Instantiating the core Singleton services (Repositories, Adapters, Index, Broker).
2. Wiring them together (e.g., injecting the Index and LLM Adapter into the Orchestrator).
3. Managing the lifecycle of these objects using @lru_cache to ensure
   they are created only once per application process.

Getters call each other directly rather than through Depends so the
lifespan hook can reach the same singletons outside a request. Tests swap
them with app.dependency_overrides.
"""

from functools import lru_cache

from langsmith import Client

from ..config import settings
from ..llm.interface import EmbeddingProvider, LLMProvider
from ..llm.adapters.openai_adapter import OpenAIAdapter, OpenAIEmbeddingAdapter
from ..index.interface import ContextIndex
from ..index.faiss_store import FaissVectorIndex
from ..index.memory import InMemoryVectorIndex
from ..ingestion.interface import ContentIngestor
from ..ingestion.documents import DocumentExtractor
from ..ingestion.images import ImageDescriber
from ..ingestion.router import MediaTypeIngestor
from ..infrastructure.blob.store import FileSystemBlobStore
from ..repositories.history import HistoryRepository, InMemoryHistoryRepository, SqlHistoryRepository
from ..execution.engine import WorkflowOrchestrator
from ..streaming.broker import StreamBroker
from ..services.tracing import RunTracer
from ..services.chat import ChatService


# LLM Provider (Singleton)
@lru_cache()
def get_llm_provider() -> LLMProvider:
    return OpenAIAdapter(
        api_key=settings.OPENAI_API_KEY,
        model_name=settings.OPENAI_MODEL,
        vision_model_name=settings.OPENAI_VISION_MODEL,
        temperature=settings.LLM_TEMPERATURE,
    )


# Embeddings (Singleton)
@lru_cache()
def get_embedding_provider() -> EmbeddingProvider:
    return OpenAIEmbeddingAdapter(
        api_key=settings.OPENAI_API_KEY,
        model_name=settings.OPENAI_EMBEDDING_MODEL,
    )


# Context Index (Singleton)
# Note: the in-memory index must be a singleton so indexed uploads survive across turns!
# The durable backend keeps them on disk next to the history blobs.
@lru_cache()
def get_context_index() -> ContextIndex:
    if settings.HISTORY_BACKEND == "memory":
        return InMemoryVectorIndex(embedder=get_embedding_provider())
    return FaissVectorIndex(embedder=get_embedding_provider(), root_dir=settings.VECTOR_STORE_DIR)


# Ingestion (Singleton)
@lru_cache()
def get_content_ingestor() -> ContentIngestor:
    return MediaTypeIngestor(
        image_ingestor=ImageDescriber(
            llm_provider=get_llm_provider(),
            max_dimension=settings.IMAGE_MAX_DIMENSION,
            jpeg_quality=settings.IMAGE_JPEG_QUALITY,
        ),
        document_ingestor=DocumentExtractor(
            chunk_size=settings.CHUNK_SIZE,
            chunk_overlap=settings.CHUNK_OVERLAP,
        ),
    )


# History Repository (Singleton)
@lru_cache()
def get_history_repository() -> HistoryRepository:
    if settings.HISTORY_BACKEND == "memory":
        return InMemoryHistoryRepository()
    return SqlHistoryRepository(blob_store=FileSystemBlobStore(settings.BLOB_STORAGE_DIR))


# Tracer (Singleton)
@lru_cache()
def get_tracer() -> RunTracer:
    if not settings.LANGSMITH_API_KEY:
        return RunTracer()
    client = Client(api_key=settings.LANGSMITH_API_KEY, api_url=settings.LANGSMITH_ENDPOINT)
    return RunTracer(client=client, project_name=settings.LANGSMITH_PROJECT)


# Stream Broker (Singleton)
# Note: the channel registry is process state, one broker per process.
@lru_cache()
def get_stream_broker() -> StreamBroker:
    return StreamBroker()


# The Orchestrator (Singleton Service)
@lru_cache()
def get_workflow_orchestrator() -> WorkflowOrchestrator:
    return WorkflowOrchestrator(
        index=get_context_index(),
        llm_provider=get_llm_provider(),
        tracer=get_tracer(),
        upload_context_limit=settings.UPLOAD_CONTEXT_LIMIT,
        top_k=settings.RETRIEVAL_TOP_K,
    )


# The Chat Service (Singleton Service)
@lru_cache()
def get_chat_service() -> ChatService:
    """
    Injects all necessary components into the ChatService.
    """
    return ChatService(
        history_repository=get_history_repository(),
        ingestor=get_content_ingestor(),
        orchestrator=get_workflow_orchestrator(),
        broker=get_stream_broker(),
        tracer=get_tracer(),
        history_window=settings.HISTORY_WINDOW,
        serialize_history_writes=settings.SERIALIZE_HISTORY_WRITES,
    )

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Security: Read from .env, never hardcode defaults here
    OPENAI_API_KEY: str

    # Model Configuration
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_VISION_MODEL: str = "gpt-4o"
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"

    # Generation Parameters
    LLM_TEMPERATURE: float = 0.7

    # Persistence
    # "memory" keeps history in-process; "sql" uses DATABASE_URL + BLOB_STORAGE_DIR
    HISTORY_BACKEND: Literal["memory", "sql"] = "sql"
    DATABASE_URL: str = "sqlite:///./rag_chat.db"
    BLOB_STORAGE_DIR: str = "./storage"
    # Per-session FAISS indexes, used when HISTORY_BACKEND is "sql"
    VECTOR_STORE_DIR: str = "./storage/vector_index"
    SERIALIZE_HISTORY_WRITES: bool = False

    # Turn Policy
    HISTORY_WINDOW: int = 3
    UPLOAD_CONTEXT_LIMIT: int = 5
    RETRIEVAL_TOP_K: int = 5

    # Ingestion
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200
    IMAGE_MAX_DIMENSION: int = 1024
    IMAGE_JPEG_QUALITY: int = 80
    MAX_UPLOAD_FILES: int = 10
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024

    LOG_LEVEL: str = "INFO"

    # Tracing: runs are also sent to LangSmith when a key is set
    LANGSMITH_API_KEY: Optional[str] = None
    LANGSMITH_ENDPOINT: str = "https://api.smith.langchain.com"
    LANGSMITH_PROJECT: str = "rag-chat"

    # Loads from a .env file in the root directory
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

# Singleton instance
settings = Settings()

from rag_chat.infrastructure.database.connection import engine, init_db
from rag_chat.infrastructure.database.tables import ChatHistoryDBModel

__all__ = ["ChatHistoryDBModel", "engine", "init_db"]

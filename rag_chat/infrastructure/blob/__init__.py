from rag_chat.infrastructure.blob.store import BlobStore, FileSystemBlobStore, InMemoryBlobStore

__all__ = ["BlobStore", "FileSystemBlobStore", "InMemoryBlobStore"]

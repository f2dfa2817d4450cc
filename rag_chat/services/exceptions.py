"""
Service Layer Exceptions

Custom exceptions for the chat turn pipeline and its collaborators.
Only GenerationError is fatal to a turn; the others are caught where they
are raised and degrade the turn.
"""


class ChatBackendError(Exception):
    """Base class for all errors raised by the chat backend."""
    pass


class EmptyTurnError(ChatBackendError):
    """Raised when a turn carries neither a message nor files."""
    pass


class ExtractionError(ChatBackendError):
    """Raised when an upload is unsupported or cannot be parsed."""
    pass


class ContextIndexError(ChatBackendError):
    """Raised when embedding, indexing or similarity search fails."""
    pass


class GenerationError(ChatBackendError):
    """Raised when the language model call fails, outright or mid-stream."""
    pass


class PersistenceError(ChatBackendError):
    """Raised when the history store or blob store is unavailable."""
    pass


class StreamNotFoundError(ChatBackendError):
    """Raised when subscribing to an unknown or already terminated stream."""

    def __init__(self, stream_id: str):
        super().__init__(f"Invalid or expired stream ID: {stream_id}")
        self.stream_id = stream_id


class StreamAlreadySubscribedError(ChatBackendError):
    """Raised when a second consumer tries to attach to a live stream."""

    def __init__(self, stream_id: str):
        super().__init__(f"Stream {stream_id} already has a subscriber")
        self.stream_id = stream_id


class StreamFailedError(ChatBackendError):
    """Raised to a subscriber when the producer terminated the stream with an error."""
    pass

from rag_chat.streaming.broker import StreamBroker, StreamEvent, StreamEventKind

__all__ = [
    "StreamBroker",
    "StreamEvent",
    "StreamEventKind",
]

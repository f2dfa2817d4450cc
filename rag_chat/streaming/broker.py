"""
Stream Broker - Live Fragment Relay

Bridges one background turn (the producer) to at most one live subscriber
through a per-turn channel identified by an opaque stream id.
-----------------------------------------------

Channel lifecycle:
1. open() registers an empty channel and returns its id before any work runs.
2. publish() appends fragments. They queue up until a subscriber drains them,
   so nothing is lost between open() and the client connecting.
3. complete() or fail() enqueue a terminal marker and drop the channel from
   the registry in the same synchronous step. A subscriber that is already
   attached still drains everything that was queued; anyone arriving later
   gets StreamNotFoundError.

There is no backpressure. The queue is unbounded and ordered.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum, auto
from typing import AsyncIterator, Dict

from ..services.exceptions import (
    StreamAlreadySubscribedError,
    StreamFailedError,
    StreamNotFoundError,
)

logger = logging.getLogger(__name__)


class StreamEventKind(Enum):
    CHUNK = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass(frozen=True)
class StreamEvent:
    kind: StreamEventKind
    content: str = ""


class StreamChannel:
    def __init__(self, stream_id: str):
        self.stream_id = stream_id
        self.queue: "asyncio.Queue[StreamEvent]" = asyncio.Queue()
        self.subscribed = False
        self.published = 0


class StreamBroker:
    def __init__(self):
        self._channels: Dict[str, StreamChannel] = {}

    # ==========================================================================
    # Producer Side
    # ==========================================================================

    def open(self) -> str:
        stream_id = uuid.uuid4().hex
        self._channels[stream_id] = StreamChannel(stream_id)
        logger.debug(f"Stream opened | stream_id={stream_id}")
        return stream_id

    def publish(self, stream_id: str, fragment: str) -> bool:
        channel = self._channels.get(stream_id)
        if channel is None:
            logger.debug(f"Dropped fragment for unknown stream | stream_id={stream_id}")
            return False
        channel.queue.put_nowait(StreamEvent(StreamEventKind.CHUNK, fragment))
        channel.published += 1
        return True

    def complete(self, stream_id: str) -> bool:
        return self._terminate(stream_id, StreamEvent(StreamEventKind.COMPLETED))

    def fail(self, stream_id: str, error: BaseException) -> bool:
        message = str(error) or type(error).__name__
        return self._terminate(stream_id, StreamEvent(StreamEventKind.FAILED, message))

    def _terminate(self, stream_id: str, event: StreamEvent) -> bool:
        # pop + enqueue with no await in between: nobody can observe a
        # registered channel that has already been terminated
        channel = self._channels.pop(stream_id, None)
        if channel is None:
            return False
        channel.queue.put_nowait(event)
        logger.debug(
            f"Stream terminated | stream_id={stream_id} | kind={event.kind.name} "
            f"| fragments={channel.published}"
        )
        return True

    # ==========================================================================
    # Consumer Side
    # ==========================================================================

    def subscribe(self, stream_id: str) -> AsyncIterator[str]:
        """
        Attaches the single consumer of a channel.

        Lookup happens eagerly so callers can map an unknown id to a 404
        before they start streaming. The returned iterator ends cleanly on
        completion and raises StreamFailedError if the producer failed.
        """
        channel = self._channels.get(stream_id)
        if channel is None:
            raise StreamNotFoundError(stream_id)
        if channel.subscribed:
            raise StreamAlreadySubscribedError(stream_id)
        channel.subscribed = True
        return self._drain(channel)

    async def _drain(self, channel: StreamChannel) -> AsyncIterator[str]:
        while True:
            event = await channel.queue.get()
            if event.kind is StreamEventKind.CHUNK:
                yield event.content
            elif event.kind is StreamEventKind.COMPLETED:
                return
            else:
                raise StreamFailedError(event.content)

    # ==========================================================================
    # Introspection
    # ==========================================================================

    def active_count(self) -> int:
        return len(self._channels)

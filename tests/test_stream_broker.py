import asyncio

import pytest

from rag_chat.services.exceptions import (
    StreamAlreadySubscribedError,
    StreamFailedError,
    StreamNotFoundError,
)
from rag_chat.streaming.broker import StreamBroker


def test_fragments_published_before_subscribe_are_delivered_in_order():
    async def scenario():
        broker = StreamBroker()
        stream_id = broker.open()
        fragments = broker.subscribe(stream_id)
        broker.publish(stream_id, "a")
        broker.publish(stream_id, "b")
        broker.complete(stream_id)
        return [f async for f in fragments]

    assert asyncio.run(scenario()) == ["a", "b"]


def test_subscribe_after_complete_is_not_found():
    broker = StreamBroker()
    stream_id = broker.open()
    broker.publish(stream_id, "a")
    broker.complete(stream_id)

    with pytest.raises(StreamNotFoundError):
        broker.subscribe(stream_id)
    assert broker.active_count() == 0


def test_subscribe_unknown_stream_is_not_found():
    broker = StreamBroker()

    with pytest.raises(StreamNotFoundError) as exc_info:
        broker.subscribe("does-not-exist")
    assert "does-not-exist" in str(exc_info.value)


def test_second_subscriber_is_rejected():
    broker = StreamBroker()
    stream_id = broker.open()
    broker.subscribe(stream_id)

    with pytest.raises(StreamAlreadySubscribedError):
        broker.subscribe(stream_id)


def test_failed_stream_raises_after_buffered_fragments():
    async def scenario():
        broker = StreamBroker()
        stream_id = broker.open()
        fragments = broker.subscribe(stream_id)
        broker.publish(stream_id, "partial")
        broker.fail(stream_id, RuntimeError("boom"))

        received = []
        with pytest.raises(StreamFailedError, match="boom"):
            async for fragment in fragments:
                received.append(fragment)
        return received

    assert asyncio.run(scenario()) == ["partial"]


def test_termination_happens_once():
    async def scenario():
        broker = StreamBroker()
        stream_id = broker.open()
        fragments = broker.subscribe(stream_id)
        broker.publish(stream_id, "x")

        assert broker.complete(stream_id) is True
        assert broker.fail(stream_id, RuntimeError("late")) is False
        assert broker.complete(stream_id) is False
        # Published after termination: dropped
        assert broker.publish(stream_id, "y") is False
        return [f async for f in fragments]

    assert asyncio.run(scenario()) == ["x"]


def test_live_subscriber_receives_fragments_as_they_arrive():
    async def scenario():
        broker = StreamBroker()
        stream_id = broker.open()
        received = []

        async def consume():
            async for fragment in broker.subscribe(stream_id):
                received.append(fragment)

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0)
        broker.publish(stream_id, "one")
        await asyncio.sleep(0)
        assert received == ["one"]

        broker.publish(stream_id, "two")
        broker.complete(stream_id)
        await consumer
        return received

    assert asyncio.run(scenario()) == ["one", "two"]


def test_active_count_tracks_open_channels():
    broker = StreamBroker()
    first = broker.open()
    second = broker.open()
    assert first != second
    assert broker.active_count() == 2

    broker.fail(first, RuntimeError("x"))
    assert broker.active_count() == 1
    assert first not in broker._channels
    assert second in broker._channels

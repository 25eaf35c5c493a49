"""
Tests for the polling live feed.

The broadcaster gets a manual clock and sleep so every poll is driven by
the test; nothing here waits on wall time.
"""
import time

import pytest

from crimelab.models.domain.activity import ActivityEvent, ActivityType
from crimelab.services.activity_broadcaster import ActivityBroadcaster
from crimelab.services.activity_recorder import ActivityRecorder

from fakes import FakeRedis


class ManualClock:
    """Monotonic clock that only moves when the feed sleeps."""

    def __init__(self):
        self.now = 0.0
        self.hooks = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.now += seconds
        if self.hooks:
            self.hooks.pop(0)()


def view(case_id, session_id='s1'):
    return ActivityEvent(
        type=ActivityType.CASE_VIEWED,
        data={'case_id': case_id, 'session_id': session_id},
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def broadcaster(recorder, clock):
    return ActivityBroadcaster(
        recorder,
        poll_interval=3.0,
        max_lifetime=300.0,
        batch_size=2,
        clock=clock,
        sleep=clock.sleep,
    )


# =============================================================================
# Delivery
# =============================================================================

@pytest.mark.asyncio
async def test_first_message_is_connected(broadcaster):
    feed = broadcaster.subscribe()

    message = await feed.__anext__()

    assert message['type'] == 'connected'
    assert 'timestamp' in message
    await feed.aclose()


@pytest.mark.asyncio
async def test_events_delivered_in_order_across_batches(broadcaster, recorder, fake_redis):
    feed = broadcaster.subscribe()
    await feed.__anext__()

    fake_redis.advance(1)
    for case_id in range(5):
        await recorder.append(view(case_id))

    messages = [await feed.__anext__() for _ in range(6)]

    assert [m['data']['case_id'] for m in messages[:5]] == [0, 1, 2, 3, 4]
    assert all(m['type'] == 'case_viewed' for m in messages[:5])
    assert messages[5] == {'type': 'connection_count', 'count': 1, 'timestamp': messages[5]['timestamp']}
    await feed.aclose()


@pytest.mark.asyncio
async def test_no_event_is_delivered_twice(broadcaster, recorder, fake_redis):
    feed = broadcaster.subscribe()
    await feed.__anext__()

    fake_redis.advance(1)
    await recorder.append(view(1))
    first_poll = [await feed.__anext__() for _ in range(2)]

    # Nothing new: only the connection count
    second_poll = await feed.__anext__()

    fake_redis.advance(1)
    await recorder.append(view(2))
    third_poll = [await feed.__anext__() for _ in range(2)]

    assert first_poll[0]['data']['case_id'] == 1
    assert second_poll['type'] == 'connection_count'
    assert third_poll[0]['data']['case_id'] == 2
    await feed.aclose()


@pytest.mark.asyncio
async def test_events_before_connect_are_not_replayed(broadcaster, recorder, fake_redis):
    fake_redis.advance(-10)
    await recorder.append(view(99))
    fake_redis.advance(10)

    feed = broadcaster.subscribe()
    await feed.__anext__()
    message = await feed.__anext__()

    assert message['type'] == 'connection_count'
    await feed.aclose()


@pytest.mark.asyncio
async def test_connection_count_tracks_distinct_sessions(broadcaster, recorder, fake_redis):
    feed = broadcaster.subscribe()
    await feed.__anext__()

    fake_redis.advance(1)
    await recorder.append(view(1, session_id='a'))
    await recorder.append(view(2, session_id='b'))
    await recorder.append(view(3, session_id='a'))

    messages = [await feed.__anext__() for _ in range(4)]

    assert messages[3]['type'] == 'connection_count'
    assert messages[3]['count'] == 2
    await feed.aclose()


# =============================================================================
# Lifetime
# =============================================================================

@pytest.mark.asyncio
async def test_feed_ends_after_max_lifetime(recorder, clock):
    broadcaster = ActivityBroadcaster(recorder, poll_interval=3.0, max_lifetime=9.0, clock=clock, sleep=clock.sleep)

    messages = [m async for m in broadcaster.subscribe()]

    assert [m['type'] for m in messages] == ['connected', 'connection_count', 'connection_count']
    assert clock.now == 9.0


@pytest.mark.asyncio
async def test_feed_ends_when_observer_disconnects(broadcaster):
    polls = []

    async def is_disconnected():
        polls.append(True)
        return len(polls) > 1

    messages = [m async for m in broadcaster.subscribe(is_disconnected=is_disconnected)]

    assert [m['type'] for m in messages] == ['connected', 'connection_count']


@pytest.mark.asyncio
async def test_read_failure_skips_poll_and_keeps_watermark(broadcaster, recorder, fake_redis, clock):
    feed = broadcaster.subscribe()
    await feed.__anext__()

    fake_redis.advance(1)
    await recorder.append(view(7))
    fake_redis.down = True

    def recover():
        fake_redis.down = False

    clock.hooks = [lambda: None, recover]

    message = await feed.__anext__()

    assert message['type'] == 'case_viewed'
    assert message['data']['case_id'] == 7
    assert clock.now == 6.0
    await feed.aclose()


# =============================================================================
# Watermark
# =============================================================================

@pytest.mark.asyncio
async def test_batch_of_malformed_entries_does_not_stall_feed(broadcaster, recorder, fake_redis):
    feed = broadcaster.subscribe()
    await feed.__anext__()

    # A whole batch (batch_size=2) that cannot be parsed, then a good event
    stream = fake_redis.streams.setdefault('test:activities', [])
    stream.append((f"{fake_redis.now_ms}-0", {'type': 'case_archived', 'data': '{}'}))
    stream.append((f"{fake_redis.now_ms}-1", {'type': 'case_archived', 'data': '{}'}))
    await recorder.append(view(5))

    messages = [await feed.__anext__() for _ in range(2)]

    assert messages[0]['type'] == 'case_viewed'
    assert messages[0]['data']['case_id'] == 5
    assert messages[1]['type'] == 'connection_count'

    # Nothing is re-scanned on the next poll
    assert (await feed.__anext__())['type'] == 'connection_count'
    await feed.aclose()


@pytest.mark.asyncio
async def test_feed_follows_log_clock_behind_host_clock(clock):
    behind = FakeRedis(now_ms=int(time.time() * 1000) - 60_000)
    recorder = ActivityRecorder("redis://unused", stream_key="test:activities")
    recorder.redis = behind
    await recorder.append(view(1))

    broadcaster = ActivityBroadcaster(recorder, batch_size=2, clock=clock, sleep=clock.sleep)
    feed = broadcaster.subscribe()
    await feed.__anext__()

    await recorder.append(view(2))
    message = await feed.__anext__()

    assert message['type'] == 'case_viewed'
    assert message['data']['case_id'] == 2
    await feed.aclose()


@pytest.mark.asyncio
async def test_unreadable_log_head_falls_back_to_now(broadcaster, recorder, fake_redis):
    fake_redis.down = True
    feed = broadcaster.subscribe()

    assert (await feed.__anext__())['type'] == 'connected'

    fake_redis.down = False
    fake_redis.advance(1)
    await recorder.append(view(3))
    message = await feed.__anext__()

    assert message['data']['case_id'] == 3
    await feed.aclose()

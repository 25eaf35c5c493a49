"""
Live activity feed (polling)

Each observer connection runs its own loop: every poll interval it reads the
activity log forward from a watermark held in the loop's closure, yields the
new events oldest-first, advances the watermark past every entry it scanned,
and yields a synthetic connection_count. The watermark starts at the newest
entry id in the log, so app hosts and Redis need not agree on the time.
The loop ends after a fixed lifetime so clients reconnect.

Polling instead of push keeps the feed working on stores without change
notifications. Nothing is stored server-side per connection.
"""
import asyncio
import time
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, Dict, Any, Optional

from crimelab.models.domain.activity import ActivityType
from crimelab.services.activity_recorder import ActivityRecorder
from crimelab.services.errors import ActivityReadError

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ActivityBroadcaster:
    """
    Cursor-based feed of activity events.

    Ordering: non-decreasing timestamps per observer, no duplicates across
    polls (dedupe is the watermark advance, not event identity).
    Delivery: at-least-once while the connection lives.
    """

    def __init__(
        self,
        recorder: ActivityRecorder,
        poll_interval: float = 3.0,
        max_lifetime: float = 300.0,
        batch_size: int = 10,
        session_window: int = 30,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.recorder = recorder
        self.poll_interval = poll_interval
        self.max_lifetime = max_lifetime
        self.batch_size = batch_size
        self.session_window = session_window
        self._clock = clock
        self._sleep = sleep

    async def subscribe(
        self,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield feed messages for one observer.

        Args:
            is_disconnected: Checked before every poll; stop when it returns True

        Yields:
            {'type': 'connected', ...} first, then activity dicts and
            {'type': 'connection_count', 'count': n, ...} every interval
        """
        watermark = await self._initial_watermark()
        started = self._clock()

        yield {'type': ActivityType.CONNECTED.value, 'timestamp': _now_iso()}

        while True:
            await self._sleep(self.poll_interval)

            if self._clock() - started >= self.max_lifetime:
                logger.debug("Feed connection reached max lifetime")
                break
            if is_disconnected is not None and await is_disconnected():
                logger.debug("Feed observer disconnected")
                break

            try:
                while True:
                    page = await self.recorder.read_after(watermark, limit=self.batch_size)
                    for event in page.events:
                        yield event.to_dict()
                    watermark = page.cursor
                    if page.scanned < self.batch_size:
                        break

                count = await self.recorder.active_sessions(self.session_window)
            except ActivityReadError as e:
                # Next poll resumes from the same watermark
                logger.warning(f"Feed poll failed: {e}")
                continue

            yield {
                'type': ActivityType.CONNECTION_COUNT.value,
                'count': count,
                'timestamp': _now_iso(),
            }

    async def _initial_watermark(self) -> str:
        """Newest entry id in the log, so the feed starts from the log's own clock."""
        try:
            return await self.recorder.last_id()
        except ActivityReadError as e:
            logger.warning(f"Feed could not read log head, starting from now: {e}")
            return self.recorder.cursor_at()

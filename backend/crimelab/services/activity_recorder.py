"""
Redis-backed activity log

Uses a single Redis Stream (XADD / XRANGE):
- Entry ids are '<unix-ms>-<seq>', assigned by Redis, strictly increasing.
  They double as event timestamps and as feed cursors.
- Retention is left to Redis: every XADD trims entries older than the
  retention window (MINID, approximate).

Producers only append; nothing edits or deletes an individual entry.
"""
import time
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List

import redis.asyncio as redis
from redis.exceptions import RedisError

from crimelab.models.domain.activity import ActivityEvent, datetime_to_stream_id
from crimelab.services.errors import ActivityWriteError, ActivityReadError

logger = logging.getLogger(__name__)


EMPTY_STREAM_ID = '0-0'


@dataclass
class ActivityPage:
    """
    One forward read of the log.

    cursor is the id of the last entry scanned, parsed or not, so a page of
    malformed entries still moves the reader past them.
    """
    events: List[ActivityEvent] = field(default_factory=list)
    cursor: str = EMPTY_STREAM_ID
    scanned: int = 0


class ActivityRecorder:
    """
    Append-only, expiring, time-ordered activity log.

    Writers never wait on readers: append is a single XADD.
    """

    DEFAULT_STREAM_KEY = 'crimelab:activities'

    def __init__(
        self,
        redis_url: str,
        stream_key: str = DEFAULT_STREAM_KEY,
        retention_seconds: int = 7 * 24 * 3600,
    ):
        self.redis = None
        self.redis_url = redis_url
        self.stream_key = stream_key
        self.retention_seconds = retention_seconds

    async def connect(self):
        """Initialize Redis connection"""
        self.redis = await redis.from_url(self.redis_url, decode_responses=True)

    async def close(self):
        """Close Redis connection"""
        if self.redis:
            await self.redis.close()

    # =========================================================================
    # WRITE
    # =========================================================================

    async def append(self, event: ActivityEvent) -> ActivityEvent:
        """
        Durably append an event.

        Returns:
            The same event with stream_id and timestamp filled in

        Raises:
            ActivityWriteError: The event was not written
        """
        if not event.type.is_persisted:
            raise ValueError(f"{event.type.value} is a feed-only message and cannot be recorded")

        cutoff_ms = int(time.time() * 1000) - self.retention_seconds * 1000
        try:
            stream_id = await self.redis.xadd(
                self.stream_key,
                event.to_stream_fields(),
                minid=f"{cutoff_ms}-0",
                approximate=True,
            )
        except (RedisError, OSError) as e:
            raise ActivityWriteError(f"Failed to record {event.type.value} activity: {e}") from e

        stored = ActivityEvent.from_stream(stream_id, event.to_stream_fields())
        event.stream_id = stored.stream_id
        event.timestamp = stored.timestamp

        logger.debug(f"Activity logged: {event.type.value} ({stream_id})")
        return event

    async def clear(self) -> int:
        """Drop the whole log (demo reset only). Returns entries removed."""
        try:
            removed = await self.redis.xlen(self.stream_key)
            await self.redis.delete(self.stream_key)
        except (RedisError, OSError) as e:
            raise ActivityWriteError(f"Failed to clear activity log: {e}") from e
        return removed

    # =========================================================================
    # READ
    # =========================================================================

    @staticmethod
    def cursor_at(ts: Optional[datetime] = None) -> str:
        """Cursor positioned at an instant (default: now)."""
        return datetime_to_stream_id(ts or datetime.now(timezone.utc))

    async def last_id(self) -> str:
        """Id of the newest entry, or '0-0' for an empty log."""
        try:
            rows = await self.redis.xrevrange(self.stream_key, count=1)
        except (RedisError, OSError) as e:
            raise ActivityReadError(f"Failed to read activity log: {e}") from e
        return rows[0][0] if rows else EMPTY_STREAM_ID

    async def read_after(self, cursor: str, limit: int = 10) -> ActivityPage:
        """
        Entries strictly after the cursor, oldest first.

        Args:
            cursor: Stream id watermark (exclusive)
            limit: Max entries to scan

        Returns:
            ActivityPage; page.cursor is the next watermark (unchanged when
            nothing was scanned) and page.scanned < limit means caught up
        """
        rows = await self._xrange_rows(f"({cursor}", "+", count=limit)
        return ActivityPage(
            events=self._parse(rows),
            cursor=rows[-1][0] if rows else cursor,
            scanned=len(rows),
        )

    async def read_window(self, since: datetime, until: Optional[datetime] = None) -> List[ActivityEvent]:
        """All events with since <= timestamp (< until, if given), oldest first."""
        upper = f"({datetime_to_stream_id(until)}" if until else "+"
        return await self._xrange(datetime_to_stream_id(since), upper)

    async def recent(self, limit: int = 20) -> List[ActivityEvent]:
        """Newest events first."""
        try:
            rows = await self.redis.xrevrange(self.stream_key, count=limit)
        except (RedisError, OSError) as e:
            raise ActivityReadError(f"Failed to read activity log: {e}") from e
        return self._parse(rows)

    async def active_sessions(self, window_seconds: int = 30) -> int:
        """Distinct session ids with any activity in the trailing window."""
        since = datetime.fromtimestamp(time.time() - window_seconds, tz=timezone.utc)
        events = await self.read_window(since)
        return len({e.session_id for e in events if e.session_id})

    async def _xrange(self, lower: str, upper: str, count: Optional[int] = None) -> List[ActivityEvent]:
        return self._parse(await self._xrange_rows(lower, upper, count=count))

    async def _xrange_rows(self, lower: str, upper: str, count: Optional[int] = None):
        try:
            return await self.redis.xrange(self.stream_key, min=lower, max=upper, count=count)
        except (RedisError, OSError) as e:
            raise ActivityReadError(f"Failed to read activity log: {e}") from e

    def _parse(self, rows) -> List[ActivityEvent]:
        events = []
        for stream_id, fields in rows:
            try:
                events.append(ActivityEvent.from_stream(stream_id, fields))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed activity {stream_id}: {e}")
        return events

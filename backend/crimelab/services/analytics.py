"""
Activity analytics

Rollups recomputed from the activity log on every request. Nothing is
cached or persisted; the log is the only source.

Windows:
- top_cases / top_evidence / activity_types: trailing 24h
- activity_timeline: trailing 1h in 10-minute buckets
"""
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Any, Optional

from crimelab.models.domain.activity import ActivityEvent, ActivityType
from crimelab.services.activity_recorder import ActivityRecorder
from crimelab.services.errors import ActivityReadError

logger = logging.getLogger(__name__)


def top_cases(events: List[ActivityEvent], limit: int = 5) -> List[Dict[str, Any]]:
    """Most viewed cases, by case_viewed count."""
    views = Counter()
    last_viewed: Dict[Any, datetime] = {}
    for event in events:
        if event.type != ActivityType.CASE_VIEWED:
            continue
        case_id = event.data.get('case_id')
        if case_id is None:
            continue
        views[case_id] += 1
        if event.timestamp and (case_id not in last_viewed or event.timestamp > last_viewed[case_id]):
            last_viewed[case_id] = event.timestamp

    ranked = sorted(views.items(), key=lambda item: (-item[1], str(item[0])))[:limit]
    return [
        {
            'case_id': case_id,
            'views': count,
            'last_viewed': last_viewed[case_id].isoformat() if case_id in last_viewed else None,
        }
        for case_id, count in ranked
    ]


def top_evidence(events: List[ActivityEvent], limit: int = 10) -> List[Dict[str, Any]]:
    """Evidence most often added to carts."""
    adds = Counter(
        event.data['evidence_id']
        for event in events
        if event.type == ActivityType.CART_ADD and event.data.get('evidence_id') is not None
    )
    ranked = sorted(adds.items(), key=lambda item: (-item[1], str(item[0])))[:limit]
    return [{'evidence_id': evidence_id, 'cart_adds': count} for evidence_id, count in ranked]


def activity_types(events: List[ActivityEvent]) -> List[Dict[str, Any]]:
    counts = Counter(event.type.value for event in events)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [{'type': type_name, 'count': count} for type_name, count in ranked]


def activity_timeline(
    events: List[ActivityEvent],
    since: datetime,
    bucket_seconds: int = 600,
) -> List[Dict[str, Any]]:
    """Event counts per fixed bucket (aligned to the epoch), oldest first."""
    buckets = Counter()
    for event in events:
        if event.timestamp is None or event.timestamp < since:
            continue
        epoch = int(event.timestamp.timestamp())
        buckets[epoch - epoch % bucket_seconds] += 1

    return [
        {'time': datetime.fromtimestamp(start, tz=timezone.utc).isoformat(), 'count': count}
        for start, count in sorted(buckets.items())
    ]


class AnalyticsAggregator:
    """
    Read-only rollups over the activity log.

    Never raises on a read failure: returns the empty shape instead, with
    the error message attached.
    """

    def __init__(
        self,
        recorder: ActivityRecorder,
        window_seconds: int = 24 * 3600,
        timeline_seconds: int = 3600,
        bucket_seconds: int = 600,
        top_cases_limit: int = 5,
        top_evidence_limit: int = 10,
        recent_limit: int = 20,
    ):
        self.recorder = recorder
        self.window_seconds = window_seconds
        self.timeline_seconds = timeline_seconds
        self.bucket_seconds = bucket_seconds
        self.top_cases_limit = top_cases_limit
        self.top_evidence_limit = top_evidence_limit
        self.recent_limit = recent_limit

    async def summary(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        day_ago = now - timedelta(seconds=self.window_seconds)
        hour_ago = now - timedelta(seconds=self.timeline_seconds)

        try:
            events = await self.recorder.read_window(day_ago)
            recent = await self.recorder.recent(self.recent_limit)
        except ActivityReadError as e:
            logger.warning(f"Analytics unavailable: {e}")
            return self.empty(now, error=str(e))

        return {
            'recent_activities': [event.to_dict() for event in recent],
            'top_cases': top_cases(events, self.top_cases_limit),
            'top_evidence': top_evidence(events, self.top_evidence_limit),
            'activity_timeline': activity_timeline(events, hour_ago, self.bucket_seconds),
            'activity_types': activity_types(events),
            'generated_at': now.isoformat(),
        }

    @staticmethod
    def empty(now: datetime, error: Optional[str] = None) -> Dict[str, Any]:
        result = {
            'recent_activities': [],
            'top_cases': [],
            'top_evidence': [],
            'activity_timeline': [],
            'activity_types': [],
            'generated_at': now.isoformat(),
        }
        if error:
            result['error'] = error
        return result

"""
Activity event domain model

Activity events are the live heartbeat of the lab: every case view, cart
interaction, checkout and solve is appended to a time-ordered log that the
live feed and the analytics rollups read from.

Storage: Redis Stream (one entry per event, entry id doubles as the timestamp)
"""
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from enum import Enum


class ActivityType(str, Enum):
    """Activity event types"""
    CASE_VIEWED = "case_viewed"
    CART_ADD = "cart_add"
    CART_REMOVE = "cart_remove"
    CHECKOUT_CREATED = "checkout_created"
    CASE_SOLVED = "case_solved"

    # Synthetic feed messages, never written to the log
    CONNECTED = "connected"
    CONNECTION_COUNT = "connection_count"

    @property
    def is_persisted(self) -> bool:
        return self not in (ActivityType.CONNECTED, ActivityType.CONNECTION_COUNT)


# Types a browser client may post directly
CLIENT_ACTIVITY_TYPES = frozenset({
    ActivityType.CASE_VIEWED,
    ActivityType.CART_ADD,
    ActivityType.CART_REMOVE,
})


def stream_id_to_datetime(stream_id: str) -> datetime:
    """Redis stream ids are '<unix-ms>-<seq>'."""
    millis = int(stream_id.split('-', 1)[0])
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def datetime_to_stream_id(ts: datetime) -> str:
    """Lowest stream id at the given instant."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return f"{int(ts.timestamp() * 1000)}-0"


@dataclass
class ActivityEvent:
    """
    Typed, timestamped, append-only activity record.

    Payload keys depend on type:
    - case_viewed: case_id, session_id
    - cart_add / cart_remove: evidence_id, session_id
    - checkout_created: case_ids, evidence_count, checkout_id
    - case_solved: case_id, case_ids, order_id, total_price
    """
    type: ActivityType
    data: Dict[str, Any] = field(default_factory=dict)
    worker_id: str = "unknown"

    # Assigned by the store on append
    stream_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = ActivityType(self.type)

    @property
    def session_id(self) -> Optional[str]:
        return self.data.get('session_id')

    def to_stream_fields(self) -> Dict[str, str]:
        """Flatten for XADD (stream field values must be strings)."""
        return {
            'type': self.type.value,
            'worker_id': self.worker_id,
            'data': json.dumps(self.data, default=str),
        }

    @classmethod
    def from_stream(cls, stream_id: str, fields: Dict[str, str]) -> 'ActivityEvent':
        """Rebuild an event from an XRANGE entry."""
        raw_data = fields.get('data') or '{}'
        try:
            data = json.loads(raw_data)
        except json.JSONDecodeError:
            data = {'raw': raw_data}

        return cls(
            type=ActivityType(fields['type']),
            data=data if isinstance(data, dict) else {'value': data},
            worker_id=fields.get('worker_id', 'unknown'),
            stream_id=stream_id,
            timestamp=stream_id_to_datetime(stream_id),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Feed/analytics representation."""
        return {
            'type': self.type.value,
            'data': self.data,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'worker_id': self.worker_id,
        }

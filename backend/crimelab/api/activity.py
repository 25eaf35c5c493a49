"""
Live activity API

Endpoints:
- POST /api/activity - record a client interaction (view, cart add/remove)
- GET /api/activity/stream - Server-Sent Events feed (polling, 5 min lifetime)
- GET /api/activity/analytics - rollups over the last 24h
"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from crimelab.config import Settings
from crimelab.models.api.activity import ActivityCreate
from crimelab.models.domain.activity import ActivityEvent, CLIENT_ACTIVITY_TYPES
from crimelab.services.activity_broadcaster import ActivityBroadcaster
from crimelab.services.activity_recorder import ActivityRecorder
from crimelab.services.analytics import AnalyticsAggregator
from crimelab.services.errors import ActivityWriteError
from .dependencies import WORKER_ID, get_recorder, get_settings_dep

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/activity", tags=["Activity"])


@router.post("")
async def post_activity(
    activity: ActivityCreate,
    recorder: ActivityRecorder = Depends(get_recorder),
):
    if activity.type not in CLIENT_ACTIVITY_TYPES:
        allowed = ", ".join(sorted(t.value for t in CLIENT_ACTIVITY_TYPES))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid activity type. Must be one of: {allowed}",
        )

    try:
        event = await recorder.append(ActivityEvent(
            type=activity.type,
            data=activity.payload(),
            worker_id=WORKER_ID,
        ))
    except ActivityWriteError as e:
        logger.error(f"Error logging activity: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    logger.info(f"Activity logged: {event.type.value}")
    return {'success': True, 'timestamp': event.timestamp.isoformat()}


@router.get("/stream")
async def activity_stream(
    request: Request,
    recorder: ActivityRecorder = Depends(get_recorder),
    settings: Settings = Depends(get_settings_dep),
):
    """SSE endpoint for live updates"""
    broadcaster = ActivityBroadcaster(
        recorder,
        poll_interval=settings.feed_poll_interval_seconds,
        max_lifetime=settings.feed_max_lifetime_seconds,
        batch_size=settings.feed_batch_size,
        session_window=settings.active_session_window_seconds,
    )

    async def generate():
        async for message in broadcaster.subscribe(is_disconnected=request.is_disconnected):
            yield f"data: {json.dumps(message, default=str)}\n\n"

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )


@router.get("/analytics")
async def activity_analytics(
    recorder: ActivityRecorder = Depends(get_recorder),
    settings: Settings = Depends(get_settings_dep),
):
    aggregator = AnalyticsAggregator(
        recorder,
        window_seconds=settings.analytics_window_seconds,
        timeline_seconds=settings.analytics_timeline_seconds,
        bucket_seconds=settings.analytics_timeline_bucket_seconds,
    )
    return await aggregator.summary()

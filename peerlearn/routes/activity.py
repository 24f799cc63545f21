"""Activity feed and SSE stream endpoints."""

import asyncio

from fastapi import APIRouter, Depends, Query, Request
from sse_starlette.sse import EventSourceResponse

from peerlearn.auth import CurrentUser, get_current_user
from peerlearn.errors import UnavailableError
from peerlearn.logging_config import get_logger
from peerlearn.redis import activity_channel, get_redis
from peerlearn.routes.deps import get_activity_log
from peerlearn.schemas import ActivityEntry
from peerlearn.services.activity_service import ActivityLog
from peerlearn.services.common import store_errors

logger = get_logger(__name__)
router = APIRouter(prefix="/api/activity", tags=["activity"])


@router.get("", response_model=list[ActivityEntry])
async def list_activity(
    type: str | None = Query(None, description="challenge, teachback, feedback, info or All"),
    q: str | None = Query(None, max_length=200),
    limit: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    activity: ActivityLog = Depends(get_activity_log),
):
    """The caller's activity feed, newest first."""
    with store_errors("Couldn't load recent activity."):
        return await activity.list_for_user(user.uid, type=type, q=q, limit=limit)


@router.get("/stream")
async def activity_stream(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    """SSE stream of the caller's new activity via Redis pub/sub."""
    redis = get_redis()
    if redis is None:
        raise UnavailableError("Live activity is not available right now.")
    channel = activity_channel(user.uid)

    async def event_generator():
        pubsub = redis.pubsub()
        await pubsub.subscribe(channel)
        logger.info("activity_stream_opened", user_id=user.uid)

        try:
            while True:
                if await request.is_disconnected():
                    break

                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message and message["type"] == "message":
                    yield {
                        "event": "activity",
                        "data": message["data"],
                    }

                await asyncio.sleep(0.1)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            logger.info("activity_stream_closed", user_id=user.uid)

    return EventSourceResponse(event_generator())

"""Peer feedback queue endpoints."""

from fastapi import APIRouter, Depends, Query, status

from peerlearn.auth import CurrentUser, get_current_user
from peerlearn.routes.deps import get_feedback_service
from peerlearn.schemas import (
    EnqueueFeedbackRequest,
    FeedbackQueueItem,
    FeedbackResponse,
    SubmitFeedbackRequest,
)
from peerlearn.services.feedback_service import FeedbackService

router = APIRouter(prefix="/api/feedback", tags=["feedback"])


@router.get("", response_model=list[FeedbackQueueItem])
async def list_feedback(
    q: str | None = Query(None, max_length=200),
    limit: int | None = Query(None, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
):
    """The caller's review queue, newest first."""
    return await service.list_for_reviewer(user, q=q, limit=limit)


@router.post("", response_model=FeedbackQueueItem, status_code=status.HTTP_201_CREATED)
async def enqueue_feedback(
    body: EnqueueFeedbackRequest,
    user: CurrentUser = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
):
    """Queue a review for a teammate."""
    return await service.enqueue(body.reviewer_id, body.learner, body.title, body.points)


@router.get("/{item_id}", response_model=FeedbackQueueItem)
async def get_feedback(
    item_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
):
    return await service.load_for_review(user, item_id)


@router.post("/{item_id}/submit", response_model=FeedbackResponse)
async def submit_feedback(
    item_id: str,
    body: SubmitFeedbackRequest,
    user: CurrentUser = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
):
    item = await service.submit(user, item_id, body.rating, body.comment)
    return FeedbackResponse(item=item, next="/dashboard")

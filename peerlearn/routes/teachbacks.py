"""Teach-back endpoints for the assignee."""

from fastapi import APIRouter, Depends, Query

from peerlearn.auth import CurrentUser, get_current_user
from peerlearn.routes.deps import get_teachback_service
from peerlearn.schemas import SaveProgressRequest, Teachback, TeachbackResponse
from peerlearn.services.teachback_service import TeachbackService

router = APIRouter(prefix="/api/teachbacks", tags=["teachbacks"])


@router.get("", response_model=list[Teachback])
async def list_teachbacks(
    limit: int | None = Query(None, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    service: TeachbackService = Depends(get_teachback_service),
):
    """Teach-backs assigned to the caller."""
    return await service.list_assigned(user, limit=limit)


@router.get("/{teachback_id}", response_model=Teachback)
async def get_teachback(
    teachback_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: TeachbackService = Depends(get_teachback_service),
):
    return await service.load_for_view(user, teachback_id)


@router.post("/{teachback_id}/start", response_model=TeachbackResponse)
async def start_teachback(
    teachback_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: TeachbackService = Depends(get_teachback_service),
):
    teachback = await service.start(user, teachback_id)
    return TeachbackResponse(teachback=teachback, next=f"/teachbacks/{teachback.id}")


@router.post("/{teachback_id}/progress", response_model=TeachbackResponse)
async def save_teachback_progress(
    teachback_id: str,
    body: SaveProgressRequest,
    user: CurrentUser = Depends(get_current_user),
    service: TeachbackService = Depends(get_teachback_service),
):
    teachback = await service.save_progress(user, teachback_id, body.notes)
    return TeachbackResponse(teachback=teachback)


@router.post("/{teachback_id}/complete", response_model=TeachbackResponse)
async def complete_teachback(
    teachback_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: TeachbackService = Depends(get_teachback_service),
):
    teachback = await service.complete(user, teachback_id)
    return TeachbackResponse(teachback=teachback, next="/dashboard")

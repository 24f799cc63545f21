"""Challenge endpoints: create with teach-back assignment, then the lifecycle."""

from fastapi import APIRouter, Depends, Query, status

from peerlearn.auth import CurrentUser, get_current_user
from peerlearn.routes.deps import get_challenge_service
from peerlearn.schemas import (
    Challenge,
    ChallengeCreatedResponse,
    ChallengeResponse,
    CreateChallengeRequest,
    SaveProgressRequest,
)
from peerlearn.services.challenge_service import ChallengeService

router = APIRouter(prefix="/api/challenges", tags=["challenges"])


@router.post("", response_model=ChallengeCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_challenge(
    body: CreateChallengeRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Create an open challenge and assign its teach-back to a random teammate."""
    return await service.create_challenge(user, body)


@router.get("", response_model=list[Challenge])
async def list_challenges(
    q: str | None = Query(None, max_length=200),
    limit: int | None = Query(None, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    """The caller's challenges, soonest due first."""
    return await service.list_mine(user, q=q, limit=limit)


@router.get("/{challenge_id}", response_model=Challenge)
async def get_challenge(
    challenge_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    return await service.load_for_view(user, challenge_id)


@router.post("/{challenge_id}/accept", response_model=ChallengeResponse)
async def accept_challenge(
    challenge_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    challenge = await service.accept(user, challenge_id)
    return ChallengeResponse(challenge=challenge)


@router.post("/{challenge_id}/start", response_model=ChallengeResponse)
async def start_challenge(
    challenge_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    challenge = await service.start(user, challenge_id)
    return ChallengeResponse(challenge=challenge, next=f"/challenges/{challenge.id}")


@router.post("/{challenge_id}/progress", response_model=ChallengeResponse)
async def save_challenge_progress(
    challenge_id: str,
    body: SaveProgressRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    challenge = await service.save_progress(user, challenge_id, body.notes)
    return ChallengeResponse(challenge=challenge)


@router.post("/{challenge_id}/complete", response_model=ChallengeResponse)
async def complete_challenge(
    challenge_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    challenge = await service.complete(user, challenge_id)
    return ChallengeResponse(challenge=challenge, next="/dashboard")

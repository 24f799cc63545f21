"""Profile, dashboard, portfolio and leaderboard endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends, Query

from peerlearn.auth import CurrentUser, get_current_user
from peerlearn.routes.deps import get_progress_service
from peerlearn.schemas import (
    DashboardResponse,
    LeaderboardEntry,
    PortfolioResponse,
    ProfileSummary,
)
from peerlearn.services.progress_service import ProgressService

router = APIRouter(prefix="/api", tags=["progress"])


@router.get("/profiles/me", response_model=ProfileSummary)
async def my_profile(
    user: CurrentUser = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
):
    """XP, streak, badges and level for the caller."""
    return await service.profile_summary(user)


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    user: CurrentUser = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
):
    """Dashboard sections; a failed section is reported under ``errors``."""
    return await service.dashboard(user)


@router.get("/portfolio", response_model=PortfolioResponse)
async def portfolio(
    user: CurrentUser = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
):
    return await service.portfolio(user)


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
async def leaderboard(
    sort: Literal["xp", "streak"] = Query("xp"),
    direction: Literal["asc", "desc"] = Query("desc"),
    q: str | None = Query(None, max_length=200),
    limit: int | None = Query(None, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
):
    return await service.leaderboard(sort=sort, direction=direction, q=q, limit=limit)

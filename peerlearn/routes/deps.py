"""Route dependencies: services built once at startup and kept on app.state."""

from fastapi import Request

from peerlearn.services.activity_service import ActivityLog
from peerlearn.services.challenge_service import ChallengeService
from peerlearn.services.feedback_service import FeedbackService
from peerlearn.services.progress_service import ProgressService
from peerlearn.services.teachback_service import TeachbackService


def get_challenge_service(request: Request) -> ChallengeService:
    return request.app.state.challenge_service


def get_teachback_service(request: Request) -> TeachbackService:
    return request.app.state.teachback_service


def get_feedback_service(request: Request) -> FeedbackService:
    return request.app.state.feedback_service


def get_progress_service(request: Request) -> ProgressService:
    return request.app.state.progress_service


def get_activity_log(request: Request) -> ActivityLog:
    return request.app.state.activity_log

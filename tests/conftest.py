"""Shared pytest fixtures for PeerLearn tests.

Provides:
- A fixed, advanceable clock
- An in-memory document store and activity log
- Signed-in users and the workflow services wired to them
"""

import random
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from peerlearn.auth import CurrentUser
from peerlearn.config import Settings
from peerlearn.store import PROFILES, MemoryDocumentStore


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ===========================================
# CORE FIXTURES
# ===========================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        store_backend="memory",
        redis_url="",
        jwt_secret_key="test-secret-key-0123456789abcdefgh",
        log_format="console",
    )


@pytest.fixture
def store(clock) -> MemoryDocumentStore:
    return MemoryDocumentStore(clock=clock)


@pytest_asyncio.fixture
async def activity(store):
    from peerlearn.services.activity_service import ActivityLog

    log = ActivityLog(store, redis_getter=lambda: None)
    log.start()
    yield log
    await log.stop()


# ===========================================
# USERS
# ===========================================


@pytest.fixture
def alice() -> CurrentUser:
    return CurrentUser(uid="alice", display_name="Alice Liddell", email="alice@example.com")


@pytest.fixture
def bob() -> CurrentUser:
    return CurrentUser(uid="bob", display_name="Bob Builder", email="bob@example.com")


@pytest.fixture
def carol() -> CurrentUser:
    return CurrentUser(uid="carol", display_name="Carol Danvers")


@pytest_asyncio.fixture
async def profiles(store, alice, bob, carol):
    """Profiles for all three users."""
    await store.create(PROFILES, {"id": alice.uid, "display_name": alice.display_name, "xp": 1200, "streak": 3})
    await store.create(PROFILES, {"id": bob.uid, "display_name": bob.display_name, "xp": 450, "streak": 7})
    await store.create(PROFILES, {"id": carol.uid, "display_name": carol.display_name, "xp": 900, "streak": 0})
    return [alice, bob, carol]


# ===========================================
# SERVICES
# ===========================================


@pytest.fixture
def challenge_service(store, activity, settings, clock):
    from peerlearn.services.challenge_service import ChallengeService

    return ChallengeService(store, activity, settings, clock=clock, rng=random.Random(42))


@pytest.fixture
def teachback_service(store, activity, settings, clock):
    from peerlearn.services.teachback_service import TeachbackService

    return TeachbackService(store, activity, settings, clock=clock)


@pytest.fixture
def feedback_service(store, activity, settings, clock):
    from peerlearn.services.feedback_service import FeedbackService

    return FeedbackService(store, activity, settings, clock=clock)


@pytest.fixture
def progress_service(store, activity, settings, clock):
    from peerlearn.services.progress_service import ProgressService

    return ProgressService(store, activity, settings, clock=clock)

"""Seed script: demo profiles, a review queue and a couple of live challenges.

Usage:
    python -m peerlearn.seed
"""

import asyncio
import random

from peerlearn.auth import CurrentUser, create_access_token
from peerlearn.config import get_settings
from peerlearn.database import close_db
from peerlearn.logging_config import configure_logging, get_logger
from peerlearn.schemas import CreateChallengeRequest
from peerlearn.services.activity_service import ActivityLog
from peerlearn.services.challenge_service import ChallengeService
from peerlearn.services.feedback_service import FeedbackService
from peerlearn.store import PROFILES, DocumentStore, create_store

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Demo data
# ---------------------------------------------------------------------------

PROFILES_DATA = [
    {"id": "ada-lovelace", "display_name": "Ada Lovelace", "xp": 1240, "streak": 9, "badges": ["First Teach-back", "Reviewer"]},
    {"id": "alan-turing", "display_name": "Alan Turing", "xp": 860, "streak": 4, "badges": ["First Teach-back"]},
    {"id": "grace-hopper", "display_name": "Grace Hopper", "xp": 1510, "streak": 12, "badges": ["Streak x10"]},
    {"id": "katherine-johnson", "display_name": "Katherine Johnson", "xp": 430, "streak": 2, "badges": []},
    {"id": "edsger-dijkstra", "display_name": None, "xp": 95, "streak": 0, "badges": []},
]

FEEDBACK_DATA = [
    {"reviewer": "ada-lovelace", "learner": "Alan Turing", "title": "Explain closures with a counter", "points": 15},
    {"reviewer": "ada-lovelace", "learner": "Grace Hopper", "title": "Binary search walkthrough", "points": 10},
    {"reviewer": "alan-turing", "learner": "Katherine Johnson", "title": "Big-O of nested loops", "points": 10},
    {"reviewer": "grace-hopper", "learner": "Ada Lovelace", "title": "SQL joins in plain words", "points": 20},
]

CHALLENGES_DATA = [
    {
        "owner": "ada-lovelace",
        "request": {"title": "Recursion vs iteration", "topic": "Algorithms", "level": "Intermediate", "days": 5,
                    "prompt": "Teach the difference with a factorial and a tree walk."},
    },
    {
        "owner": "grace-hopper",
        "request": {"title": "What a compiler does", "topic": "Systems", "level": "Beginner", "days": 3},
    },
]


async def seed(store: DocumentStore, rng: random.Random | None = None) -> dict[str, int]:
    """Write the demo data into ``store`` and return how much was created."""
    settings = get_settings()
    activity = ActivityLog(store, maxsize=settings.activity_queue_size)
    activity.start()
    challenges = ChallengeService(store, activity, settings, rng=rng or random.Random(7))
    feedback = FeedbackService(store, activity, settings)

    for profile in PROFILES_DATA:
        await store.create(PROFILES, dict(profile))

    for item in FEEDBACK_DATA:
        await feedback.enqueue(item["reviewer"], item["learner"], item["title"], item["points"])

    by_id = {p["id"]: p for p in PROFILES_DATA}
    teachbacks = 0
    for cdata in CHALLENGES_DATA:
        owner = by_id[cdata["owner"]]
        user = CurrentUser(uid=owner["id"], display_name=owner["display_name"])
        created = await challenges.create_challenge(user, CreateChallengeRequest(**cdata["request"]))
        if created.teachback is not None:
            teachbacks += 1

    await activity.stop()

    counts = {
        "profiles": len(PROFILES_DATA),
        "feedback": len(FEEDBACK_DATA),
        "challenges": len(CHALLENGES_DATA),
        "teachbacks": teachbacks,
    }
    logger.info("seed_complete", **counts)
    return counts


async def main() -> None:
    settings = get_settings()
    configure_logging(level="INFO", json_format=False, service_name=settings.service_name)
    store = await create_store(settings)
    try:
        counts = await seed(store)
    finally:
        await store.close()
        if settings.store_backend == "sql":
            await close_db()

    print("\n" + "=" * 60)
    print("SEED DATA CREATED SUCCESSFULLY")
    print("=" * 60)
    for name, count in counts.items():
        print(f"{name.capitalize()}: {count}")
    print("\nBearer tokens (valid for 1 hour):")
    for profile in PROFILES_DATA:
        user = CurrentUser(uid=profile["id"], display_name=profile["display_name"])
        print(f"  {profile['display_name'] or profile['id']}: {create_access_token(user)}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())

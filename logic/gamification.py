"""
Gamification rules for learner progress: XP, daily streaks and badges.

Every completed activity is worth a flat ``XP_PER_ACTIVITY``. The streak
counts activities that land within ``STREAK_WINDOW`` of the previous one and
resets once more than two windows have passed; in between it is held.
Badges unlock from ``BADGE_THRESHOLDS`` and are never taken away.

The update is a read-then-write against the repository with no locking, so
two simultaneous calls for the same user can both read the same prior row and
one increment is lost. Callers that need strict counts must serialize per user.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from models.progress import Progress
from schemas import ActionState

logger = logging.getLogger(__name__)

XP_PER_ACTIVITY = 10

# Ordered lowest to highest
BADGE_THRESHOLDS = (
    (50, "Learner"),
    (150, "Scholar"),
    (300, "Master"),
)

STREAK_WINDOW = timedelta(hours=24)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def next_streak(prior: Optional[Progress], now: datetime) -> int:
    if prior is None or prior.updated_at is None:
        return 1
    elapsed = now - _as_utc(prior.updated_at)
    if elapsed <= STREAK_WINDOW:
        return (prior.streak or 0) + 1
    if elapsed > STREAK_WINDOW * 2:
        return 1
    return prior.streak or 0


def award_badges(prior_badges: Iterable[str], xp: int) -> List[str]:
    """Return the prior badges plus any newly unlocked ones, in earning order."""
    badges = list(dict.fromkeys(prior_badges or []))
    earned = set(badges)
    for minimum_xp, name in BADGE_THRESHOLDS:
        if xp >= minimum_xp and name not in earned:
            badges.append(name)
            earned.add(name)
    return badges


def record_activity(repo, user_id: str, lesson_id: Optional[str] = None, now: Optional[datetime] = None) -> ActionState:
    """
    Apply one completed activity to the user's latest progress record.

    Reads the most recently updated record, then either updates it in place
    or inserts the user's first one. Returns the stored record in
    ``ActionState.data``; never raises for validation, missing-row or
    storage failures.
    """
    if not user_id or not str(user_id).strip():
        return ActionState.fail("User ID is required")

    now = now or datetime.now(timezone.utc)

    try:
        prior = repo.find_latest_by_user(user_id)

        new_xp = (prior.xp if prior else 0) + XP_PER_ACTIVITY
        new_streak = next_streak(prior, now)
        badges = award_badges(prior.badges if prior else [], new_xp)

        if prior is not None:
            fields = {"xp": new_xp, "streak": new_streak, "badges": badges, "updated_at": now}
            if lesson_id:
                fields["lesson_id"] = lesson_id
            updated = repo.update_by_id(prior.id, fields)
            if updated is None:
                logger.warning("Progress %s vanished before update for user %s", prior.id, user_id)
                return ActionState.fail("Progress record not found")
        else:
            updated = repo.insert(Progress(
                user_id=user_id,
                lesson_id=lesson_id,
                xp=new_xp,
                streak=new_streak,
                badges=badges,
                created_at=now,
                updated_at=now,
            ))
    except SQLAlchemyError:
        logger.exception("Error updating progress with gamification for user %s", user_id)
        repo.rollback()
        return ActionState.fail("Failed to update progress with gamification")

    logger.info("User %s progress: xp=%s streak=%s badges=%s", user_id, updated.xp, updated.streak, updated.badges)
    return ActionState.ok("Progress updated with gamification successfully", updated)


# --------- Plain CRUD ---------
def create_progress(repo, user_id: str, lesson_id: Optional[str] = None) -> ActionState:
    """Open an empty record for a user who has none; XP only ever comes from activities."""
    try:
        if repo.find_latest_by_user(user_id) is not None:
            return ActionState.fail("Progress already exists")
        record = repo.insert(Progress(user_id=user_id, lesson_id=lesson_id, xp=0, streak=0, badges=[]))
    except SQLAlchemyError:
        logger.exception("Error creating progress for user %s", user_id)
        repo.rollback()
        return ActionState.fail("Failed to create progress")
    return ActionState.ok("Progress created successfully", record)


def get_progress_by_user(repo, user_id: str) -> ActionState:
    try:
        records = repo.list_by_user(user_id)
    except SQLAlchemyError:
        logger.exception("Error retrieving progress for user %s", user_id)
        repo.rollback()
        return ActionState.fail("Failed to retrieve progress")
    return ActionState.ok("Progress retrieved successfully", records)


def update_progress(repo, progress_id: str, values: dict, user_id: Optional[str] = None) -> ActionState:
    """
    Overwrite fields of one record; with ``user_id`` set, only the owner's.

    XP may not go down and badges may not be removed.
    """
    try:
        existing = repo.get_by_id(progress_id)
        if existing is None or (user_id is not None and existing.user_id != user_id):
            return ActionState.fail("Progress record not found or unauthorized")
        if "xp" in values and values["xp"] < existing.xp:
            return ActionState.fail("XP cannot decrease")
        if "badges" in values and not set(values["badges"]) >= existing.badge_set:
            return ActionState.fail("Badges cannot be revoked")
        record = repo.update_by_id(progress_id, values)
    except SQLAlchemyError:
        logger.exception("Error updating progress %s", progress_id)
        repo.rollback()
        return ActionState.fail("Failed to update progress")
    if record is None:
        return ActionState.fail("Progress record not found")
    return ActionState.ok("Progress updated successfully", record)

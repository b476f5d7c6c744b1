import logging
from datetime import datetime
from typing import NamedTuple, Optional
from database.models import UserProfile, SubscriptionPlan, utc_now
from nyayaprep import config
from nyayaprep.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)

QUIZ = "quiz"
ASK_TEACHER = "ask_teacher"

# feature -> (counter field, date field) on the profile
FEATURE_FIELDS = {
    QUIZ: ("quiz_count_today", "last_quiz_date"),
    ASK_TEACHER: ("ask_teacher_count", "last_ask_teacher_date"),
}


class QuotaDecision(NamedTuple):
    allowed: bool
    new_count: int


def local_date(moment: datetime):
    """Calendar day of `moment` in the app's timezone."""
    return moment.astimezone(config.LOCAL_TZ).date()


def is_today(moment: Optional[datetime], now: datetime = None) -> bool:
    if moment is None:
        return False
    now = now or utc_now()
    return local_date(moment) == local_date(now)


def limit_for(plan, feature: str) -> Optional[int]:
    """
    Daily cap for `feature` on `plan`. None means unlimited.
    """
    if feature not in FEATURE_FIELDS:
        raise InvalidInputError(f"Unknown feature: {feature}")
    try:
        plan = SubscriptionPlan(plan)
    except ValueError:
        raise InvalidInputError(f"Invalid subscription plan: {plan}")
    return config.PLAN_LIMITS[plan.value][feature]


def usage_today(profile: UserProfile, feature: str, now: datetime = None) -> int:
    """
    Read-only view of today's counter. A counter stamped on another day counts as 0.
    """
    count_field, date_field = FEATURE_FIELDS[feature]
    if not is_today(getattr(profile, date_field), now):
        return 0
    return getattr(profile, count_field) or 0


def remaining_today(profile: UserProfile, feature: str, limit: Optional[int], now: datetime = None) -> Optional[int]:
    if limit is None:
        return None
    return max(0, limit - usage_today(profile, feature, now))


async def check_and_consume(db, profile: UserProfile, feature: str, limit: Optional[int],
                            now: datetime = None) -> QuotaDecision:
    """
    Consumes one unit of today's quota for `feature` if the cap allows it.

    The check and the write are not atomic across requests; two concurrent
    calls can both pass. Storage errors propagate to the caller.
    """
    now = now or utc_now()
    count_field, date_field = FEATURE_FIELDS[feature]
    prior = usage_today(profile, feature, now)

    if limit is not None and prior >= limit:
        logger.info(f"Quota refused for {profile.user_id}: {feature} {prior}/{limit}")
        return QuotaDecision(False, prior)

    if prior == 0 and getattr(profile, count_field):
        logger.info(f"Daily reset of {feature} for {profile.user_id}")

    new_count = prior + 1
    await db.update_user(profile.user_id, {count_field: new_count, date_field: now})

    # keep the caller's copy in step with what was written
    setattr(profile, count_field, new_count)
    setattr(profile, date_field, now)
    return QuotaDecision(True, new_count)


async def reset_usage(db, user_id: str, feature: str) -> None:
    """
    ADMIN TOOL: zeroes today's counter for a feature.
    """
    if feature not in FEATURE_FIELDS:
        raise InvalidInputError(f"Unknown feature: {feature}")
    count_field, _ = FEATURE_FIELDS[feature]
    if not await db.update_user(user_id, {count_field: 0}):
        raise NotFoundError(f"User {user_id} not found.")
    logger.info(f"ADMIN RESET for {user_id}: {feature} cleared.")

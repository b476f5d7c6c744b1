import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from database.models import UserProfile, SubscriptionPlan, utc_now
from nyayaprep.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)


class SubscriptionState(str, Enum):
    FREE = "free"
    PENDING_VALIDATION = "pending_validation"
    ACTIVE = "active"
    EXPIRED = "expired"


def parse_plan(plan) -> SubscriptionPlan:
    try:
        return SubscriptionPlan(plan)
    except ValueError:
        raise InvalidInputError(f"Invalid subscription type: {plan}")


def subscription_state(profile: UserProfile, now: datetime = None) -> SubscriptionState:
    now = now or utc_now()
    if profile.subscription_plan == SubscriptionPlan.FREE:
        return SubscriptionState.FREE
    if not profile.validated:
        return SubscriptionState.PENDING_VALIDATION
    if profile.expiry_date and now > profile.expiry_date:
        return SubscriptionState.EXPIRED
    return SubscriptionState.ACTIVE


def features_unlocked(profile: Optional[UserProfile]) -> bool:
    """
    The entitlement every feature gate consults. No profile means no entitlement.
    """
    if profile is None:
        return False
    return profile.subscription_plan == SubscriptionPlan.FREE or profile.validated


def premium_unlocked(profile: Optional[UserProfile]) -> bool:
    return features_unlocked(profile) and profile.subscription_plan == SubscriptionPlan.PREMIUM


def days_remaining(profile: UserProfile, now: datetime = None) -> Optional[int]:
    """Whole days until expiry, 0 once passed, None when there is no expiry."""
    if not profile.expiry_date:
        return None
    now = now or utc_now()
    if now > profile.expiry_date:
        return 0
    return (profile.expiry_date - now).days


async def select_plan(db, user_id: str, plan) -> None:
    """
    User picks a plan. Paid plans wait for staff validation; free is always active.
    """
    plan = parse_plan(plan)
    fields = {
        "subscription_plan": plan,
        "validated": plan == SubscriptionPlan.FREE,
        "expiry_date": None,
    }
    if not await db.update_user(user_id, fields):
        raise NotFoundError(f"User {user_id} not found.")
    logger.info(f"User {user_id} selected {plan.value} plan (validated={fields['validated']})")


async def validate(db, user_id: str, weeks: int, now: datetime = None) -> datetime:
    """
    Staff confirmed payment: activate for `weeks` weeks. Returns the new expiry.
    """
    if weeks is None or int(weeks) < 1:
        raise InvalidInputError("Validation duration must be at least 1 week.")
    now = now or utc_now()
    expiry = now + timedelta(weeks=int(weeks))
    if not await db.update_user(user_id, {"validated": True, "expiry_date": expiry}):
        raise NotFoundError(f"User {user_id} not found.")
    logger.info(f"User {user_id} validated until {expiry.isoformat()}")
    return expiry


async def invalidate(db, user_id: str) -> None:
    if not await db.update_user(user_id, {"validated": False, "expiry_date": None}):
        raise NotFoundError(f"User {user_id} not found.")
    logger.info(f"User {user_id} set to pending validation")


async def evaluate_expiry(db, profile: Optional[UserProfile], now: datetime = None) -> bool:
    """
    Passive expiry check run at login and dashboard load.
    Returns True only when this call moved the profile out of Active.
    """
    if profile is None or profile.subscription_plan == SubscriptionPlan.FREE:
        return False
    now = now or utc_now()
    if not (profile.validated and profile.expiry_date and now > profile.expiry_date):
        return False

    logger.info(f"Subscription for user {profile.user_id} expired on {profile.expiry_date}. Updating status.")
    await db.update_user(profile.user_id, {"validated": False, "expiry_date": None})
    profile.validated = False
    profile.expiry_date = None
    return True

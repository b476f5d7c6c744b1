"""
Entry points the web API and the staff bot call into.

Each takes the store handle and the acting user's id explicitly, so none of
them depends on session state.
"""
import logging
from datetime import datetime
from typing import Dict, List, NamedTuple, Optional
from database.db_client import MCQS
from database.models import Question, QuizResult, SubscriptionPlan, UserProfile, utc_now
from nyayaprep import config
from nyayaprep.errors import InvalidInputError, NotFoundError
from nyayaprep.services import analytics, notifications, quota_tracker, subscription
from nyayaprep.services.question_loader import QuestionBank
from nyayaprep.services.quiz_scoring import score_quiz

logger = logging.getLogger(__name__)

# Refusal reasons and what the user is told to do about them
NO_PROFILE = "no_profile"
VALIDATION_PENDING = "validation_pending"
LIMIT_REACHED = "limit_reached"
UPGRADE = "upgrade"
NO_QUESTIONS = "no_questions"

REASON_MESSAGES = {
    NO_PROFILE: "Finish registration to use this feature.",
    VALIDATION_PENDING: "Your subscription is pending validation or has expired. "
                        f"Send your payment confirmation to {config.PAYMENT_CONTACT} to activate it.",
    LIMIT_REACHED: "You have reached today's limit. Come back tomorrow or upgrade your plan for a higher limit.",
    UPGRADE: "This feature is not part of your plan. Upgrade to use it.",
    NO_QUESTIONS: "No questions available at the moment.",
}


class GateResult(NamedTuple):
    allowed: bool
    remaining: Optional[int] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    question_id: Optional[str] = None


def refused(reason: str, remaining: Optional[int] = 0) -> GateResult:
    return GateResult(False, remaining, reason, REASON_MESSAGES[reason])


async def register_user(db, user_id: str, name: str, email: str, phone: str = "",
                        plan="free", now: datetime = None) -> UserProfile:
    if not user_id:
        raise InvalidInputError("User ID is required.")
    plan = subscription.parse_plan(plan)
    existing = await db.get_user(user_id)
    if existing:
        logger.info(f"User {user_id} already registered; keeping existing profile")
        return existing

    now = now or utc_now()
    profile = UserProfile(
        user_id=user_id,
        name=name or "Unknown User",
        email=email or "",
        phone=phone or "",
        subscription_plan=plan,
        validated=plan == SubscriptionPlan.FREE,
        last_notification_check=now,
        created_at=now,
    )
    await db.create_user(profile)
    return profile


async def on_login(db, user_id: str, now: datetime = None) -> bool:
    """
    Runs the passive expiry check once per session start.
    True means the subscription just expired and the UI should say so.
    """
    profile = await db.get_user(user_id)
    return await subscription.evaluate_expiry(db, profile, now)


async def on_quiz_start(db, user_id: Optional[str] = None, now: datetime = None) -> GateResult:
    """
    Read-only gate checked before questions are fetched. Guests play unscored
    and untracked.
    """
    if not user_id:
        return GateResult(True, None)

    profile = await db.get_user(user_id)
    if profile is None:
        return refused(NO_PROFILE)
    if not subscription.features_unlocked(profile):
        return refused(VALIDATION_PENDING)

    limit = quota_tracker.limit_for(profile.subscription_plan, quota_tracker.QUIZ)
    remaining = quota_tracker.remaining_today(profile, quota_tracker.QUIZ, limit, now)
    if remaining == 0:
        return refused(LIMIT_REACHED)
    return GateResult(True, remaining)


async def start_quiz(db, user_id: Optional[str] = None, now: datetime = None):
    """
    Gate plus question fetch. Never starts a session with zero questions.
    Returns (GateResult, questions).
    """
    status = await on_quiz_start(db, user_id, now)
    if not status.allowed:
        return status, []
    questions = await QuestionBank(db).get_questions(config.QUESTIONS_PER_QUIZ)
    if not questions:
        return refused(NO_QUESTIONS, status.remaining), []
    return status, questions


async def on_quiz_submit(db, user_id: Optional[str], question_ids: List[str],
                         selections: Dict[str, Optional[str]], language="en",
                         now: datetime = None) -> QuizResult:
    """
    Scores the attempt. For logged-in users the result is saved and one quiz
    unit is consumed; guests just get the score back.
    """
    now = now or utc_now()
    # each question scores once however often its id is repeated
    question_ids = list(dict.fromkeys(question_ids or []))
    questions = await QuestionBank(db).get_many(question_ids)
    if not questions:
        raise InvalidInputError("No questions to score.")

    profile = None
    if user_id:
        profile = await db.get_user(user_id)
        if profile is None:
            raise NotFoundError(f"User {user_id} not found.")

    result = score_quiz(questions, selections or {}, language, user_id=user_id, now=now)
    if profile is None:
        return result

    result.id = await analytics.save_quiz_result(db, result)

    limit = quota_tracker.limit_for(profile.subscription_plan, quota_tracker.QUIZ)
    decision = await quota_tracker.check_and_consume(db, profile, quota_tracker.QUIZ, limit, now)
    if not decision.allowed:
        # Two tabs can both pass on_quiz_start; the result is kept regardless.
        logger.warning(f"User {user_id} submitted a quiz past the daily limit ({decision.new_count}/{limit})")
    return result


async def on_ask_teacher(db, user_id: str, text: str, now: datetime = None) -> GateResult:
    """
    Consumes one ask-teacher unit and then files the question.
    """
    if not (text or "").strip():
        raise InvalidInputError("Question text is required.")

    profile = await db.get_user(user_id)
    if profile is None:
        return refused(NO_PROFILE)

    limit = quota_tracker.limit_for(profile.subscription_plan, quota_tracker.ASK_TEACHER)
    if limit == 0:
        return refused(UPGRADE)
    if not subscription.features_unlocked(profile):
        return refused(VALIDATION_PENDING)

    decision = await quota_tracker.check_and_consume(db, profile, quota_tracker.ASK_TEACHER, limit, now)
    if not decision.allowed:
        return refused(LIMIT_REACHED)

    question_id = await notifications.save_teacher_question(db, profile, text, now)
    return GateResult(True, max(0, limit - decision.new_count), question_id=question_id)


async def on_staff_answer(db, question_id: str, text: str, staff_id: str, now: datetime = None) -> None:
    await notifications.mark_answered(db, question_id, text, staff_id, now)


async def on_staff_validate(db, user_id: str, weeks: Optional[int], now: datetime = None) -> Optional[datetime]:
    """
    weeks=None invalidates; otherwise validates for that many weeks and returns the expiry.
    """
    if weeks is None:
        await subscription.invalidate(db, user_id)
        return None
    return await subscription.validate(db, user_id, weeks, now)


async def dashboard(db, user_id: str, now: datetime = None) -> Optional[dict]:
    """
    Everything the student dashboard shows, after the passive expiry check.
    None when the user has no profile.
    """
    now = now or utc_now()
    profile = await db.get_user(user_id)
    if profile is None:
        return None
    expired = await subscription.evaluate_expiry(db, profile, now)

    usage = {}
    for feature in (quota_tracker.QUIZ, quota_tracker.ASK_TEACHER):
        limit = quota_tracker.limit_for(profile.subscription_plan, feature)
        usage[feature] = {
            "used": quota_tracker.usage_today(profile, feature, now),
            "limit": limit,
            "remaining": quota_tracker.remaining_today(profile, feature, limit, now),
        }

    return {
        "profile": profile.model_dump(mode="json"),
        "state": subscription.subscription_state(profile, now).value,
        "features_unlocked": subscription.features_unlocked(profile),
        "premium_unlocked": subscription.premium_unlocked(profile),
        "days_remaining": subscription.days_remaining(profile, now),
        "expiry_handled": expired,
        "usage": usage,
        "unread_notifications": profile.unread_notifications,
    }


async def find_users(db, term: str = None) -> List[UserProfile]:
    """
    All profiles, newest first, optionally narrowed to those whose name,
    email, phone, plan or id contains `term` (case-insensitive).
    """
    users = await db.list_users()
    term = (term or "").strip().lower()
    if not term:
        return users
    return [
        u for u in users
        if any(term in (value or "").lower()
               for value in (u.name, u.email, u.phone, u.subscription_plan.value, u.user_id))
    ]


async def overview(db, now: datetime = None) -> Dict[str, int]:
    """Headline counts for the staff overview."""
    now = now or utc_now()
    users = await db.list_users()
    states = [subscription.subscription_state(u, now) for u in users]
    counts = {
        "users": len(users),
        "mcqs": len(await db.query(MCQS)),
        "pending_questions": len(await notifications.pending_teacher_questions(db)),
    }
    for plan in SubscriptionPlan:
        counts[plan.value] = sum(1 for u in users if u.subscription_plan == plan)
    for state in (subscription.SubscriptionState.PENDING_VALIDATION, subscription.SubscriptionState.ACTIVE):
        counts[state.value] = states.count(state)
    return counts

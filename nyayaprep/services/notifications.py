import logging
from datetime import datetime
from typing import List, Optional
from database.db_client import TEACHER_QUESTIONS
from database.models import QuestionStatus, TeacherQuestion, UserProfile, utc_now
from nyayaprep.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)


async def get_teacher_question(db, question_id: str) -> Optional[TeacherQuestion]:
    if not question_id:
        return None
    row = await db.get_document(TEACHER_QUESTIONS, question_id)
    return TeacherQuestion(**row) if row else None


async def save_teacher_question(db, profile: UserProfile, text: str, now: datetime = None) -> str:
    text = (text or "").strip()
    if not text:
        raise InvalidInputError("Question text is required.")
    question = TeacherQuestion(
        user_id=profile.user_id,
        user_name=profile.name or "Unknown User",
        user_email=profile.email or "No Email",
        question_text=text,
        asked_at=now or utc_now(),
    )
    question_id = await db.insert(TEACHER_QUESTIONS, question.model_dump(exclude={"id"}))
    logger.info(f"Teacher question {question_id} saved for {profile.user_id}")
    return question_id


async def user_teacher_questions(db, user_id: str) -> List[TeacherQuestion]:
    """Newest first."""
    if not user_id:
        return []
    rows = await db.query(TEACHER_QUESTIONS, {"user_id": user_id}, order_by="asked_at", descending=True)
    return [TeacherQuestion(**r) for r in rows]


async def pending_teacher_questions(db) -> List[TeacherQuestion]:
    """Oldest first, so staff work the queue in order."""
    rows = await db.query(TEACHER_QUESTIONS, {"status": QuestionStatus.PENDING}, order_by="asked_at")
    return [TeacherQuestion(**r) for r in rows]


async def _load_pending(db, question_id: str) -> TeacherQuestion:
    question = await get_teacher_question(db, question_id)
    if not question:
        raise NotFoundError(f"Question with ID {question_id} not found.")
    if question.status != QuestionStatus.PENDING:
        raise InvalidInputError(f"Question {question_id} is already {question.status.value}.")
    return question


async def mark_answered(db, question_id: str, answer_text: str, answered_by: str, now: datetime = None) -> None:
    """
    Records a staff answer and bumps the asker's unread count in the store,
    never from a value read here.

    The two writes are not transactional. If the second fails the error
    propagates and staff retry by hand.
    """
    answer_text = (answer_text or "").strip()
    if not answer_text or not answered_by:
        raise InvalidInputError("Answer text and answerer ID are required.")
    question = await _load_pending(db, question_id)

    asker = await db.get_user(question.user_id)
    if not asker:
        raise NotFoundError(f"User {question.user_id} for question {question_id} not found.")

    await db.update_document(TEACHER_QUESTIONS, question_id, {
        "answer_text": answer_text,
        "status": QuestionStatus.ANSWERED,
        "answered_at": now or utc_now(),
        "answered_by": answered_by,
    })
    unread = await db.increment_user_field(asker.user_id, "unread_notifications")
    if unread is None:
        raise NotFoundError(f"User {asker.user_id} for question {question_id} not found.")
    logger.info(f"Question {question_id} answered. Unread count for user {asker.user_id} is now {unread}.")


async def reject_question(db, question_id: str, rejected_by: str) -> None:
    await _load_pending(db, question_id)
    await db.update_document(TEACHER_QUESTIONS, question_id, {
        "status": QuestionStatus.REJECTED,
        "answered_by": rejected_by,
    })
    logger.info(f"Question {question_id} rejected by {rejected_by}")


async def clear_notifications(db, user_id: str, now: datetime = None) -> None:
    if not user_id:
        raise InvalidInputError("User ID is required.")
    if not await db.update_user(user_id, {"unread_notifications": 0, "last_notification_check": now or utc_now()}):
        raise NotFoundError(f"User {user_id} not found.")
    logger.info(f"Notifications cleared for user {user_id}")


def is_new_answer(question: TeacherQuestion, profile: UserProfile) -> bool:
    return bool(question.answered_at) and question.answered_at > profile.last_notification_check

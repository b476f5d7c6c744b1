from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
NOT_ANSWERED = "Not Answered"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionPlan(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"


class Language(str, Enum):
    EN = "en"
    NE = "ne"


class QuestionStatus(str, Enum):
    PENDING = "pending"
    ANSWERED = "answered"
    REJECTED = "rejected"


class UserProfile(BaseModel):
    user_id: str
    name: str = "Unknown User"
    email: str = ""
    phone: str = ""
    role: str = "user"
    subscription_plan: SubscriptionPlan = SubscriptionPlan.FREE
    validated: bool = False
    expiry_date: Optional[datetime] = None
    quiz_count_today: int = 0
    last_quiz_date: datetime = EPOCH
    ask_teacher_count: int = 0
    last_ask_teacher_date: datetime = EPOCH
    unread_notifications: int = Field(default=0, ge=0)
    last_notification_check: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)


class TranslatedText(BaseModel):
    en: str = ""
    ne: str = ""


class TranslatedOptions(BaseModel):
    en: List[str] = []
    ne: List[str] = []


class Question(BaseModel):
    id: Optional[str] = None
    category: str
    question: TranslatedText
    options: TranslatedOptions
    correct_answer: TranslatedText
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AnswerRecord(BaseModel):
    question_id: str
    question_text: str
    selected_answer: str = NOT_ANSWERED
    correct_answer_text: str
    is_correct: bool


class QuizResult(BaseModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    score: int
    total_questions: int
    percentage: int
    answers: List[AnswerRecord]
    completed_at: datetime = Field(default_factory=utc_now)


class TeacherQuestion(BaseModel):
    id: Optional[str] = None
    user_id: str
    user_name: str = "Unknown User"
    user_email: str = "No Email"
    question_text: str
    status: QuestionStatus = QuestionStatus.PENDING
    asked_at: datetime = Field(default_factory=utc_now)
    answer_text: Optional[str] = None
    answered_at: Optional[datetime] = None
    answered_by: Optional[str] = None


class ContactMessage(BaseModel):
    id: Optional[str] = None
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    message: str
    created_at: datetime = Field(default_factory=utc_now)


class PerformanceStats(BaseModel):
    total_quizzes: int
    total_questions: int
    correct_answers: int
    accuracy: int
    average_score: int


import logging
from datetime import datetime
from typing import Dict, List, Optional
from database.models import AnswerRecord, Language, Question, QuizResult, NOT_ANSWERED, utc_now
from nyayaprep.errors import InvalidInputError

logger = logging.getLogger(__name__)


def parse_language(language) -> Language:
    try:
        return Language(language)
    except ValueError:
        raise InvalidInputError(f"Unsupported language: {language}")


def percent(part: int, whole: int) -> int:
    """Half-up rounded percentage; 0 when `whole` is 0."""
    if whole <= 0:
        return 0
    return (part * 200 + whole) // (whole * 2)


def score_quiz(questions: List[Question], selections: Dict[str, Optional[str]], language="en",
               user_id: str = None, now: datetime = None) -> QuizResult:
    """
    Scores an attempt against the correct answers in the language active at submission.

    Selections are the literal option text the user picked, in whatever
    language was on screen at the time. They are not re-checked against the
    other language, so an option picked before a language switch counts as
    wrong.
    """
    if not questions:
        raise InvalidInputError("A quiz needs at least one question.")
    lang = parse_language(language).value

    answers = []
    for q in questions:
        selected = selections.get(q.id)
        correct_text = getattr(q.correct_answer, lang, "") or ""
        if not correct_text:
            logger.warning(f"Question {q.id} has no correct answer in '{lang}'. Marking incorrect.")

        answers.append(AnswerRecord(
            question_id=q.id,
            question_text=getattr(q.question, lang, "") or "Question Text N/A",
            selected_answer=selected or NOT_ANSWERED,
            correct_answer_text=correct_text or "Correct Answer N/A",
            is_correct=bool(selected) and bool(correct_text) and selected == correct_text,
        ))

    score = sum(1 for a in answers if a.is_correct)
    total = len(answers)
    return QuizResult(
        user_id=user_id,
        score=score,
        total_questions=total,
        percentage=percent(score, total),
        answers=answers,
        completed_at=now or utc_now(),
    )

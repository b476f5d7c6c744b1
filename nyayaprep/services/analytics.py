import logging
from typing import List, Optional
from pydantic import ValidationError
from database.db_client import QUIZ_RESULTS
from database.models import PerformanceStats, QuizResult
from nyayaprep.services.quiz_scoring import percent

logger = logging.getLogger(__name__)


async def save_quiz_result(db, result: QuizResult) -> str:
    result_id = await db.insert(QUIZ_RESULTS, result.model_dump(exclude={"id"}))
    logger.info(f"Quiz result {result_id} saved for {result.user_id}: {result.score}/{result.total_questions}")
    return result_id


async def user_quiz_results(db, user_id: str, count: int = None) -> List[QuizResult]:
    """
    Newest first, at most `count` (default 100). Malformed rows are skipped.
    """
    if not user_id:
        return []
    limit = count if count and count > 0 else 100
    rows = await db.query(QUIZ_RESULTS, {"user_id": user_id}, order_by="completed_at", descending=True, limit=limit)
    results = []
    for row in rows:
        try:
            results.append(QuizResult(**row))
        except ValidationError as e:
            logger.warning(f"Skipping invalid quiz result document {row.get('id')}: {e}")
    return results


def performance_stats(results: List[QuizResult]) -> Optional[PerformanceStats]:
    """
    Lifetime accuracy and average score. None when there is nothing to aggregate.
    """
    if not results:
        return None

    total_questions = sum(r.total_questions for r in results)
    correct = sum(r.score for r in results)
    percentage_sum = sum(r.percentage for r in results)

    return PerformanceStats(
        total_quizzes=len(results),
        total_questions=total_questions,
        correct_answers=correct,
        accuracy=percent(correct, total_questions),
        average_score=percent(percentage_sum, len(results) * 100),
    )

import csv
import io
import random
import logging
from typing import Dict, List, Optional
from pydantic import ValidationError
from database.db_client import MCQS
from database.models import Question, TranslatedOptions, TranslatedText, utc_now
from nyayaprep.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)

MAX_CSV_OPTIONS = 6
REQUIRED_CSV_COLUMNS = ["category", "questionEn", "questionNe", "optionEn1", "optionNe1",
                        "optionEn2", "optionNe2", "correctAnswerEn"]


def check_question(question: Question) -> Question:
    """
    Enforces the bilingual invariants: text in both languages, index-aligned
    options and a correct answer sitting at the same index in both lists.
    """
    if not question.category.strip():
        raise InvalidInputError("Category is required.")
    if not question.question.en.strip() or not question.question.ne.strip():
        raise InvalidInputError("Question text is required in both languages.")

    opts = question.options
    if not opts.en or not opts.ne:
        raise InvalidInputError("At least one option is required.")
    if len(opts.en) != len(opts.ne):
        raise InvalidInputError("English and Nepali options must have the same length.")

    if question.correct_answer.en not in opts.en:
        raise InvalidInputError(f"Correct answer '{question.correct_answer.en}' is not an English option.")
    idx = opts.en.index(question.correct_answer.en)
    if opts.ne[idx] != question.correct_answer.ne:
        raise InvalidInputError("Nepali correct answer must match the English one's position.")
    return question


def _to_question(row: Dict) -> Optional[Question]:
    try:
        return Question(**row)
    except ValidationError as e:
        logger.warning(f"Skipping invalid MCQ document {row.get('id')}: {e}")
        return None


class QuestionBank:
    def __init__(self, db):
        self.db = db

    async def get_questions(self, count: int = 10) -> List[Question]:
        """
        Returns up to 'count' random questions. Empty if the bank is empty.
        """
        if count <= 0:
            return []
        pool = await self.list_questions()
        if not pool:
            logger.warning("No MCQs found in the database to sample from.")
            return []
        return random.sample(pool, min(count, len(pool)))

    async def list_questions(self, newest_first: bool = False) -> List[Question]:
        rows = await self.db.query(MCQS, order_by="created_at" if newest_first else None, descending=newest_first)
        return [q for q in (_to_question(r) for r in rows) if q]

    async def get_question(self, question_id: str) -> Optional[Question]:
        if not question_id:
            return None
        row = await self.db.get_document(MCQS, question_id)
        return _to_question(row) if row else None

    async def get_many(self, question_ids: List[str]) -> List[Question]:
        """Fetches questions in the given order, dropping ids that no longer exist."""
        questions = []
        for qid in question_ids:
            q = await self.get_question(qid)
            if q:
                questions.append(q)
            else:
                logger.warning(f"Question {qid} no longer exists; left out of scoring.")
        return questions

    async def add_question(self, question: Question) -> str:
        check_question(question)
        now = utc_now()
        data = question.model_dump(exclude={"id"})
        data.update(created_at=now, updated_at=now)
        return await self.db.insert(MCQS, data)

    async def update_question(self, question_id: str, question: Question) -> None:
        check_question(question)
        data = question.model_dump(exclude={"id", "created_at"})
        data["updated_at"] = utc_now()
        if not await self.db.update_document(MCQS, question_id, data):
            raise NotFoundError(f"MCQ {question_id} not found.")
        logger.info(f"MCQ {question_id} updated successfully.")

    async def delete_questions(self, question_ids: List[str]) -> None:
        await self.db.delete_documents(MCQS, list(question_ids))

    async def import_csv(self, text: str) -> List[str]:
        questions = parse_csv(text)
        ids = []
        for q in questions:
            ids.append(await self.add_question(q))
        logger.info(f"Imported {len(ids)} MCQs from CSV")
        return ids


def parse_csv(text: str) -> List[Question]:
    """
    Reads the bulk-upload CSV. Bad rows are skipped with a warning; a file
    with rows but no valid question is rejected.
    """
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    questions = []
    row_count = 0
    for row_index, row in enumerate(reader, start=1):
        row = {k.strip(): (v or "").strip() for k, v in row.items() if k}
        if not any(row.values()):
            continue
        row_count += 1

        if any(not row.get(col) for col in REQUIRED_CSV_COLUMNS):
            logger.warning(f"Skipping row {row_index} due to missing required fields")
            continue

        options_en, options_ne = [], []
        for i in range(1, MAX_CSV_OPTIONS + 1):
            en, ne = row.get(f"optionEn{i}"), row.get(f"optionNe{i}")
            if en and ne:
                options_en.append(en)
                options_ne.append(ne)

        if row["correctAnswerEn"] not in options_en:
            logger.warning(f"Skipping row {row_index}: correctAnswerEn '{row['correctAnswerEn']}' not among options")
            continue
        correct_ne = options_ne[options_en.index(row["correctAnswerEn"])]

        questions.append(Question(
            category=row["category"],
            question=TranslatedText(en=row["questionEn"], ne=row["questionNe"]),
            options=TranslatedOptions(en=options_en, ne=options_ne),
            correct_answer=TranslatedText(en=row["correctAnswerEn"], ne=correct_ne),
        ))

    if row_count and not questions:
        raise InvalidInputError(
            "No valid MCQs found in the CSV file. Required columns: " + ", ".join(REQUIRED_CSV_COLUMNS)
        )
    return questions

import copy
import uuid
from datetime import datetime, timezone
import pytest
from database.db_client import StorageError, USERS, to_json
from database.models import UserProfile, Question, TranslatedText, TranslatedOptions

NOW = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)  # 11:45 in Kathmandu


class MemoryStore:
    """
    In-memory stand-in for SupabaseClient with the same coroutine interface.
    Values go through to_json so rows look like what Supabase returns.
    """

    def __init__(self):
        self.tables = {}
        self.fail_writes = False
        self.writes = []

    def _rows(self, table):
        return self.tables.setdefault(table, {})

    def _check(self):
        if self.fail_writes:
            raise StorageError("simulated outage")

    async def get_user(self, user_id):
        row = await self.get_document(USERS, user_id, key="user_id")
        return UserProfile(**row) if row else None

    async def create_user(self, profile):
        self._check()
        self._rows(USERS)[profile.user_id] = to_json(profile)

    async def update_user(self, user_id, fields):
        return await self.update_document(USERS, user_id, fields, key="user_id")

    async def increment_user_field(self, user_id, field, amount=1):
        self._check()
        for row in self._rows(USERS).values():
            if row.get("user_id") == user_id:
                row[field] = (row.get(field) or 0) + amount
                self.writes.append((USERS, user_id, {field}))
                return row[field]
        return None

    async def list_users(self, filters=None):
        return [UserProfile(**r) for r in await self.query(USERS, filters, order_by="created_at", descending=True)]

    async def insert(self, table, data):
        self._check()
        doc = to_json(data)
        doc["id"] = doc.get("id") or str(uuid.uuid4())
        self._rows(table)[doc["id"]] = doc
        return doc["id"]

    async def get_document(self, table, doc_id, key="id"):
        for row in self._rows(table).values():
            if row.get(key) == doc_id:
                return copy.deepcopy(row)
        return None

    async def update_document(self, table, doc_id, fields, key="id"):
        self._check()
        for row in self._rows(table).values():
            if row.get(key) == doc_id:
                row.update(to_json(fields))
                self.writes.append((table, doc_id, set(fields)))
                return True
        return False

    async def delete_documents(self, table, ids):
        self._check()
        for doc_id in ids:
            self._rows(table).pop(doc_id, None)

    async def query(self, table, filters=None, order_by=None, descending=False, limit=None):
        rows = [copy.deepcopy(r) for r in self._rows(table).values()
                if all(r.get(k) == to_json(v) for k, v in (filters or {}).items())]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by) or "", reverse=descending)
        return rows[:limit] if limit else rows


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_user(store, now):
    async def _make(user_id="u1", **fields):
        fields.setdefault("last_notification_check", now)
        fields.setdefault("created_at", now)
        profile = UserProfile(user_id=user_id, **fields)
        await store.create_user(profile)
        return profile
    return _make


def build_question(qid, en_options=("Kathmandu", "Pokhara", "Lalitpur"),
                   ne_options=("काठमाडौं", "पोखरा", "ललितपुर"), correct=0, category="Constitution"):
    return Question(
        id=qid,
        category=category,
        question=TranslatedText(en=f"Question {qid}?", ne=f"प्रश्न {qid}?"),
        options=TranslatedOptions(en=list(en_options), ne=list(ne_options)),
        correct_answer=TranslatedText(en=en_options[correct], ne=ne_options[correct]),
    )


@pytest.fixture
def make_question(store):
    async def _make(qid, **kwargs):
        question = build_question(qid, **kwargs)
        await store.insert("mcqs", question.model_dump())
        return question
    return _make

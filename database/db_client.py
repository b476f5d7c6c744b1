import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel
from supabase import create_client, Client
from database.models import UserProfile
from nyayaprep import config

logger = logging.getLogger(__name__)

USERS = "users"
MCQS = "mcqs"
QUIZ_RESULTS = "quiz_results"
TEACHER_QUESTIONS = "teacher_questions"
MESSAGES = "messages"


class StorageError(Exception):
    """Raised when Supabase fails a read or a write."""


def to_json(value: Any) -> Any:
    """Converts model/enum/datetime values into what the Supabase client can send."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    return value


class SupabaseClient:
    def __init__(self, url: str = None, key: str = None):
        self.url = url or config.SUPABASE_URL
        self.key = key or config.SUPABASE_KEY
        self.client: Client = None

    async def connect(self):
        """
        Connects to Supabase.
        """
        try:
            if not self.url or not self.key:
                logger.error("Supabase credentials missing in .env")
                return False

            self.client = create_client(self.url, self.key)
            logger.info("Supabase connected successfully.")
            return True
        except Exception as e:
            logger.error(f"Supabase connection failed: {e}")
            return False

    def _table(self, name: str):
        if not self.client:
            raise StorageError("DB Client not initialized.")
        return self.client.table(name)

    def _rpc(self, function: str, params: Dict[str, Any]):
        if not self.client:
            raise StorageError("DB Client not initialized.")
        return self.client.rpc(function, params).execute()

    # --- Users ---

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        """
        Fetches a user profile. Returns None when no profile exists.
        """
        row = await self.get_document(USERS, user_id, key="user_id")
        return UserProfile(**row) if row else None

    async def create_user(self, profile: UserProfile) -> None:
        """
        Writes a whole profile. Only used at creation time; later writes go through update_user.
        """
        try:
            self._table(USERS).upsert(to_json(profile)).execute()
            logger.info(f"Created profile for {profile.user_id} ({profile.subscription_plan.value})")
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to create user {profile.user_id}: {e}")
            raise StorageError(str(e)) from e

    async def update_user(self, user_id: str, fields: Dict[str, Any]) -> bool:
        """
        Partial update of the given profile fields. Returns False if no profile matched.
        """
        return await self.update_document(USERS, user_id, fields, key="user_id")

    async def increment_user_field(self, user_id: str, field: str, amount: int = 1) -> Optional[int]:
        """
        Adds `amount` to a numeric profile field inside Postgres (database/functions.sql),
        so concurrent bumps and resets never overwrite each other.
        Returns the new value, or None if no profile matched.
        """
        try:
            response = self._rpc("increment_user_field", {
                "p_user_id": user_id,
                "p_field": field,
                "p_amount": amount,
            })
            return response.data
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to increment {field} for {user_id}: {e}")
            raise StorageError(str(e)) from e

    async def list_users(self, filters: Dict[str, Any] = None) -> List[UserProfile]:
        rows = await self.query(USERS, filters, order_by="created_at", descending=True)
        return [UserProfile(**row) for row in rows]

    # --- Generic documents ---

    async def insert(self, table: str, data: Dict[str, Any]) -> str:
        """
        Inserts a new document and returns its id.
        """
        doc = to_json(data)
        if not doc.get("id"):
            doc["id"] = str(uuid.uuid4())
        try:
            self._table(table).insert(doc).execute()
            logger.info(f"Inserted {table}/{doc['id']}")
            return doc["id"]
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to insert into {table}: {e}")
            raise StorageError(str(e)) from e

    async def get_document(self, table: str, doc_id: str, key: str = "id") -> Optional[Dict[str, Any]]:
        try:
            response = self._table(table).select("*").eq(key, doc_id).execute()
            if response.data:
                return response.data[0]
            return None
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to get {table}/{doc_id}: {e}")
            raise StorageError(str(e)) from e

    async def update_document(self, table: str, doc_id: str, fields: Dict[str, Any], key: str = "id") -> bool:
        try:
            response = self._table(table).update(to_json(fields)).eq(key, doc_id).execute()
            return bool(response.data)
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to update {table}/{doc_id}: {e}")
            raise StorageError(str(e)) from e

    async def delete_documents(self, table: str, ids: List[str]) -> None:
        if not ids:
            logger.info(f"No ids provided for deletion from {table}.")
            return
        try:
            self._table(table).delete().in_("id", ids).execute()
            logger.info(f"Deleted {len(ids)} rows from {table}")
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to delete from {table}: {e}")
            raise StorageError(str(e)) from e

    async def query(self, table: str, filters: Dict[str, Any] = None, order_by: str = None,
                    descending: bool = False, limit: int = None) -> List[Dict[str, Any]]:
        """
        Field-equality query with optional ordering and limit.
        """
        try:
            request = self._table(table).select("*")
            for field, value in (filters or {}).items():
                request = request.eq(field, to_json(value))
            if order_by:
                request = request.order(order_by, desc=descending)
            if limit:
                request = request.limit(limit)
            response = request.execute()
            return response.data or []
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to query {table}: {e}")
            raise StorageError(str(e)) from e

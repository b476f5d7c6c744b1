import logging
from typing import List
from database.db_client import MESSAGES
from database.models import ContactMessage
from nyayaprep.errors import InvalidInputError

logger = logging.getLogger(__name__)


async def store_message(db, message: ContactMessage) -> str:
    if not message.name.strip() or not message.email.strip() or not message.message.strip():
        raise InvalidInputError("Name, email and message are required.")
    message_id = await db.insert(MESSAGES, message.model_dump(exclude={"id"}))
    logger.info(f"Contact message {message_id} stored from {message.email}")
    return message_id


async def fetch_messages(db, limit: int = 20) -> List[ContactMessage]:
    rows = await db.query(MESSAGES, order_by="created_at", descending=True, limit=limit)
    return [ContactMessage(**r) for r in rows]

from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from squadfinders.core.exceptions import DuplicateMessageError
from squadfinders.models.models import utcnow
from squadfinders.repositories.document_store import DocumentStore

logger = logging.getLogger(__name__)


class MessageRepository(DocumentStore):
    COLLECTION = "messages"
    INDEXES = [
        ("message_id", {"unique": True}),
        ("message_date", {}),
        ([("group.group_id", ASCENDING), ("message_id", ASCENDING)], {"unique": True}),
        ([("ai_status", ASCENDING), ("message_date", ASCENDING)], {}),
        ([("sender.id", ASCENDING), ("message_date", DESCENDING)], {}),
        ("group.group_username", {}),
        ("sender.username", {}),
    ]

    async def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        now = utcnow()
        payload = {**doc, "createdAt": now, "updatedAt": now}
        try:
            payload["_id"] = await self.insert_one(payload)
        except DuplicateKeyError as e:
            raise DuplicateMessageError(
                "El mensaje ya existe",
                details={"message_id": doc.get("message_id")},
                cause=e,
            )
        return payload

    async def find_recent_duplicate(self, sender_id: str, text: str, since: datetime) -> Optional[Dict[str, Any]]:
        return await self.find_one({
            "sender.id": sender_id,
            "message": text,
            "message_date": {"$gte": since},
        })

    async def update_fields(self, query: Dict[str, Any], fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self.find_one_and_update(query, {"$set": {**fields, "updatedAt": utcnow()}})

    async def list_page(
        self,
        query: Dict[str, Any],
        page: int,
        limit: int,
    ) -> Tuple[List[Dict[str, Any]], int]:
        skip = (page - 1) * limit
        docs = await self.find_matching(query, sort=[("message_date", DESCENDING)], limit=limit, skip=skip)
        total = await self.count_matching(query)
        return docs, total

from __future__ import annotations
import logging
from typing import Any, Dict, List, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from squadfinders.core.exceptions import DuplicateMessageError
from squadfinders.core.retry import storage_errors
from squadfinders.models.models import utcnow
from squadfinders.repositories.document_store import DocumentStore

logger = logging.getLogger(__name__)


class PlayerRepository(DocumentStore):
    COLLECTION = "players"
    INDEXES = [
        ("message_id", {"unique": True}),
        ("message_date", {}),
        ([("group.group_id", ASCENDING), ("message_id", ASCENDING)], {"unique": True}),
        ([("active", ASCENDING), ("message_date", ASCENDING)], {}),
        ("platform", {}),
    ]

    @storage_errors
    async def deactivate_sender_in_group(self, sender_id: str, group_id: str) -> int:
        """Un sender sólo tiene un anuncio activo por grupo: apaga los anteriores."""
        result = await self.coll.update_many(
            {"sender.id": sender_id, "group.group_id": group_id, "active": True},
            {"$set": {"active": False, "updatedAt": utcnow()}},
        )
        return result.modified_count

    async def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        now = utcnow()
        payload = {**doc, "active": True, "createdAt": now, "updatedAt": now}
        try:
            payload["_id"] = await self.insert_one(payload)
        except DuplicateKeyError as e:
            raise DuplicateMessageError(
                "El player ya existe",
                details={"message_id": doc.get("message_id")},
                cause=e,
            )
        return payload

    async def list_page(self, query: Dict[str, Any], page: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        skip = (page - 1) * limit
        docs = await self.find_matching(query, sort=[("message_date", DESCENDING)], limit=limit, skip=skip)
        total = await self.count_matching(query)
        return docs, total

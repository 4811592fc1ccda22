from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from squadfinders.models.models import utcnow
from squadfinders.repositories.document_store import DocumentStore

logger = logging.getLogger(__name__)


class UserSeenRepository(DocumentStore):
    COLLECTION = "userseens"
    INDEXES = [
        ("user_id", {"unique": True}),
        ("active", {}),
        ("updatedAt", {}),
    ]

    async def mark_seen(self, user_id: str, message_ids: List[int], username: Optional[str] = None) -> Dict[str, Any]:
        """
        Agrega message_ids vistos y reactiva el registro. Es la única vía por
        la que un UserSeen vuelve a active=true.
        """
        now = utcnow()
        fields: Dict[str, Any] = {"active": True, "updatedAt": now}
        if username is not None:
            fields["username"] = username
        return await self.find_one_and_update(
            {"user_id": user_id},
            {
                "$set": fields,
                "$addToSet": {"message_ids": {"$each": list(message_ids)}},
                "$setOnInsert": {"createdAt": now},
            },
            upsert=True,
        )

    async def seen_ids(self, user_id: str) -> List[int]:
        doc = await self.find_one({"user_id": user_id, "active": True})
        return list(doc.get("message_ids", [])) if doc else []

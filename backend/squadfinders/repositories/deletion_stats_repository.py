from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, ReturnDocument

from squadfinders.core.retry import storage_errors, storage_retry
from squadfinders.repositories.document_store import DocumentStore

logger = logging.getLogger(__name__)

STATS_KEY = {"_id": "global"}


class DeletionStatsRepository(DocumentStore):
    """
    Singleton de totales globales. Es una caché: siempre se reescribe con
    $set a partir de la suma de las filas diarias, nunca con $inc.
    """
    COLLECTION = "deletedmessagestats"

    @storage_errors
    @storage_retry
    async def store_totals(self, totals: Dict[str, Any]) -> Dict[str, Any]:
        return await self.coll.find_one_and_update(
            STATS_KEY,
            {"$set": totals},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def get(self) -> Optional[Dict[str, Any]]:
        return await self.find_one(STATS_KEY)


class DailyDeletionRepository(DocumentStore):
    """Una fila por día calendario; fuente de verdad de todas las estadísticas de borrado."""
    COLLECTION = "dailydeletions"
    INDEXES = [
        ("date", {"unique": True}),
    ]

    async def increment(self, day: datetime, deletion_seconds: float, deleted_at: datetime) -> Dict[str, Any]:
        return await self.upsert_and_increment(
            {"date": day},
            {"count": 1, "totalDeletionTimeSeconds": deletion_seconds},
            maxes={"lastDeletedAt": deleted_at},
        )

    async def get_day(self, day: datetime) -> Optional[Dict[str, Any]]:
        return await self.find_one({"date": day})

    async def since(self, start_day: datetime) -> List[Dict[str, Any]]:
        return await self.find_matching({"date": {"$gte": start_day}}, sort=[("date", ASCENDING)])

    async def totals(self) -> Dict[str, Any]:
        """Suma de todas las filas diarias."""
        rows = await self.aggregate([
            {"$group": {
                "_id": None,
                "totalDeleted": {"$sum": "$count"},
                "totalDeletionTimeSeconds": {"$sum": "$totalDeletionTimeSeconds"},
                "lastDeletedAt": {"$max": "$lastDeletedAt"},
            }},
        ])
        if not rows:
            return {"totalDeleted": 0, "totalDeletionTimeSeconds": 0, "lastDeletedAt": None}
        row = rows[0]
        row.pop("_id", None)
        return row

"""
Jobs de desactivación por antigüedad: Players (desde message_date) y
UserSeen (desde updatedAt). Sólo pasan active de true a false; la
reactivación ocurre únicamente por escrituras de la API.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict

from pymongo import ASCENDING

from squadfinders.models.models import utcnow
from squadfinders.repositories.document_store import DocumentStore
from squadfinders.utils.metrics import RECORDS_DEACTIVATED_COUNTER

logger = logging.getLogger(__name__)


class DeactivationJob:
    """Apaga en lotes los registros activos cuyo age_field es anterior al corte."""

    name = "deactivation"
    age_field = "updatedAt"

    def __init__(
        self,
        store: DocumentStore,
        disable_after_hours: float,
        batch_size: int = 1000,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.threshold = timedelta(hours=disable_after_hours)
        self.batch_size = batch_size
        self.clock = clock

    async def run(self) -> Dict[str, Any]:
        cutoff = self.clock() - self.threshold
        query = {"active": True, self.age_field: {"$lt": cutoff}}

        total = 0
        while True:
            modified = await self.store.update_many_matching(
                query,
                {"active": False},
                limit=self.batch_size,
                sort=[(self.age_field, ASCENDING)],
            )
            total += modified
            if modified < self.batch_size:
                break

        if total > 0:
            RECORDS_DEACTIVATED_COUNTER.labels(collection=self.store.collection_name).inc(total)
            logger.info(
                f"🧹 Desactivados {total} registros de '{self.store.collection_name}' "
                f"({self.age_field} anterior a {self.threshold.total_seconds() / 3600:g} horas)"
            )
        return {"deactivated": total}


class PlayerCleanupJob(DeactivationJob):
    name = "player_cleanup"
    age_field = "message_date"


class UserSeenCleanupJob(DeactivationJob):
    name = "user_seen_cleanup"
    age_field = "updatedAt"

"""
Servicio UserSeen: registro de qué anuncios ya vio cada usuario.
"""

import logging
from typing import Any, Dict

from squadfinders.core.exceptions import NotFoundError
from squadfinders.models.models import UserSeenUpdate
from squadfinders.repositories.document_store import serialize_doc
from squadfinders.repositories.user_seen_repository import UserSeenRepository

logger = logging.getLogger(__name__)


class UserSeenService:
    def __init__(self, repo: UserSeenRepository):
        self.repo = repo

    async def mark_seen(self, payload: UserSeenUpdate) -> Dict[str, Any]:
        """Agrega los ids vistos, reactiva el registro y refresca updatedAt."""
        doc = await self.repo.mark_seen(payload.user_id, payload.message_ids, payload.username)
        logger.debug(f"👀 {len(payload.message_ids)} mensajes marcados como vistos por {payload.user_id}")
        return serialize_doc(doc)

    async def get(self, user_id: str) -> Dict[str, Any]:
        doc = await self.repo.find_one({"user_id": user_id})
        if not doc:
            raise NotFoundError("Registro UserSeen no encontrado", details={"user_id": user_id})
        return serialize_doc(doc)

"""
Servicio de Players y UserSeen: alta de avistamientos, feed de squad sin
repetidos y marcado de mensajes vistos.
"""

import logging
from typing import Any, Dict, List, Optional

from squadfinders.core.exceptions import NotFoundError, ValidationError
from squadfinders.models.models import PlayerCreate
from squadfinders.repositories.document_store import serialize_doc
from squadfinders.repositories.player_repository import PlayerRepository
from squadfinders.repositories.user_seen_repository import UserSeenRepository
from squadfinders.utils.validators import DataValidators

logger = logging.getLogger(__name__)


class PlayerService:
    def __init__(
        self,
        players: PlayerRepository,
        user_seen: UserSeenRepository,
        default_limit: int = 50,
        max_limit: int = 100,
    ):
        self.players = players
        self.user_seen = user_seen
        self.default_limit = default_limit
        self.max_limit = max_limit

    async def create(self, payload: PlayerCreate) -> Dict[str, Any]:
        """
        Nuevo avistamiento: apaga los players activos del mismo sender en el
        mismo grupo y crea el nuevo con active=true.
        """
        if payload.sender.id and payload.group.group_id:
            deactivated = await self.players.deactivate_sender_in_group(payload.sender.id, payload.group.group_id)
            if deactivated:
                logger.info(
                    f"🔁 Desactivados {deactivated} players previos de sender {payload.sender.id} "
                    f"en grupo {payload.group.group_id}"
                )
        doc = payload.model_dump(mode="python")
        doc["platform"] = payload.platform.value
        created = await self.players.create(doc)
        return serialize_doc(created)

    async def get(self, identifier: str) -> Dict[str, Any]:
        doc = await self.players.find_one(DataValidators.identifier_query(identifier))
        if not doc:
            raise NotFoundError("Player no encontrado", details={"id": identifier})
        return serialize_doc(doc)

    async def delete(self, identifier: str) -> Dict[str, Any]:
        doc = await self.players.find_one_and_delete(DataValidators.identifier_query(identifier))
        if not doc:
            raise NotFoundError("Player no encontrado", details={"id": identifier})
        return {"message": "Player eliminado correctamente"}

    async def list(
        self,
        page: int = 1,
        limit: int = 100,
        active: Optional[bool] = None,
        platform: Optional[str] = None,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if active is not None:
            query["active"] = active
        if platform:
            query["platform"] = platform
        docs, total = await self.players.list_page(query, page, limit)
        return {
            "data": [serialize_doc(d) for d in docs],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit if total else 0,
            },
        }

    async def players_for_squad(self, user_id: str, limit: Optional[int] = None) -> Dict[str, Any]:
        """Players activos que el usuario todavía no vio, más recientes primero."""
        if not user_id:
            raise ValidationError("El parámetro user_id es obligatorio")
        max_limit = DataValidators.clamp_limit(limit, self.default_limit, self.max_limit)
        seen: List[int] = await self.user_seen.seen_ids(user_id)
        docs = await self.players.find_matching(
            {"active": True, "message_id": {"$nin": seen}},
            sort=[("message_date", -1)],
            limit=max_limit,
        )
        return {
            "data": [serialize_doc(d) for d in docs],
            "count": len(docs),
            "excluded_seen_count": len(seen),
            "user_id": user_id,
        }


"""
Servicio de mensajes: alta con anti-spam, consultas, actualización explícita
y borrado con registro de estadísticas.
"""

from datetime import datetime, timedelta
import logging
from typing import Any, Callable, Dict, Optional

from squadfinders.core.exceptions import DuplicateMessageError, InvalidTransitionError, NotFoundError
from squadfinders.models.models import MessageCreate, MessageStatus, MessageUpdate, utcnow
from squadfinders.modules.deletion_stats_service import DeletionStatsService
from squadfinders.modules.lifecycle.transitions import is_terminal
from squadfinders.repositories.document_store import serialize_doc
from squadfinders.repositories.message_repository import MessageRepository
from squadfinders.utils.validators import DataValidators

logger = logging.getLogger(__name__)


class MessageService:
    def __init__(
        self,
        repo: MessageRepository,
        deletion_stats: DeletionStatsService,
        duplicate_window_minutes: int = 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.deletion_stats = deletion_stats
        self.duplicate_window = timedelta(minutes=duplicate_window_minutes)
        self.clock = clock

    async def create(self, payload: MessageCreate) -> Dict[str, Any]:
        """
        Crea un mensaje. Si el mismo sender publicó el mismo texto dentro de
        la ventana anti-spam, lanza DuplicateMessageError (409).
        """
        if payload.sender.id and payload.message:
            since = self.clock() - self.duplicate_window
            existing = await self.repo.find_recent_duplicate(payload.sender.id, payload.message, since)
            if existing:
                logger.info(f"🚫 Mensaje duplicado de sender {payload.sender.id} (message_id={payload.message_id})")
                raise DuplicateMessageError(
                    "El sender ya publicó el mismo mensaje en la última hora",
                    details={"existing_message_id": existing.get("message_id")},
                )
        doc = payload.model_dump(mode="python")
        doc["ai_status"] = payload.ai_status.value
        created = await self.repo.create(doc)
        return serialize_doc(created)

    async def get(self, identifier: str) -> Dict[str, Any]:
        doc = await self.repo.find_one(DataValidators.identifier_query(identifier))
        if not doc:
            raise NotFoundError("Mensaje no encontrado", details={"id": identifier})
        return serialize_doc(doc)

    async def update(self, identifier: str, payload: MessageUpdate) -> Dict[str, Any]:
        """
        Escritura explícita (worker de IA o panel). A diferencia del scheduler,
        puede sacar un mensaje de un estado terminal: un worker que termina tarde
        marca expired -> completed y el panel puede re-encolar con pending. Un
        cambio de ai_status se condiciona al estado leído; si otro proceso lo
        cambió entretanto se lanza InvalidTransitionError (400).
        """
        fields = payload.model_dump(mode="python", exclude_unset=True, exclude_none=True)
        query = DataValidators.identifier_query(identifier)

        current = await self.repo.find_one(query)
        if not current:
            raise NotFoundError("Mensaje no encontrado", details={"id": identifier})
        if not fields:
            return serialize_doc(current)

        if "ai_status" in fields:
            target = MessageStatus(fields["ai_status"])
            fields["ai_status"] = target.value
            current_status = MessageStatus(current.get("ai_status", MessageStatus.PENDING_PREFILTER.value))
            if target != current_status:
                if is_terminal(current_status):
                    logger.info(f"↩️ Mensaje {identifier} sale de {current_status.value} -> {target.value} por escritura explícita")
                query = {**query, "ai_status": current_status.value}

        doc = await self.repo.update_fields(query, fields)
        if not doc:
            raise InvalidTransitionError(
                "El estado del mensaje cambió durante la actualización",
                details={"id": identifier},
            )
        return serialize_doc(doc)

    async def delete(self, identifier: str) -> Dict[str, Any]:
        """
        Borra el mensaje y, sólo si el borrado ocurrió, lo registra en las
        estadísticas. Dos DELETE concurrentes cuentan una sola vez.
        """
        doc = await self.repo.find_one_and_delete(DataValidators.identifier_query(identifier))
        if not doc:
            raise NotFoundError("Mensaje no encontrado", details={"id": identifier})
        analytics = await self.deletion_stats.record_deletion(doc["message_date"], self.clock())
        return {
            "message": "Mensaje eliminado correctamente",
            "deletion_analytics": analytics,
        }

    async def list(
        self,
        page: int = 1,
        limit: int = 100,
        group_username: Optional[str] = None,
        sender_username: Optional[str] = None,
        is_valid: Optional[bool] = None,
        is_lfg: Optional[bool] = None,
        ai_status: Optional[str] = None,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if group_username:
            query["group.group_username"] = group_username
        if sender_username:
            query["sender.username"] = sender_username
        if is_valid is not None:
            query["is_valid"] = is_valid
        if is_lfg is not None:
            query["is_lfg"] = is_lfg
        if ai_status:
            query["ai_status"] = ai_status

        docs, total = await self.repo.list_page(query, page, limit)
        return {
            "data": [serialize_doc(d) for d in docs],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit if total else 0,
            },
        }

    async def valid_since(self, since: datetime) -> Dict[str, Any]:
        docs = await self.repo.find_matching(
            {"message_date": {"$gte": since}, "is_valid": True},
            sort=[("message_date", -1)],
        )
        return {"data": [serialize_doc(d) for d in docs]}

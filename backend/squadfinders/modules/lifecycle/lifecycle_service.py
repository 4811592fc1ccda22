"""
Servicio de ciclo de vida de mensajes: expiración por edad y reparto
exclusivo de lotes a los workers de IA.

Toda mutación de ai_status pasa por expire_stale (por conjunto de estados)
o por claim_batch (por lista de ids, condicionada al estado de origen).
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from pymongo import ASCENDING

from squadfinders.config.settings import Settings
from squadfinders.models.models import MessageStatus, utcnow
from squadfinders.modules.lifecycle.transitions import (
    AGE_FIELD,
    build_claim_filter,
    build_expiry_filter,
    expirable_statuses,
    expiry_cutoff,
    validate_claim,
)
from squadfinders.repositories.message_repository import MessageRepository
from squadfinders.utils.metrics import MESSAGES_CLAIMED_COUNTER, MESSAGES_EXPIRED_COUNTER
from squadfinders.utils.validators import DataValidators

logger = logging.getLogger(__name__)

CLAIM_ATTEMPTS = 3
CLAIM_ORDER = [(AGE_FIELD, ASCENDING), ("_id", ASCENDING)]


class MessageLifecycleService:
    def __init__(
        self,
        repo: MessageRepository,
        expiry_minutes: int = 5,
        batch_size: int = 1000,
        default_claim_limit: int = 50,
        max_claim_limit: int = 100,
        expire_processing: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repo = repo
        self.threshold = timedelta(minutes=expiry_minutes)
        self.batch_size = batch_size
        self.default_claim_limit = default_claim_limit
        self.max_claim_limit = max_claim_limit
        self.expirable = expirable_statuses(expire_processing)
        self.clock = clock

    @classmethod
    def from_settings(cls, repo: MessageRepository, settings: Settings, **kwargs) -> "MessageLifecycleService":
        return cls(
            repo,
            expiry_minutes=settings.EXPIRY_MINUTES,
            batch_size=settings.EXPIRY_BATCH_SIZE,
            default_claim_limit=settings.CLAIM_DEFAULT_LIMIT,
            max_claim_limit=settings.CLAIM_MAX_LIMIT,
            expire_processing=settings.EXPIRE_PROCESSING,
            **kwargs,
        )

    async def expire_stale(
        self,
        statuses: Optional[Iterable[MessageStatus]] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Pasa a 'expired' los mensajes de 'statuses' con message_date < now - umbral.
        Sólo cambia ai_status. Procesa en lotes de batch_size y termina cuando
        un lote modifica menos documentos que el tamaño de lote.

        Returns:
            Cantidad total de mensajes expirados.
        """
        now = now or self.clock()
        cutoff = expiry_cutoff(now, self.threshold)
        query = build_expiry_filter(statuses if statuses is not None else self.expirable, cutoff)

        total_expired = 0
        while True:
            modified = await self.repo.update_many_matching(
                query,
                {"ai_status": MessageStatus.EXPIRED.value},
                limit=self.batch_size,
                sort=[(AGE_FIELD, ASCENDING)],
            )
            total_expired += modified
            if modified < self.batch_size:
                break

        if total_expired > 0:
            MESSAGES_EXPIRED_COUNTER.inc(total_expired)
            logger.info(f"⏰ Expirados {total_expired} mensajes (corte {cutoff.isoformat()})")
        return total_expired

    async def claim_batch(
        self,
        from_status: MessageStatus,
        to_status: MessageStatus,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
        extra_filter: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Reserva hasta 'limit' mensajes (techo max_claim_limit) en from_status,
        los más antiguos primero, y los pasa a to_status.

        Selección y actualización van separadas por id: el update repite la
        condición ai_status == from_status y marca un claim_token propio, así
        dos llamadas concurrentes nunca devuelven el mismo mensaje. Si otro
        claim ganó parte de la selección se vuelve a seleccionar, hasta
        CLAIM_ATTEMPTS veces.
        """
        validate_claim(from_status, to_status)
        from_status = MessageStatus(from_status)
        to_status = MessageStatus(to_status)
        max_limit = DataValidators.clamp_limit(limit, self.default_claim_limit, self.max_claim_limit)
        now = now or self.clock()

        await self.expire_stale(now=now)

        cutoff = expiry_cutoff(now, self.threshold)
        query = build_claim_filter(from_status, cutoff, extra=extra_filter)
        token = uuid.uuid4().hex
        claimed: List[Dict[str, Any]] = []

        for _ in range(CLAIM_ATTEMPTS):
            candidates = await self.repo.find_matching(
                query,
                sort=CLAIM_ORDER,
                limit=max_limit - len(claimed),
            )
            if not candidates:
                break

            ids = [doc["_id"] for doc in candidates]
            modified = await self.repo.update_many_by_id(
                ids,
                {"ai_status": to_status.value, "claim_token": token, "claimed_at": now},
                guard={"ai_status": from_status.value},
            )
            if modified == len(ids):
                claimed.extend(candidates)
                break

            # Otro claim concurrente ganó parte de la selección
            owned = await self.repo.find_matching(
                {"_id": {"$in": ids}, "claim_token": token},
                projection={"_id": 1},
            )
            owned_ids = {doc["_id"] for doc in owned}
            logger.warning(
                f"⚠️ Claim {from_status.value}->{to_status.value}: "
                f"{len(ids) - len(owned_ids)} de {len(ids)} mensajes tomados por otro worker"
            )
            claimed.extend(doc for doc in candidates if doc["_id"] in owned_ids)
            if len(claimed) >= max_limit:
                break

        claimed.sort(key=lambda doc: (doc[AGE_FIELD], doc["_id"]))
        for doc in claimed:
            doc["ai_status"] = to_status.value
            doc["claimed_at"] = now

        if claimed:
            MESSAGES_CLAIMED_COUNTER.labels(from_status=from_status.value, to_status=to_status.value).inc(len(claimed))
            logger.debug(f"📦 Claim {from_status.value}->{to_status.value}: {len(claimed)} mensajes")
        return claimed

    async def claim_unprocessed(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Mensajes válidos listos para el worker de IA: pending -> processing."""
        return await self.claim_batch(
            MessageStatus.PENDING,
            MessageStatus.PROCESSING,
            limit=limit,
            now=now,
            extra_filter={"is_valid": True},
        )

    async def claim_pending_prefilter(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Mensajes nuevos para el prefiltro: pending_prefilter -> pending."""
        return await self.claim_batch(
            MessageStatus.PENDING_PREFILTER,
            MessageStatus.PENDING,
            limit=limit,
            now=now,
        )

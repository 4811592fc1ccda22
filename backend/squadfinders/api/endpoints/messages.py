from fastapi import APIRouter, Depends, Query
import logging
from typing import Any, Dict, Optional

from squadfinders.api.deps import get_lifecycle, get_message_service
from squadfinders.models.models import ClaimResult, MessageCreate, MessageStatus, MessageUpdate
from squadfinders.modules.lifecycle.lifecycle_service import MessageLifecycleService
from squadfinders.modules.message_service import MessageService
from squadfinders.repositories.document_store import serialize_doc
from squadfinders.utils.validators import DataValidators

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def list_messages(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=1000),
    group_username: Optional[str] = None,
    sender_username: Optional[str] = None,
    is_valid: Optional[bool] = None,
    is_lfg: Optional[bool] = None,
    ai_status: Optional[MessageStatus] = None,
    service: MessageService = Depends(get_message_service),
):
    return await service.list(
        page=page,
        limit=limit,
        group_username=group_username,
        sender_username=sender_username,
        is_valid=is_valid,
        is_lfg=is_lfg,
        ai_status=ai_status.value if ai_status else None,
    )


@router.get("/unprocessed", response_model=ClaimResult)
async def claim_unprocessed(
    limit: Optional[int] = Query(None),
    lifecycle: MessageLifecycleService = Depends(get_lifecycle),
):
    """
    Reserva mensajes válidos en 'pending' para el worker de IA y los pasa a
    'processing'. Dos llamadas concurrentes nunca reciben el mismo mensaje.
    """
    docs = await lifecycle.claim_unprocessed(limit=limit)
    return ClaimResult(data=[serialize_doc(d) for d in docs], count=len(docs))


@router.get("/pending-prefilter", response_model=ClaimResult)
async def claim_pending_prefilter(
    limit: Optional[int] = Query(None),
    lifecycle: MessageLifecycleService = Depends(get_lifecycle),
):
    """Reserva mensajes nuevos para el prefiltro: pending_prefilter -> pending."""
    docs = await lifecycle.claim_pending_prefilter(limit=limit)
    return ClaimResult(data=[serialize_doc(d) for d in docs], count=len(docs))


@router.get("/valid-since")
async def valid_since(
    timestamp: Optional[str] = None,
    service: MessageService = Depends(get_message_service),
):
    since = DataValidators.parse_timestamp(timestamp)
    return await service.valid_since(since)


@router.post("", status_code=201)
async def create_message(payload: MessageCreate, service: MessageService = Depends(get_message_service)):
    return await service.create(payload)


@router.get("/{identifier}")
async def get_message(identifier: str, service: MessageService = Depends(get_message_service)):
    return await service.get(identifier)


@router.put("/{identifier}")
async def update_message(
    identifier: str,
    payload: MessageUpdate,
    service: MessageService = Depends(get_message_service),
):
    return await service.update(identifier, payload)


@router.delete("/{identifier}")
async def delete_message(identifier: str, service: MessageService = Depends(get_message_service)) -> Dict[str, Any]:
    """Borra el mensaje y registra el tiempo transcurrido desde message_date."""
    return await service.delete(identifier)

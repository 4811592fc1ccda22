from fastapi import APIRouter, Depends, Query
import logging
from typing import Optional

from squadfinders.api.deps import get_player_service
from squadfinders.models.models import Platform, PlayerCreate
from squadfinders.modules.player_service import PlayerService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def list_players(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=1000),
    active: Optional[bool] = None,
    platform: Optional[Platform] = None,
    service: PlayerService = Depends(get_player_service),
):
    return await service.list(page=page, limit=limit, active=active, platform=platform.value if platform else None)


@router.get("/for-squad")
async def players_for_squad(
    user_id: Optional[str] = None,
    limit: Optional[int] = Query(None),
    service: PlayerService = Depends(get_player_service),
):
    """Players activos que el usuario todavía no vio (más recientes primero)."""
    return await service.players_for_squad(user_id, limit=limit)


@router.post("", status_code=201)
async def create_player(payload: PlayerCreate, service: PlayerService = Depends(get_player_service)):
    return await service.create(payload)


@router.get("/{identifier}")
async def get_player(identifier: str, service: PlayerService = Depends(get_player_service)):
    return await service.get(identifier)


@router.delete("/{identifier}")
async def delete_player(identifier: str, service: PlayerService = Depends(get_player_service)):
    return await service.delete(identifier)

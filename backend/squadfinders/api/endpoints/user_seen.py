from fastapi import APIRouter, Depends

from squadfinders.api.deps import get_user_seen_service
from squadfinders.models.models import UserSeenUpdate
from squadfinders.modules.user_seen_service import UserSeenService

router = APIRouter()


@router.post("")
async def mark_seen(payload: UserSeenUpdate, service: UserSeenService = Depends(get_user_seen_service)):
    return await service.mark_seen(payload)


@router.get("/{user_id}")
async def get_user_seen(user_id: str, service: UserSeenService = Depends(get_user_seen_service)):
    return await service.get(user_id)

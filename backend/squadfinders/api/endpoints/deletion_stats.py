from fastapi import APIRouter, Depends, Query

from squadfinders.api.deps import get_deletion_stats
from squadfinders.models.models import DeletionStatsView
from squadfinders.modules.deletion_stats_service import DeletionStatsService

router = APIRouter()


@router.get("", response_model=DeletionStatsView)
async def get_deletion_stats_summary(stats: DeletionStatsService = Depends(get_deletion_stats)):
    """Total de borrados, borrados de hoy y tiempo medio hasta el borrado."""
    return await stats.get_stats()


@router.get("/daily")
async def get_daily_deletions(
    days: int = Query(30, ge=1, le=365),
    stats: DeletionStatsService = Depends(get_deletion_stats),
):
    rows = await stats.get_daily_stats(days=days)
    return {"data": rows, "days": days}

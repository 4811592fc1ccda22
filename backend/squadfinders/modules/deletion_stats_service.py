"""
Servicio de estadísticas de borrado de mensajes.

La tabla diaria es la fuente de verdad: cada borrado es un único $inc + upsert
sobre la fila del día. Totales, promedio y 'borrados hoy' se derivan de las
filas diarias al leer; el singleton global es una caché reconstruida desde
ellas, así nunca puede quedar adelantado respecto de la tabla diaria.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from squadfinders.core.exceptions import StorageError
from squadfinders.models.models import DeletionStatsView, utcnow
from squadfinders.repositories.deletion_stats_repository import DailyDeletionRepository, DeletionStatsRepository
from squadfinders.utils.metrics import MESSAGES_DELETED_COUNTER

logger = logging.getLogger(__name__)


class DeletionStatsService:
    """Agregador de borrados: conteo por día calendario + caché de totales"""

    def __init__(
        self,
        stats_repo: DeletionStatsRepository,
        daily_repo: DailyDeletionRepository,
        timezone_name: str = "UTC",
    ):
        self.stats_repo = stats_repo
        self.daily_repo = daily_repo
        self.tz = ZoneInfo(timezone_name)

    def day_key(self, moment: datetime) -> datetime:
        """Medianoche (naive) del día calendario de 'moment' en la zona configurada."""
        local = moment.replace(tzinfo=timezone.utc).astimezone(self.tz)
        return datetime(local.year, local.month, local.day)

    async def record_deletion(self, message_date: datetime, deleted_at: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Registra un borrado en la fila del día y luego refresca la caché global.

        Returns:
            dict con deletion_time_seconds y deleted_at
        """
        deleted_at = deleted_at or utcnow()
        deletion_seconds = max(0, round((deleted_at - message_date).total_seconds()))
        day = self.day_key(deleted_at)

        await self.daily_repo.increment(day, deletion_seconds, deleted_at)
        MESSAGES_DELETED_COUNTER.inc()
        try:
            await self.refresh_totals()
        except StorageError as e:
            # La fila diaria ya quedó registrada; la caché se reconstruye en el próximo borrado
            logger.warning(f"⚠️ No se pudo refrescar la caché de totales de borrado: {e.message}")

        logger.debug(f"🗑️ Borrado registrado ({deletion_seconds}s desde message_date, día {day.date()})")
        return {
            "deletion_time_seconds": deletion_seconds,
            "deleted_at": deleted_at,
        }

    async def refresh_totals(self) -> Dict[str, Any]:
        """Reescribe el singleton global con la suma de las filas diarias (idempotente)."""
        totals = await self.daily_repo.totals()
        await self.stats_repo.store_totals(totals)
        return totals

    async def get_stats(self, now: Optional[datetime] = None) -> DeletionStatsView:
        now = now or utcnow()
        totals = await self.daily_repo.totals()
        today = await self.daily_repo.get_day(self.day_key(now)) or {}

        total = totals.get("totalDeleted", 0)
        total_seconds = totals.get("totalDeletionTimeSeconds", 0)
        return DeletionStatsView(
            totalDeleted=total,
            deletedToday=today.get("count", 0),
            avgDeletionTimeSeconds=round(total_seconds / total, 2) if total else 0.0,
            lastDeletedAt=totals.get("lastDeletedAt"),
        )

    async def get_daily_stats(self, days: int = 30, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Filas diarias de los últimos 'days' días, de la más antigua a la más reciente."""
        now = now or utcnow()
        start = self.day_key(now) - timedelta(days=max(days, 1) - 1)
        rows = await self.daily_repo.since(start)
        result = []
        for row in rows:
            count = row.get("count", 0)
            total_seconds = row.get("totalDeletionTimeSeconds", 0)
            result.append({
                "date": row["date"].date().isoformat(),
                "count": count,
                "avgDeletionTimeSeconds": round(total_seconds / count, 2) if count else 0.0,
            })
        return result

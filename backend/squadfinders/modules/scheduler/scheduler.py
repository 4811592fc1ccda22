"""
Scheduler de tareas de ciclo de vida de SquadFinders
Auto-expiración de mensajes y desactivación de Players / UserSeen por antigüedad
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from squadfinders.config.settings import Settings
from squadfinders.core.exceptions import NotFoundError, ValidationError
from squadfinders.models.models import JobStatus
from squadfinders.modules.lifecycle.lifecycle_service import MessageLifecycleService
from squadfinders.modules.scheduler.job_runner import ScheduledJobRunner
from squadfinders.modules.scheduler.jobs.cleanup_jobs import PlayerCleanupJob, UserSeenCleanupJob
from squadfinders.modules.scheduler.jobs.expiry_job import AutoExpiryJob
from squadfinders.repositories.player_repository import PlayerRepository
from squadfinders.repositories.user_seen_repository import UserSeenRepository

logger = logging.getLogger(__name__)


class LifecycleScheduler:
    """
    Dueño de los jobs periódicos. Se construye una vez al arrancar la API y se
    comparte por referencia (app.state); cada job tiene su propio timer,
    intervalo, umbral y flag de habilitación.
    """

    def __init__(self, settings: Settings, runners: Dict[str, ScheduledJobRunner], disabled: Optional[List[str]] = None):
        self.settings = settings
        self.runners = runners
        self.disabled = list(disabled or [])

    @classmethod
    def build(
        cls,
        settings: Settings,
        lifecycle: MessageLifecycleService,
        player_repo: PlayerRepository,
        user_seen_repo: UserSeenRepository,
    ) -> "LifecycleScheduler":
        tick_timeout = settings.SCHEDULER_TICK_TIMEOUT_SECONDS
        shutdown_timeout = settings.SCHEDULER_SHUTDOWN_TIMEOUT_SECONDS
        runners: Dict[str, ScheduledJobRunner] = {}
        disabled: List[str] = []

        if settings.AUTO_EXPIRY_ENABLED:
            job = AutoExpiryJob(lifecycle)
            runners[job.name] = ScheduledJobRunner(
                job.name,
                settings.EXPIRY_INTERVAL_MINUTES * 60,
                job.run,
                tick_timeout=tick_timeout,
                shutdown_timeout=shutdown_timeout,
            )
        else:
            disabled.append(AutoExpiryJob.name)

        if settings.USER_SEEN_CLEANUP_ENABLED:
            job = UserSeenCleanupJob(
                user_seen_repo,
                settings.USER_SEEN_CLEANUP_DISABLE_AFTER_HOURS,
                batch_size=settings.EXPIRY_BATCH_SIZE,
            )
            runners[job.name] = ScheduledJobRunner(
                job.name,
                settings.USER_SEEN_CLEANUP_INTERVAL_HOURS * 3600,
                job.run,
                tick_timeout=tick_timeout,
                shutdown_timeout=shutdown_timeout,
            )
        else:
            disabled.append(UserSeenCleanupJob.name)

        if settings.PLAYER_CLEANUP_ENABLED:
            job = PlayerCleanupJob(
                player_repo,
                settings.PLAYER_CLEANUP_DISABLE_AFTER_HOURS,
                batch_size=settings.EXPIRY_BATCH_SIZE,
            )
            runners[job.name] = ScheduledJobRunner(
                job.name,
                settings.PLAYER_CLEANUP_INTERVAL_HOURS * 3600,
                job.run,
                tick_timeout=tick_timeout,
                shutdown_timeout=shutdown_timeout,
            )
        else:
            disabled.append(PlayerCleanupJob.name)

        for name in disabled:
            logger.info(f"⚠️ Job '{name}' deshabilitado por configuración")
        return cls(settings, runners, disabled)

    def start_all(self) -> None:
        """Inicia todos los jobs habilitados (idempotente por job)."""
        for runner in self.runners.values():
            runner.start()
        logger.info(f"✅ Scheduler de ciclo de vida iniciado ({len(self.runners)} jobs)")

    async def stop_all(self) -> None:
        """Detiene los timers y espera los ticks en curso (para shutdown)."""
        await asyncio.gather(*(runner.stop() for runner in self.runners.values()))
        logger.info("🛑 Scheduler de ciclo de vida detenido")

    def get_runner(self, name: str) -> ScheduledJobRunner:
        if name in self.disabled:
            raise ValidationError(f"Job '{name}' deshabilitado por configuración", details={"job": name})
        runner = self.runners.get(name)
        if runner is None:
            raise NotFoundError(f"Job desconocido: {name}", details={"job": name})
        return runner

    async def run_job(self, name: str) -> Dict[str, Any]:
        """Ejecuta un tick manual del job (se salta si ya hay uno en curso)."""
        logger.info(f"🔧 Ejecución manual de '{name}'")
        return await self.get_runner(name).run_now()

    def get_status(self) -> Dict[str, JobStatus]:
        status = {name: runner.get_status() for name, runner in self.runners.items()}
        for name in self.disabled:
            status[name] = JobStatus(name=name, enabled=False, isRunning=False, interval_seconds=0)
        return status

    @property
    def is_running(self) -> bool:
        return any(runner.is_running for runner in self.runners.values())

"""
Estado y ejecución manual de los jobs de ciclo de vida.
"""
from fastapi import APIRouter, Depends
import logging

from squadfinders.api.deps import get_scheduler
from squadfinders.modules.scheduler.scheduler import LifecycleScheduler

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/status")
async def get_scheduler_status(scheduler: LifecycleScheduler = Depends(get_scheduler)):
    """Estado de cada job: isRunning, último tick, próximo tick y último error."""
    jobs = scheduler.get_status()
    return {
        "success": True,
        "data": {
            "running": scheduler.is_running,
            "jobs": {name: status.model_dump(mode="json") for name, status in jobs.items()},
        },
    }


@router.post("/{job_name}/run")
async def run_scheduler_job(job_name: str, scheduler: LifecycleScheduler = Depends(get_scheduler)):
    """Dispara un tick manual; si hay uno en curso se informa como saltado."""
    outcome = await scheduler.run_job(job_name)
    return {"success": not outcome.get("error"), "job": job_name, **outcome}

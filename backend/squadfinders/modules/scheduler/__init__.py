"""
Paquete scheduler para tareas programadas de SquadFinders
"""

from .scheduler import LifecycleScheduler
from .job_runner import ScheduledJobRunner

__all__ = ['LifecycleScheduler', 'ScheduledJobRunner']

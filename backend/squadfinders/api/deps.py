"""
Dependencias FastAPI: los servicios se construyen en el lifespan y viven
en app.state; los endpoints los obtienen por request.
"""
from fastapi import Request

from squadfinders.modules.deletion_stats_service import DeletionStatsService
from squadfinders.modules.lifecycle.lifecycle_service import MessageLifecycleService
from squadfinders.modules.message_service import MessageService
from squadfinders.modules.player_service import PlayerService
from squadfinders.modules.scheduler.scheduler import LifecycleScheduler
from squadfinders.modules.user_seen_service import UserSeenService


def get_lifecycle(request: Request) -> MessageLifecycleService:
    return request.app.state.lifecycle


def get_message_service(request: Request) -> MessageService:
    return request.app.state.message_service


def get_player_service(request: Request) -> PlayerService:
    return request.app.state.player_service


def get_user_seen_service(request: Request) -> UserSeenService:
    return request.app.state.user_seen_service


def get_deletion_stats(request: Request) -> DeletionStatsService:
    return request.app.state.deletion_stats


def get_scheduler(request: Request) -> LifecycleScheduler:
    return request.app.state.scheduler

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from squadfinders.api.endpoints import deletion_stats, messages, players, scheduler, user_seen
from squadfinders.config.settings import Settings, settings as default_settings
from squadfinders.core.exceptions import SquadFindersError
from squadfinders.core.mongo_client import close_mongo_client, create_mongo_client, get_database, mongo_health_check
from squadfinders.middleware.observability_middleware import ObservabilityMiddleware
from squadfinders.models.models import utcnow
from squadfinders.modules.deletion_stats_service import DeletionStatsService
from squadfinders.modules.lifecycle.lifecycle_service import MessageLifecycleService
from squadfinders.modules.message_service import MessageService
from squadfinders.modules.player_service import PlayerService
from squadfinders.modules.scheduler.scheduler import LifecycleScheduler
from squadfinders.modules.user_seen_service import UserSeenService
from squadfinders.repositories.deletion_stats_repository import DailyDeletionRepository, DeletionStatsRepository
from squadfinders.repositories.message_repository import MessageRepository
from squadfinders.repositories.player_repository import PlayerRepository
from squadfinders.repositories.user_seen_repository import UserSeenRepository
from squadfinders.utils.metrics import render_metrics
from squadfinders.utils.observability import setup_logging

logger = logging.getLogger(__name__)


async def init_services(app: FastAPI, db: AsyncIOMotorDatabase, cfg: Settings) -> None:
    """Construye repositorios, servicios y scheduler y los deja en app.state."""
    message_repo = MessageRepository(db)
    player_repo = PlayerRepository(db)
    user_seen_repo = UserSeenRepository(db)
    stats_repo = DeletionStatsRepository(db)
    daily_repo = DailyDeletionRepository(db)

    for repo in (message_repo, player_repo, user_seen_repo, stats_repo, daily_repo):
        await repo.ensure_indexes()

    lifecycle = MessageLifecycleService.from_settings(message_repo, cfg)
    deletion = DeletionStatsService(stats_repo, daily_repo, timezone_name=cfg.TIMEZONE)

    app.state.db = db
    app.state.settings = cfg
    app.state.lifecycle = lifecycle
    app.state.deletion_stats = deletion
    app.state.message_service = MessageService(
        message_repo,
        deletion,
        duplicate_window_minutes=cfg.DUPLICATE_WINDOW_MINUTES,
    )
    app.state.player_service = PlayerService(
        player_repo,
        user_seen_repo,
        default_limit=cfg.CLAIM_DEFAULT_LIMIT,
        max_limit=cfg.CLAIM_MAX_LIMIT,
    )
    app.state.user_seen_service = UserSeenService(user_seen_repo)
    app.state.scheduler = LifecycleScheduler.build(cfg, lifecycle, player_repo, user_seen_repo)


def create_app(cfg: Optional[Settings] = None, db: Optional[AsyncIOMotorDatabase] = None) -> FastAPI:
    """
    Crea la aplicación FastAPI.

    Args:
        cfg: Settings a usar (por defecto los del entorno)
        db: Base de datos ya creada; si se omite se conecta a MONGODB_URL
    """
    cfg = cfg or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        database = db
        if database is None:
            client = create_mongo_client(cfg.MONGODB_URL)
            database = get_database(client, cfg.MONGODB_DATABASE)

        await init_services(app, database, cfg)
        app.state.scheduler.start_all()
        logger.info("🚀 SquadFinders API iniciada")
        try:
            yield
        finally:
            await app.state.scheduler.stop_all()
            close_mongo_client(client)
            logger.info("👋 SquadFinders API detenida")

    app = FastAPI(
        title="SquadFinders API",
        description="Mensajes LFG de Telegram: ciclo de vida, reparto a workers de IA y estadísticas",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ObservabilityMiddleware)

    @app.exception_handler(SquadFindersError)
    async def squadfinders_error_handler(request: Request, exc: SquadFindersError):
        if exc.status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(PyMongoError)
    async def storage_error_handler(request: Request, exc: PyMongoError):
        logger.error(f"❌ Error de MongoDB en {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content={"error": "Almacenamiento no disponible", "code": "STORAGE_ERROR", "details": {}},
        )

    @app.get("/")
    async def root():
        return {"service": "SquadFinders API", "version": app.version}

    @app.get("/health")
    async def health_check(request: Request):
        """
        Health check para el contenedor: ping a MongoDB y estado de los jobs.
        """
        mongo = await mongo_health_check(request.app.state.db)
        jobs = request.app.state.scheduler.get_status()
        body = {
            "status": "healthy" if mongo["healthy"] else "degraded",
            "timestamp": utcnow().isoformat(),
            "mongodb": mongo,
            "scheduler": {name: status.isRunning for name, status in jobs.items()},
        }
        return JSONResponse(status_code=200 if mongo["healthy"] else 503, content=body)

    @app.get("/metrics")
    async def metrics():
        payload, content_type = render_metrics()
        return Response(content=payload, media_type=content_type)

    app.include_router(messages.router, prefix="/messages", tags=["messages"])
    app.include_router(players.router, prefix="/players", tags=["players"])
    app.include_router(user_seen.router, prefix="/user-seen", tags=["user-seen"])
    app.include_router(deletion_stats.router, prefix="/deletion-stats", tags=["deletion-stats"])
    app.include_router(scheduler.router, prefix="/scheduler", tags=["scheduler"])
    return app


setup_logging(default_settings.LOG_LEVEL, default_settings.LOG_JSON)

app = create_app()

"""
Cliente MongoDB asíncrono (motor).

El cliente se crea una sola vez en el arranque de la API y se guarda en
app.state; repositorios y jobs reciben la base de datos por parámetro.
"""
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


def create_mongo_client(connection_string: str) -> AsyncIOMotorClient:
    """
    Crea el cliente motor. No abre conexión hasta la primera operación.

    Args:
        connection_string: URL de MongoDB (settings.MONGODB_URL).
    """
    client = AsyncIOMotorClient(
        connection_string,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=10000,
        socketTimeoutMS=20000,
        maxPoolSize=50,
    )
    logger.info("🔌 Cliente MongoDB configurado")
    return client


def get_database(client: AsyncIOMotorClient, database_name: str) -> AsyncIOMotorDatabase:
    return client[database_name]


def close_mongo_client(client: Optional[AsyncIOMotorClient]) -> None:
    """Cierra la conexión MongoDB si existe."""
    if client is None:
        return
    try:
        client.close()
        logger.info("🔌 Conexión MongoDB cerrada")
    except Exception as e:
        logger.warning(f"Error cerrando MongoDB: {e}")


async def mongo_health_check(db: AsyncIOMotorDatabase) -> dict:
    """
    Verifica el estado de la conexión MongoDB.

    Returns:
        dict: Estado de salud con campos 'healthy' y 'message'.
    """
    try:
        await db.command("ping")
        return {
            "healthy": True,
            "message": "MongoDB conectado",
            "database": db.name,
        }
    except PyMongoError as e:
        return {
            "healthy": False,
            "message": f"Error de conexión: {str(e)}"
        }

"""
Job de auto-expiración: pasa a 'expired' los mensajes activos cuya
message_date superó el umbral configurado (EXPIRY_MINUTES).
"""

import logging
from typing import Any, Dict

from squadfinders.modules.lifecycle.lifecycle_service import MessageLifecycleService

logger = logging.getLogger(__name__)


class AutoExpiryJob:
    """Tick periódico de expiración de mensajes."""

    name = "auto_expiry"

    def __init__(self, lifecycle: MessageLifecycleService):
        self.lifecycle = lifecycle

    async def run(self) -> Dict[str, Any]:
        expired = await self.lifecycle.expire_stale()
        return {"expired": expired}

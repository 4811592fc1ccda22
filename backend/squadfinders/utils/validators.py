"""
Validadores de parámetros de entrada para SquadFinders
"""

import re
import logging
from typing import Any, Dict, Optional
from datetime import datetime

from bson import ObjectId

from squadfinders.core.exceptions import ValidationError
from squadfinders.models.models import to_naive_utc

logger = logging.getLogger(__name__)

_MESSAGE_ID_RE = re.compile(r'^-?\d+$')


class DataValidators:
    """Validadores de datos de requests"""

    @staticmethod
    def is_message_id(value: str) -> bool:
        return bool(value) and bool(_MESSAGE_ID_RE.match(value.strip()))

    @staticmethod
    def identifier_query(identifier: str) -> Dict[str, Any]:
        """
        Construye el filtro para buscar un registro por ObjectId de MongoDB o,
        si no lo es, por message_id numérico. Un string de 24 dígitos es un
        ObjectId válido y se resuelve por _id.
        Raises:
            ValidationError: Si no es ninguno de los dos
        """
        if ObjectId.is_valid(identifier):
            return {"_id": ObjectId(identifier)}
        if DataValidators.is_message_id(identifier):
            return {"message_id": int(identifier)}
        raise ValidationError(
            "Identificador inválido: use message_id numérico u ObjectId",
            details={"id": identifier},
        )

    @staticmethod
    def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
        """Aplica default y techo duro; valores <= 0 usan el default."""
        if limit is None or limit <= 0:
            return min(default, maximum)
        return min(int(limit), maximum)

    @staticmethod
    def parse_timestamp(value: Optional[str]) -> datetime:
        """
        Parsea un timestamp ISO 8601 a UTC naive.
        Raises:
            ValidationError: Si falta o tiene formato inválido
        """
        if not value:
            raise ValidationError("El parámetro timestamp es obligatorio")
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError("Formato de timestamp inválido. Use ISO 8601", details={"timestamp": value})
        return to_naive_utc(parsed)

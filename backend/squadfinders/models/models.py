# squadfinders/models/models.py

from __future__ import annotations
from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from pydantic import BaseModel, Field, ConfigDict, field_validator


# -----------------------
# Utilidades
# -----------------------
def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normaliza a UTC sin tzinfo, que es como se guardan todas las fechas."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# -----------------------
# Estados
# -----------------------
class MessageStatus(str, Enum):
    PENDING_PREFILTER = "pending_prefilter"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


class Platform(str, Enum):
    PC = "PC"
    CONSOLE = "Console"
    UNKNOWN = "unknown"


# -----------------------
# Submodelos
# -----------------------
class Sender(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: Optional[str] = None
    username: Optional[str] = None
    name: Optional[str] = None


class Group(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    group_id: Optional[str] = None
    group_title: Optional[str] = None
    group_username: Optional[str] = None


# -----------------------
# Mensajes
# -----------------------
class MessageCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    message_id: int
    message_date: datetime
    sender: Sender = Field(default_factory=Sender)
    group: Group = Field(default_factory=Group)
    message: Optional[str] = None
    is_valid: bool = False
    is_lfg: bool = False
    reason: Optional[str] = None
    ai_status: MessageStatus = MessageStatus.PENDING_PREFILTER

    @field_validator("message_date")
    @classmethod
    def _naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)


class MessageUpdate(BaseModel):
    """Escritura explícita del worker de IA o del panel. message_id y message_date son inmutables."""
    model_config = ConfigDict(populate_by_name=True)
    sender: Optional[Sender] = None
    group: Optional[Group] = None
    message: Optional[str] = None
    is_valid: Optional[bool] = None
    is_lfg: Optional[bool] = None
    reason: Optional[str] = None
    ai_status: Optional[MessageStatus] = None


# -----------------------
# Players / UserSeen
# -----------------------
class PlayerCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    message_id: int
    message_date: datetime
    sender: Sender = Field(default_factory=Sender)
    group: Group = Field(default_factory=Group)
    message: Optional[str] = None
    platform: Platform = Platform.UNKNOWN
    rank: str = "unknown"
    players_count: int = 0
    game_mode: str = "unknown"

    @field_validator("message_date")
    @classmethod
    def _naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)


class UserSeenUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    user_id: str
    username: Optional[str] = None
    message_ids: List[int] = Field(default_factory=list)


# -----------------------
# Resultados
# -----------------------
class ClaimResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    data: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = 0


class DeletionStatsView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    totalDeleted: int = 0
    deletedToday: int = 0
    avgDeletionTimeSeconds: float = 0.0
    lastDeletedAt: Optional[datetime] = None


class JobStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    name: str
    enabled: bool = True
    isRunning: bool
    busy: bool = False
    interval_seconds: float
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    last_result: Optional[Any] = None
    last_error: Optional[str] = None
    runs: int = 0
    failures: int = 0
    skipped: int = 0

"""
Máquina de estados de ai_status de los mensajes.

    pending_prefilter -> pending -> processing -> completed | failed
    pending_prefilter | pending | processing -> expired

Un mensaje expira cuando message_date < now - umbral (estricto: con edad
exactamente igual al umbral todavía no expira). Los estados terminales nunca
son tocados por el scheduler.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, FrozenSet, Iterable, Optional

from squadfinders.core.exceptions import InvalidTransitionError
from squadfinders.models.models import MessageStatus

AGE_FIELD = "message_date"

TERMINAL_STATUSES: FrozenSet[MessageStatus] = frozenset({
    MessageStatus.COMPLETED,
    MessageStatus.FAILED,
    MessageStatus.EXPIRED,
})

ACTIVE_STATUSES: FrozenSet[MessageStatus] = frozenset({
    MessageStatus.PENDING_PREFILTER,
    MessageStatus.PENDING,
    MessageStatus.PROCESSING,
})

# Pasos hacia adelante que puede dar un claim
CLAIM_TRANSITIONS: Dict[MessageStatus, MessageStatus] = {
    MessageStatus.PENDING_PREFILTER: MessageStatus.PENDING,
    MessageStatus.PENDING: MessageStatus.PROCESSING,
}

# Camino monótono del scheduler (expire_stale y claim_batch); las escrituras
# explícitas de la API no pasan por aquí
ALLOWED_TRANSITIONS: Dict[MessageStatus, FrozenSet[MessageStatus]] = {
    MessageStatus.PENDING_PREFILTER: frozenset({MessageStatus.PENDING, MessageStatus.EXPIRED}),
    MessageStatus.PENDING: frozenset({MessageStatus.PROCESSING, MessageStatus.EXPIRED}),
    MessageStatus.PROCESSING: frozenset({MessageStatus.COMPLETED, MessageStatus.FAILED, MessageStatus.EXPIRED}),
    MessageStatus.COMPLETED: frozenset(),
    MessageStatus.FAILED: frozenset(),
    MessageStatus.EXPIRED: frozenset(),
}


def expirable_statuses(include_processing: bool = True) -> FrozenSet[MessageStatus]:
    if include_processing:
        return ACTIVE_STATUSES
    return frozenset({MessageStatus.PENDING_PREFILTER, MessageStatus.PENDING})


def is_terminal(status: MessageStatus) -> bool:
    return MessageStatus(status) in TERMINAL_STATUSES


def can_transition(current: MessageStatus, target: MessageStatus) -> bool:
    return MessageStatus(target) in ALLOWED_TRANSITIONS[MessageStatus(current)]


def validate_claim(from_status: MessageStatus, to_status: MessageStatus) -> None:
    from_status = MessageStatus(from_status)
    to_status = MessageStatus(to_status)
    if CLAIM_TRANSITIONS.get(from_status) != to_status:
        raise InvalidTransitionError(
            f"Claim no permitido: {from_status.value} -> {to_status.value}",
            details={"from": from_status.value, "to": to_status.value},
        )


def expiry_cutoff(now: datetime, threshold: timedelta) -> datetime:
    """Instante de corte: todo lo anterior (estricto) está vencido."""
    return now - threshold


def is_stale(age_reference: datetime, now: datetime, threshold: timedelta) -> bool:
    return age_reference < expiry_cutoff(now, threshold)


def _status_values(statuses: Iterable[MessageStatus]) -> list:
    return sorted(MessageStatus(s).value for s in statuses)


def build_expiry_filter(
    statuses: Iterable[MessageStatus],
    cutoff: datetime,
    age_field: str = AGE_FIELD,
) -> Dict[str, Any]:
    values = _status_values(statuses)
    for value in values:
        if not can_transition(value, MessageStatus.EXPIRED):
            raise InvalidTransitionError(
                f"Estado terminal no expirable: {value}",
                details={"status": value},
            )
    return {
        "ai_status": {"$in": values},
        age_field: {"$lt": cutoff},
    }


def build_claim_filter(
    from_status: MessageStatus,
    cutoff: datetime,
    age_field: str = AGE_FIELD,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    query: Dict[str, Any] = dict(extra or {})
    query["ai_status"] = MessageStatus(from_status).value
    query[age_field] = {"$gte": cutoff}
    return query

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest
from mongomock_motor import AsyncMongoMockClient

from squadfinders.models.models import MessageStatus

NOW = datetime(2026, 10, 17, 12, 0, 0)


@pytest.fixture
def db():
    client = AsyncMongoMockClient()
    return client["squadfinders_test"]


@pytest.fixture
def now() -> datetime:
    return NOW


def make_message(
    message_id: int,
    age: timedelta,
    status: MessageStatus = MessageStatus.PENDING,
    now: datetime = NOW,
    is_valid: bool = True,
    **extra: Any,
) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "message_id": message_id,
        "message_date": now - age,
        "sender": {"id": f"sender-{message_id}", "username": f"user{message_id}"},
        "group": {"group_id": "g1", "group_username": "lfg_group"},
        "message": f"LFG squad #{message_id}",
        "is_valid": is_valid,
        "is_lfg": is_valid,
        "ai_status": status.value,
    }
    doc.update(extra)
    return doc


async def seed(coll, docs: List[Dict[str, Any]]) -> None:
    if docs:
        await coll.insert_many(docs)


async def status_of(coll, message_id: int) -> Optional[str]:
    doc = await coll.find_one({"message_id": message_id})
    return doc["ai_status"] if doc else None

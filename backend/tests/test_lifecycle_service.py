from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Dict, List

from conftest import NOW, make_message, seed, status_of

from squadfinders.models.models import MessageStatus
from squadfinders.modules.lifecycle.lifecycle_service import MessageLifecycleService
from squadfinders.repositories.message_repository import MessageRepository


def _service(db, **kwargs: Any) -> MessageLifecycleService:
    return MessageLifecycleService(MessageRepository(db), clock=lambda: NOW, **kwargs)


def test_stale_pending_message_expires_and_is_not_claimed(db):
    async def scenario():
        service = _service(db, expiry_minutes=5)
        await seed(service.repo.coll, [make_message(1, timedelta(minutes=6))])

        expired = await service.expire_stale(now=NOW)
        claimed = await service.claim_batch(MessageStatus.PENDING, MessageStatus.PROCESSING, now=NOW)
        return expired, claimed, await status_of(service.repo.coll, 1)

    expired, claimed, status = asyncio.run(scenario())
    assert expired == 1
    assert claimed == []
    assert status == MessageStatus.EXPIRED.value


def test_expire_stale_is_idempotent(db):
    async def scenario():
        service = _service(db)
        await seed(service.repo.coll, [
            make_message(1, timedelta(minutes=10)),
            make_message(2, timedelta(minutes=7), status=MessageStatus.PENDING_PREFILTER),
            make_message(3, timedelta(minutes=1)),
        ])
        first = await service.expire_stale(now=NOW)
        second = await service.expire_stale(now=NOW)
        return first, second

    first, second = asyncio.run(scenario())
    assert first == 2
    assert second == 0, "La segunda pasada no debe modificar nada"


def test_expiry_boundary_is_strict(db):
    async def scenario():
        service = _service(db, expiry_minutes=5)
        await seed(service.repo.coll, [
            make_message(1, timedelta(minutes=5)),
            make_message(2, timedelta(minutes=5, milliseconds=1)),
        ])
        await service.expire_stale(now=NOW)
        return await status_of(service.repo.coll, 1), await status_of(service.repo.coll, 2)

    at_threshold, past_threshold = asyncio.run(scenario())
    assert at_threshold == MessageStatus.PENDING.value
    assert past_threshold == MessageStatus.EXPIRED.value


def test_expiry_only_changes_status_field(db):
    async def scenario():
        service = _service(db)
        original = make_message(1, timedelta(hours=1), reason="sin revisar")
        await seed(service.repo.coll, [original])
        await service.expire_stale(now=NOW)
        return await service.repo.coll.find_one({"message_id": 1}, {"_id": 0})

    doc = asyncio.run(scenario())
    expected = make_message(1, timedelta(hours=1), reason="sin revisar")
    expected["ai_status"] = MessageStatus.EXPIRED.value
    assert doc == expected


def test_expiry_processes_multiple_batches(db):
    async def scenario():
        service = _service(db, batch_size=3)
        await seed(service.repo.coll, [make_message(i, timedelta(minutes=30 + i)) for i in range(1, 8)])
        expired = await service.expire_stale(now=NOW)
        remaining = await service.repo.count_matching({"ai_status": MessageStatus.PENDING.value})
        return expired, remaining

    expired, remaining = asyncio.run(scenario())
    assert expired == 7
    assert remaining == 0


def test_scheduler_never_touches_terminal_statuses(db):
    async def scenario():
        service = _service(db)
        await seed(service.repo.coll, [
            make_message(1, timedelta(days=2), status=MessageStatus.COMPLETED),
            make_message(2, timedelta(days=2), status=MessageStatus.FAILED),
            make_message(3, timedelta(days=2), status=MessageStatus.EXPIRED),
        ])
        await service.expire_stale(now=NOW)
        await service.claim_batch(MessageStatus.PENDING, MessageStatus.PROCESSING, now=NOW)
        await service.claim_batch(MessageStatus.PENDING_PREFILTER, MessageStatus.PENDING, now=NOW)
        return [await status_of(service.repo.coll, i) for i in (1, 2, 3)]

    assert asyncio.run(scenario()) == ["completed", "failed", "expired"]


def test_processing_is_left_alone_when_disabled(db):
    async def scenario():
        service = _service(db, expire_processing=False)
        await seed(service.repo.coll, [make_message(1, timedelta(hours=1), status=MessageStatus.PROCESSING)])
        expired = await service.expire_stale(now=NOW)
        return expired, await status_of(service.repo.coll, 1)

    expired, status = asyncio.run(scenario())
    assert expired == 0
    assert status == MessageStatus.PROCESSING.value


def test_claim_returns_oldest_first_and_leaves_rest(db):
    async def scenario():
        service = _service(db)
        await seed(service.repo.coll, [
            make_message(10, timedelta(seconds=10), status=MessageStatus.PENDING_PREFILTER),
            make_message(20, timedelta(seconds=20), status=MessageStatus.PENDING_PREFILTER),
            make_message(30, timedelta(seconds=30), status=MessageStatus.PENDING_PREFILTER),
        ])
        claimed = await service.claim_batch(
            MessageStatus.PENDING_PREFILTER, MessageStatus.PENDING, limit=2, now=NOW
        )
        return claimed, await status_of(service.repo.coll, 10)

    claimed, untouched = asyncio.run(scenario())
    assert [d["message_id"] for d in claimed] == [30, 20]
    assert all(d["ai_status"] == MessageStatus.PENDING.value for d in claimed)
    assert untouched == MessageStatus.PENDING_PREFILTER.value


def test_claim_fairness_with_wider_threshold(db):
    async def scenario():
        service = _service(db, expiry_minutes=15)
        await seed(service.repo.coll, [
            make_message(1, timedelta(minutes=1)),
            make_message(10, timedelta(minutes=10)),
            make_message(5, timedelta(minutes=5)),
        ])
        return await service.claim_unprocessed(limit=2, now=NOW)

    claimed = asyncio.run(scenario())
    assert [d["message_id"] for d in claimed] == [10, 5]


def test_claim_limit_is_capped(db):
    async def scenario():
        service = _service(db, max_claim_limit=100)
        await seed(service.repo.coll, [make_message(i, timedelta(seconds=i)) for i in range(1, 151)])
        claimed = await service.claim_unprocessed(limit=1000, now=NOW)
        processing = await service.repo.count_matching({"ai_status": MessageStatus.PROCESSING.value})
        return claimed, processing

    claimed, processing = asyncio.run(scenario())
    assert len(claimed) == 100
    assert processing == 100


def test_claim_unprocessed_skips_invalid_messages(db):
    async def scenario():
        service = _service(db)
        await seed(service.repo.coll, [
            make_message(1, timedelta(seconds=30), is_valid=False),
            make_message(2, timedelta(seconds=20)),
        ])
        return await service.claim_unprocessed(now=NOW)

    claimed = asyncio.run(scenario())
    assert [d["message_id"] for d in claimed] == [2]


class _YieldingMessageRepository(MessageRepository):
    """Cede el loop tras cada lectura y escritura para intercalar workers."""

    def __init__(self, db):
        super().__init__(db)
        self.partial_updates = 0

    async def find_matching(self, *args: Any, **kwargs: Any):
        docs = await super().find_matching(*args, **kwargs)
        await asyncio.sleep(0)
        return docs

    async def update_many_by_id(self, ids, fields, guard=None):
        modified = await super().update_many_by_id(ids, fields, guard=guard)
        if modified < len(ids):
            self.partial_updates += 1
        await asyncio.sleep(0)
        return modified


def test_concurrent_claims_are_disjoint(db):
    repo = _YieldingMessageRepository(db)

    async def scenario():
        service = MessageLifecycleService(repo, clock=lambda: NOW)
        await seed(repo.coll, [make_message(i, timedelta(seconds=i)) for i in range(1, 81)])
        return await asyncio.gather(
            service.claim_unprocessed(limit=50, now=NOW),
            service.claim_unprocessed(limit=50, now=NOW),
        )

    first, second = asyncio.run(scenario())
    first_ids = {d["message_id"] for d in first}
    second_ids = {d["message_id"] for d in second}
    assert repo.partial_updates >= 1, "Ambos claims debieron seleccionar los mismos candidatos"
    assert sorted([len(first), len(second)]) == [30, 50]
    assert first_ids.isdisjoint(second_ids)
    assert first_ids | second_ids == set(range(1, 81))



class _RacingMessageRepository(MessageRepository):
    """Otro worker reserva parte de la selección entre el find y el update."""

    def __init__(self, db, stolen: List[int]):
        super().__init__(db)
        self.stolen = stolen
        self.raced = False

    async def find_matching(self, query: Dict[str, Any], *args: Any, **kwargs: Any):
        docs = await super().find_matching(query, *args, **kwargs)
        if not self.raced and query.get("ai_status") == MessageStatus.PENDING.value:
            self.raced = True
            await self.coll.update_many(
                {"message_id": {"$in": self.stolen}},
                {"$set": {"ai_status": MessageStatus.PROCESSING.value, "claim_token": "otro-worker"}},
            )
        return docs


def test_claim_returns_only_records_it_won(db):
    async def scenario():
        repo = _RacingMessageRepository(db, stolen=[2, 4])
        service = MessageLifecycleService(repo, clock=lambda: NOW)
        await seed(repo.coll, [make_message(i, timedelta(seconds=60 - i)) for i in range(1, 6)])
        claimed = await service.claim_unprocessed(limit=10, now=NOW)
        stolen_doc = await repo.coll.find_one({"message_id": 2})
        return claimed, stolen_doc

    claimed, stolen_doc = asyncio.run(scenario())
    assert sorted(d["message_id"] for d in claimed) == [1, 3, 5]
    assert stolen_doc["claim_token"] == "otro-worker", "El claim perdido no debe sobrescribir al ganador"


def test_claim_with_no_candidates_returns_empty(db):
    async def scenario():
        service = _service(db)
        return await service.claim_pending_prefilter(now=NOW)

    assert asyncio.run(scenario()) == []

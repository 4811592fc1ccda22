from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, make_message, seed, status_of

from squadfinders.core.exceptions import DuplicateMessageError, InvalidTransitionError, NotFoundError, ValidationError
from squadfinders.models.models import MessageCreate, MessageStatus, MessageUpdate, PlayerCreate, UserSeenUpdate
from squadfinders.modules.deletion_stats_service import DeletionStatsService
from squadfinders.modules.lifecycle.lifecycle_service import MessageLifecycleService
from squadfinders.modules.message_service import MessageService
from squadfinders.modules.player_service import PlayerService
from squadfinders.modules.user_seen_service import UserSeenService
from squadfinders.repositories.deletion_stats_repository import DailyDeletionRepository, DeletionStatsRepository
from squadfinders.repositories.message_repository import MessageRepository
from squadfinders.repositories.player_repository import PlayerRepository
from squadfinders.repositories.user_seen_repository import UserSeenRepository


def _message_service(db) -> MessageService:
    stats = DeletionStatsService(DeletionStatsRepository(db), DailyDeletionRepository(db))
    return MessageService(MessageRepository(db), stats, duplicate_window_minutes=60, clock=lambda: NOW)


def _payload(message_id: int, text: str = "LFG 2 players ranked", age: timedelta = timedelta(minutes=1)) -> MessageCreate:
    return MessageCreate(
        message_id=message_id,
        message_date=NOW - age,
        sender={"id": "42", "username": "gamer"},
        group={"group_id": "g1", "group_username": "lfg_group"},
        message=text,
    )


def test_same_text_from_same_sender_is_rejected(db):
    async def scenario():
        service = _message_service(db)
        await service.repo.ensure_indexes()
        created = await service.create(_payload(1))
        with pytest.raises(DuplicateMessageError):
            await service.create(_payload(2))
        other = await service.create(_payload(3, text="otro texto"))
        return created, other

    created, other = asyncio.run(scenario())
    assert created["ai_status"] == MessageStatus.PENDING_PREFILTER.value
    assert "id" in created and "_id" not in created
    assert other["message_id"] == 3


def test_duplicate_message_id_is_rejected(db):
    async def scenario():
        service = _message_service(db)
        await service.repo.ensure_indexes()
        await service.create(_payload(1))
        await service.create(_payload(1, text="texto distinto"))

    with pytest.raises(DuplicateMessageError):
        asyncio.run(scenario())


def test_explicit_updates_follow_worker_flow(db):
    async def scenario():
        service = _message_service(db)
        await service.create(_payload(1))
        await service.update("1", MessageUpdate(ai_status=MessageStatus.PENDING))
        await service.update("1", MessageUpdate(ai_status=MessageStatus.PROCESSING))
        return await service.update("1", MessageUpdate(ai_status=MessageStatus.COMPLETED, is_valid=True))

    done = asyncio.run(scenario())
    assert done["ai_status"] == MessageStatus.COMPLETED.value
    assert done["is_valid"] is True


def test_late_worker_can_complete_an_expired_claim(db):
    async def scenario():
        repo = MessageRepository(db)
        lifecycle = MessageLifecycleService(repo, expiry_minutes=1, expire_processing=True)
        service = _message_service(db)
        await seed(repo.coll, [make_message(1, age=timedelta(seconds=30))])
        claimed = await lifecycle.claim_unprocessed(limit=1, now=NOW)
        expired = await lifecycle.expire_stale(now=NOW + timedelta(seconds=45))
        assert await status_of(repo.coll, 1) == MessageStatus.EXPIRED.value
        done = await service.update("1", MessageUpdate(ai_status=MessageStatus.COMPLETED, is_lfg=True))
        return claimed, expired, done

    claimed, expired, done = asyncio.run(scenario())
    assert [c["message_id"] for c in claimed] == [1]
    assert expired == 1
    assert done["ai_status"] == MessageStatus.COMPLETED.value
    assert done["is_lfg"] is True


def test_late_worker_can_mark_expired_claim_failed(db):
    async def scenario():
        repo = MessageRepository(db)
        await seed(repo.coll, [make_message(1, age=timedelta(minutes=5), status=MessageStatus.EXPIRED)])
        return await _message_service(db).update("1", MessageUpdate(ai_status=MessageStatus.FAILED))

    assert asyncio.run(scenario())["ai_status"] == MessageStatus.FAILED.value


def test_admin_can_requeue_expired_message(db):
    async def scenario():
        repo = MessageRepository(db)
        lifecycle = MessageLifecycleService(repo, expiry_minutes=1, expire_processing=True)
        await seed(repo.coll, [make_message(1, age=timedelta(seconds=20), status=MessageStatus.EXPIRED)])
        requeued = await _message_service(db).update("1", MessageUpdate(ai_status=MessageStatus.PENDING))
        claimed = await lifecycle.claim_unprocessed(limit=5, now=NOW)
        return requeued, claimed

    requeued, claimed = asyncio.run(scenario())
    assert requeued["ai_status"] == MessageStatus.PENDING.value
    assert [c["message_id"] for c in claimed] == [1]


class _RacingMessageRepository(MessageRepository):
    """Expira el mensaje justo antes de aplicar la escritura explícita."""

    async def update_fields(self, query, fields):
        await self.update_many_matching({"message_id": query.get("message_id")}, {"ai_status": MessageStatus.EXPIRED.value})
        return await super().update_fields(query, fields)


def test_update_is_conditioned_on_status_read(db):
    async def scenario():
        repo = _RacingMessageRepository(db)
        stats = DeletionStatsService(DeletionStatsRepository(db), DailyDeletionRepository(db))
        service = MessageService(repo, stats, clock=lambda: NOW)
        await seed(repo.coll, [make_message(1, age=timedelta(seconds=10), status=MessageStatus.PROCESSING)])
        with pytest.raises(InvalidTransitionError):
            await service.update("1", MessageUpdate(ai_status=MessageStatus.COMPLETED))
        return await status_of(repo.coll, 1)

    assert asyncio.run(scenario()) == MessageStatus.EXPIRED.value


def test_delete_records_statistics_once(db):
    async def scenario():
        service = _message_service(db)
        created = await service.create(_payload(1, age=timedelta(minutes=3)))
        result = await service.delete(created["id"])
        with pytest.raises(NotFoundError):
            await service.delete("1")
        stats = await service.deletion_stats.get_stats(now=NOW)
        return result, stats

    result, stats = asyncio.run(scenario())
    assert result["deletion_analytics"]["deletion_time_seconds"] == 180
    assert stats.totalDeleted == 1


def test_invalid_identifier(db):
    with pytest.raises(ValidationError):
        asyncio.run(_message_service(db).get("not-an-id"))


def test_new_sighting_replaces_previous_and_feed_skips_seen(db):
    async def scenario():
        players = PlayerService(PlayerRepository(db), UserSeenRepository(db))
        seen = UserSeenService(UserSeenRepository(db))
        for message_id, minutes in ((1, 30), (2, 20)):
            await players.create(PlayerCreate(
                message_id=message_id,
                message_date=NOW - timedelta(minutes=minutes),
                sender={"id": "42"},
                group={"group_id": "g1"},
            ))
        await players.create(PlayerCreate(
            message_id=3,
            message_date=NOW - timedelta(minutes=10),
            sender={"id": "77"},
            group={"group_id": "g1"},
        ))
        await seen.mark_seen(UserSeenUpdate(user_id="u1", message_ids=[3]))
        feed_u1 = await players.players_for_squad("u1")
        feed_u2 = await players.players_for_squad("u2")
        return feed_u1, feed_u2

    feed_u1, feed_u2 = asyncio.run(scenario())
    assert [p["message_id"] for p in feed_u1["data"]] == [2]
    assert feed_u1["excluded_seen_count"] == 1
    assert [p["message_id"] for p in feed_u2["data"]] == [3, 2], "El player 1 quedó inactivo por el nuevo avistamiento"


def test_squad_feed_requires_user_id(db):
    players = PlayerService(PlayerRepository(db), UserSeenRepository(db))
    with pytest.raises(ValidationError):
        asyncio.run(players.players_for_squad(""))

import asyncio
import itertools
import pytest
from datetime import datetime, timezone

from portail.auth.models import CurrentUser
from portail.feed.notifications import NOTIFICATIONS_COLLECTION, NotificationBell, NotificationRecord
from portail.feed.synchronizer import EPOCH, FeedSynchronizer, order_snapshot, to_datetime
from portail.infra.channel import Document, InMemoryDocumentChannel, Query

USER = CurrentUser(id="u1", email="user@example.com")
ADMIN = CurrentUser(id="admin-1", email="admin@example.com", is_admin=True)


def _record(rid, created_at=None, **extra):
    return NotificationRecord(id=rid, created_at=created_at, title="t", message="m", **extra)


async def _settle():
    # Laisse passer les livraisons planifiées par le canal
    for _ in range(3):
        await asyncio.sleep(0)


def test_to_datetime_accepts_store_formats():
    expected = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert to_datetime("2024-03-01T12:00:00Z") == expected
    assert to_datetime(expected.timestamp()) == expected
    assert to_datetime({"seconds": expected.timestamp()}) == expected
    assert to_datetime(None) == EPOCH
    with pytest.raises(TypeError):
        to_datetime(True)


def test_order_is_independent_of_arrival_order():
    records = [
        _record("a", "2024-01-02T00:00:00Z"),
        _record("b", "2024-01-03T00:00:00Z"),
        _record("c"),
        _record("d", "2024-01-02T00:00:00Z"),
        _record("e"),
    ]
    # Plus récent d'abord, égalité par id décroissant, sans date en dernier
    expected = ["b", "d", "a", "e", "c"]
    for perm in itertools.permutations(records):
        assert [r.id for r in order_snapshot(list(perm))] == expected


def test_duplicate_ids_keep_last_occurrence():
    first = _record("x", "2024-01-01T00:00:00Z", type="info")
    second = _record("x", "2024-01-01T00:00:00Z", type="alert")
    ordered = order_snapshot([first, second])
    assert len(ordered) == 1
    assert ordered[0].type == "alert"


def test_unreadable_records_are_skipped(channel):
    sync = FeedSynchronizer(channel, Query(NOTIFICATIONS_COLLECTION), NotificationRecord.from_document)
    docs = [
        Document("ok", {"title": "t", "message": "m", "created_at": "2024-01-01T00:00:00Z"}),
        Document("bad-type", {"type": "spam"}),
        Document("bad-date", {"created_at": "pas une date"}),
    ]
    assert [r.id for r in sync.build_items(docs)] == ["ok"]


@pytest.mark.asyncio
async def test_each_snapshot_replaces_the_list(channel):
    channel.set(NOTIFICATIONS_COLLECTION, "n1", {"is_active": True, "created_at": "2024-01-01T00:00:00Z"})
    seen = []
    sync = FeedSynchronizer(channel, Query(NOTIFICATIONS_COLLECTION), NotificationRecord.from_document)
    handle = await sync.subscribe(on_change=lambda items: seen.append([i.id for i in items]))
    await _settle()

    channel.set(NOTIFICATIONS_COLLECTION, "n2", {"is_active": True, "created_at": "2024-02-01T00:00:00Z"})
    await _settle()
    channel.delete(NOTIFICATIONS_COLLECTION, "n1")
    await _settle()

    assert seen == [["n1"], ["n2", "n1"], ["n2"]]
    assert handle.snapshots == 3
    handle.unsubscribe()


@pytest.mark.asyncio
async def test_error_keeps_last_known_list(channel):
    channel.set(NOTIFICATIONS_COLLECTION, "n1", {"is_active": True})
    sync = FeedSynchronizer(channel, Query(NOTIFICATIONS_COLLECTION), NotificationRecord.from_document)
    handle = await sync.subscribe()
    await _settle()
    assert [r.id for r in handle.items] == ["n1"]

    channel.emit_error(NOTIFICATIONS_COLLECTION, RuntimeError("flux coupé"))
    await _settle()

    assert [r.id for r in handle.items] == ["n1"]
    assert handle.error_count == 1
    assert isinstance(handle.last_error, RuntimeError)


@pytest.mark.asyncio
async def test_subscribe_failure_is_absorbed():
    def _fail(op, payload):
        if op == "subscribe":
            raise RuntimeError("realtime indisponible")

    sync = FeedSynchronizer(
        InMemoryDocumentChannel(fault_injector=_fail),
        Query(NOTIFICATIONS_COLLECTION),
        NotificationRecord.from_document,
    )
    handle = await sync.subscribe()
    assert handle.items == []
    assert handle.error_count == 1
    assert handle.active is False


@pytest.mark.asyncio
async def test_unsubscribe_stops_updates(channel):
    sync = FeedSynchronizer(channel, Query(NOTIFICATIONS_COLLECTION), NotificationRecord.from_document)
    handle = await sync.subscribe()
    await _settle()
    handle.unsubscribe()
    handle.unsubscribe()

    channel.set(NOTIFICATIONS_COLLECTION, "late", {"is_active": True})
    await _settle()
    assert handle.items == []
    assert channel.active_subscriptions == 0


def test_audience_filter():
    assert _record("a").visible_to(USER)
    assert not _record("a").visible_to(None)
    assert not _record("b", audience="admins").visible_to(USER)
    assert _record("b", audience="admins").visible_to(ADMIN)
    assert _record("c", audience="u1").visible_to(USER)
    assert not _record("c", audience="u1").visible_to(ADMIN)


def test_localized_picks_language_with_english_fallback():
    record = NotificationRecord(id="n", title={"en": "Hello", "ar": "مرحبا"}, message="texte")
    assert record.localized("ar")["title"] == "مرحبا"
    assert record.localized("fr")["title"] == "Hello"
    assert record.localized("fr")["message"] == "texte"


@pytest.mark.asyncio
async def test_bell_follows_identity(channel):
    channel.set(NOTIFICATIONS_COLLECTION, "all", {"is_active": True, "audience": "all"})
    channel.set(NOTIFICATIONS_COLLECTION, "adm", {"is_active": True, "audience": "admins"})
    channel.set(NOTIFICATIONS_COLLECTION, "off", {"is_active": False})
    bell = NotificationBell(channel)

    await bell.on_user_changed(USER)
    await _settle()
    assert [r.id for r in bell.items] == ["all"]
    first_handle = bell.handle

    # Même identité: aucun réabonnement
    await bell.activate(CurrentUser(id="u1", email="user@example.com", token_balance=5))
    assert bell.handle is first_handle

    await bell.on_user_changed(ADMIN)
    await _settle()
    assert sorted(r.id for r in bell.items) == ["adm", "all"]
    assert first_handle.active is False
    assert channel.active_subscriptions == 1

    await bell.on_user_changed(None)
    assert bell.items == []
    assert bell.active is False
    assert channel.active_subscriptions == 0


@pytest.mark.asyncio
async def test_bell_retries_failed_feed_for_same_identity():
    def _fail(op, payload):
        if op == "subscribe":
            raise RuntimeError("realtime indisponible")

    channel = InMemoryDocumentChannel(fault_injector=_fail)
    channel.set(NOTIFICATIONS_COLLECTION, "all", {"is_active": True, "audience": "all"})
    bell = NotificationBell(channel)

    failed = await bell.activate(USER)
    assert failed.active is False

    channel.fault_injector = None
    retried = await bell.activate(USER)
    await _settle()
    assert retried is not failed
    assert retried.active is True
    assert [r.id for r in bell.items] == ["all"]
    bell.deactivate()

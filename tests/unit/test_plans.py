import pytest

from portail.errors import RemoteError
from portail.infra.channel import InMemoryDocumentChannel
from portail.plans.repository import PLANS_COLLECTION
from portail.plans.service import list_active_plans


@pytest.mark.asyncio
async def test_active_plans_sorted_by_tokens(channel):
    channel.set(PLANS_COLLECTION, "pro", {"price_id": "price_pro", "tokens": 50000, "status": "active", "is_popular": True})
    channel.set(PLANS_COLLECTION, "basic", {"price_id": "price_basic", "tokens": 10000, "status": "active"})
    channel.set(PLANS_COLLECTION, "old", {"price_id": "price_old", "tokens": 1, "status": "inactive"})
    channel.set(PLANS_COLLECTION, "broken", {"tokens": -5, "status": "active"})

    plans = await list_active_plans(channel)

    assert [p.id for p in plans] == ["basic", "pro"]
    assert plans[1].is_popular is True
    assert plans[0].price_id == "price_basic"


@pytest.mark.asyncio
async def test_index_error_gets_dedicated_message():
    def _fail(op, payload):
        raise RemoteError(code="store/failed-precondition")

    with pytest.raises(RemoteError) as exc:
        await list_active_plans(InMemoryDocumentChannel(fault_injector=_fail))
    assert exc.value.code == "store/failed-precondition"
    assert "Index manquant" in exc.value.message


@pytest.mark.asyncio
async def test_other_errors_use_generic_plans_message():
    def _fail(op, payload):
        raise RuntimeError("connexion perdue")

    with pytest.raises(RemoteError) as exc:
        await list_active_plans(InMemoryDocumentChannel(fault_injector=_fail))
    assert exc.value.code == "plans/fetch-failed"
    assert exc.value.message == "Impossible de charger les offres d'abonnement."

import asyncio
import pytest
from storefront.common.custom_exceptions import InsufficientStock
from storefront.inventory.repository import decrement
from storefront.inventory.reservations import hold
from tests.helpers import checkout_event, count_orders, ledger_sum, seed_variant, signed_body, stock_of
from tests.test_webhooks import WEBHOOK_PATH, open_checkout


async def try_hold(session_factory, session_ref, variant_id, qty):
    async with session_factory() as session:
        try:
            await hold(session, session_ref, [{"variant_id": variant_id, "quantity": qty}])
            await session.commit()
            return True
        except InsufficientStock:
            await session.rollback()
            return False


async def try_decrement(session_factory, variant_id, qty, ref):
    async with session_factory() as session:
        try:
            await decrement(session, variant_id, qty, ref=ref)
            await session.commit()
            return True
        except InsufficientStock:
            await session.rollback()
            return False


@pytest.mark.asyncio
async def test_concurrent_holds_never_oversell(session_factory):
    """Ten shoppers race for three units , exactly three holds win."""
    ids = await seed_variant(session_factory, stock=3)
    vid = ids["variant_id"]

    results = await asyncio.gather(*(try_hold(session_factory, f"race-{i}", vid, 1) for i in range(10)))

    assert results.count(True) == 3
    assert await stock_of(session_factory, vid) == 0
    assert await ledger_sum(session_factory, vid) == -3


@pytest.mark.asyncio
async def test_concurrent_decrements_never_oversell(session_factory):
    ids = await seed_variant(session_factory, stock=3)
    vid = ids["variant_id"]

    results = await asyncio.gather(*(try_decrement(session_factory, vid, 1, f"order-{i}") for i in range(10)))

    assert results.count(True) == 3
    assert await stock_of(session_factory, vid) == 0


@pytest.mark.asyncio
async def test_concurrent_duplicate_deliveries_create_one_order(ac_client, session_factory, monkeypatch):
    ids = await seed_variant(session_factory, stock=5)
    metadata = await open_checkout(ac_client, monkeypatch, ids, quantity=2)

    # the gateway may fire the same event and a sibling event at once
    events = [
        checkout_event("checkout.session.completed", "cs_test_1", "evt_a", metadata=metadata),
        checkout_event("checkout.session.completed", "cs_test_1", "evt_a", metadata=metadata),
        checkout_event("checkout.session.async_payment_succeeded", "cs_test_1", "evt_b", metadata=metadata),
    ]
    requests = []
    for event in events:
        body, headers = signed_body(event)
        requests.append(ac_client.post(WEBHOOK_PATH, content=body, headers=headers))
    responses = await asyncio.gather(*requests)

    assert [r.status_code for r in responses] == [200, 200, 200]
    assert await count_orders(session_factory) == 1
    assert await stock_of(session_factory, ids["variant_id"]) == 3

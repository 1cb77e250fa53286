import pytest
from storefront.common.custom_exceptions import InsufficientStock, NotFound, ValidationFailed
from storefront.inventory.repository import current_stock, decrement, list_transactions, record
from storefront.schema.full_schema import InventoryTxnKind
from tests.helpers import admin_headers, auth_headers, ledger_kinds, ledger_sum, seed_variant, stock_of, url_prefix

SYNC_PATH = f"{url_prefix}/inventory/sync"


@pytest.mark.asyncio
async def test_record_applies_delta_and_appends_ledger_row(session_factory):
    ids = await seed_variant(session_factory, stock=5)
    vid = ids["variant_id"]

    async with session_factory() as session:
        new_stock = await decrement(session, vid, 2, ref="order-1")
        await session.commit()

    assert new_stock == 3
    assert await stock_of(session_factory, vid) == 3

    async with session_factory() as session:
        txns = await list_transactions(session, vid)
    assert [(t.kind, t.quantity, t.reference) for t in txns] == [("decrement", -2, "order-1")]


@pytest.mark.asyncio
async def test_record_refuses_to_go_negative(session_factory):
    ids = await seed_variant(session_factory, stock=1)
    vid = ids["variant_id"]

    async with session_factory() as session:
        with pytest.raises(InsufficientStock) as exc_info:
            await decrement(session, vid, 2)
        await session.rollback()

    assert exc_info.value.details == [{"variant_id": vid, "requested": 2, "available": 1}]
    assert await stock_of(session_factory, vid) == 1
    assert await ledger_kinds(session_factory, vid) == []


@pytest.mark.asyncio
async def test_record_unknown_variant_and_bad_sign(session_factory):
    ids = await seed_variant(session_factory, stock=1)

    async with session_factory() as session:
        with pytest.raises(NotFound):
            await current_stock(session, 999)
        with pytest.raises(NotFound):
            await record(session, 999, -1, InventoryTxnKind.DECREMENT)
        with pytest.raises(ValidationFailed):
            await record(session, ids["variant_id"], 3, InventoryTxnKind.HOLD)
        await session.rollback()


@pytest.mark.asyncio
async def test_sync_requires_admin_role(ac_client, session_factory):
    ids = await seed_variant(session_factory, stock=2)
    payload = {"variant_id": ids["variant_id"], "delta": 5}

    assert (await ac_client.post(SYNC_PATH, json=payload)).status_code == 401
    assert (await ac_client.post(SYNC_PATH, json=payload, headers=auth_headers("shopper-1"))).status_code == 403
    assert await stock_of(session_factory, ids["variant_id"]) == 2


@pytest.mark.asyncio
async def test_sync_restocks_and_adjusts(ac_client, session_factory):
    ids = await seed_variant(session_factory, stock=2)
    vid = ids["variant_id"]

    resp = await ac_client.post(SYNC_PATH, json={"variant_id": vid, "delta": 5}, headers=admin_headers())
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "stock_quantity": 7}

    resp = await ac_client.post(SYNC_PATH, json={"variant_id": vid, "delta": -3}, headers=admin_headers())
    assert resp.status_code == 200
    assert resp.json()["stock_quantity"] == 4

    assert await ledger_kinds(session_factory, vid) == ["restock", "adjust"]
    assert await ledger_sum(session_factory, vid) == 2


@pytest.mark.asyncio
async def test_sync_rejects_unknown_variant_and_negative_result(ac_client, session_factory):
    ids = await seed_variant(session_factory, stock=2)

    resp = await ac_client.post(SYNC_PATH, json={"variant_id": 4242, "delta": 1}, headers=admin_headers())
    assert resp.status_code == 404

    resp = await ac_client.post(SYNC_PATH, json={"variant_id": ids["variant_id"], "delta": -3}, headers=admin_headers())
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INSUFFICIENT_STOCK"
    assert await stock_of(session_factory, ids["variant_id"]) == 2

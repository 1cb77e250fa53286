import httpx
import pytest
from storefront.common.circuit_breaker import CircuitBreaker, CircuitOpenError
from storefront.orders.constants import gateway_circuit
from tests.helpers import auth_headers, reservation_statuses, seed_variant, stock_of
from tests.test_checkout import CREATE_PATH, FakeGateway, ORDERS_MODULE


@pytest.mark.asyncio
async def test_opens_after_threshold_and_recovers_through_half_open():
    cb = CircuitBreaker("unit", failure_threshold=2, recovery_timeout=0)

    await cb.before_call()
    await cb.record_failure()
    assert cb.state == "CLOSED"
    await cb.record_failure()
    assert cb.state == "OPEN"

    # recovery_timeout elapsed , exactly one trial call is let through
    await cb.before_call()
    assert cb.state == "HALF_OPEN"
    with pytest.raises(CircuitOpenError):
        await cb.before_call()

    await cb.record_success()
    assert cb.state == "CLOSED"
    await cb.before_call()


@pytest.mark.asyncio
async def test_failed_trial_reopens():
    cb = CircuitBreaker("unit", failure_threshold=1, recovery_timeout=60)
    await cb.record_failure()

    with pytest.raises(CircuitOpenError):
        await cb.before_call()

    cb.recovery_timeout = 0
    await cb.before_call()
    await cb.record_failure()
    assert cb.state == "OPEN"


@pytest.mark.asyncio
async def test_success_resets_the_failure_count():
    cb = CircuitBreaker("unit", failure_threshold=2, recovery_timeout=60)

    await cb.record_failure()
    await cb.record_success()
    await cb.record_failure()

    assert cb.state == "CLOSED"


@pytest.mark.asyncio
async def test_open_gateway_circuit_refuses_checkout(ac_client, session_factory, monkeypatch):
    gateway = FakeGateway(fail_with=httpx.ConnectError("gateway down"))
    monkeypatch.setattr(f"{ORDERS_MODULE}.create_gateway_session", gateway)
    ids = await seed_variant(session_factory, stock=5)
    cart = [{"product_id": ids["product_id"], "variant_id": ids["variant_id"], "quantity": 1}]

    for _ in range(gateway_circuit.failure_threshold):
        resp = await ac_client.post(CREATE_PATH, json={"cartItems": cart}, headers=auth_headers())
        assert resp.status_code == 502

    resp = await ac_client.post(CREATE_PATH, json={"cartItems": cart, "reserveStock": True}, headers=auth_headers())

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "PAYMENT_GATEWAY_UNAVAILABLE"
    assert len(gateway.calls) == gateway_circuit.failure_threshold
    # refused before any hold was taken
    assert await stock_of(session_factory, ids["variant_id"]) == 5

    # gateway is back and the recovery window has passed
    gateway.fail_with = None
    monkeypatch.setattr(gateway_circuit, "recovery_timeout", 0)
    resp = await ac_client.post(CREATE_PATH, json={"cartItems": cart, "reserveStock": True}, headers=auth_headers())

    assert resp.status_code == 200
    assert gateway_circuit.state == "CLOSED"
    ref = gateway.calls[-1]["params"]["metadata"]["reservation_ref"]
    assert await reservation_statuses(session_factory, ref) == ["held"]


@pytest.mark.asyncio
async def test_rejected_cart_hands_back_the_trial_slot(ac_client, session_factory, monkeypatch):
    monkeypatch.setattr(f"{ORDERS_MODULE}.create_gateway_session", FakeGateway())
    monkeypatch.setattr(gateway_circuit, "recovery_timeout", 0)
    for _ in range(gateway_circuit.failure_threshold):
        await gateway_circuit.record_failure()
    ids = await seed_variant(session_factory, stock=1)

    # out of stock , the gateway is never called
    short = [{"product_id": ids["product_id"], "variant_id": ids["variant_id"], "quantity": 3}]
    resp = await ac_client.post(CREATE_PATH, json={"cartItems": short}, headers=auth_headers())
    assert resp.status_code == 400

    cart = [{"product_id": ids["product_id"], "variant_id": ids["variant_id"], "quantity": 1}]
    resp = await ac_client.post(CREATE_PATH, json={"cartItems": cart}, headers=auth_headers())
    assert resp.status_code == 200
    assert gateway_circuit.state == "CLOSED"

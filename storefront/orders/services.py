from typing import Any, Dict, List, Optional
import httpx
from uuid6 import uuid7
from storefront.cart.repository import coerce_quantity
from storefront.common.circuit_breaker import CircuitOpenError
from storefront.common.custom_exceptions import (
    DiscountNotFound, GatewayUnavailable, InsufficientStock, PaymentGatewayError, ValidationFailed,
)
from storefront.common.retries import is_retryable_http_error, retry_async
from storefront.config.settings import config_settings
from storefront.discounts.services import apply_discount
from storefront.inventory.constants import RESERVATION_TTL_MINUTES
from storefront.inventory.repository import get_variants_snapshot
from storefront.inventory.reservations import hold, release_session
from storefront.orders.constants import META_DISCOUNT_CODE, META_EMAIL, META_RESERVATION_REF, META_USER_ID, gateway_circuit, logger
from storefront.orders.repository import store_checkout_session
from storefront.orders.utils import encode_form
from storefront.schema.full_schema import CheckoutStatus

PSP_API_BASE=config_settings.PAYMENT_GATEWAY_URL
PSP_SECRET_KEY=config_settings.PAYMENT_SECRET_KEY
PSP_TIMEOUT=config_settings.PAYMENT_TIMEOUT_SECONDS
PSP_MAX_RETRIES=config_settings.PAYMENT_MAX_RETRIES
SITE_URL=config_settings.SITE_URL.rstrip("/")
DEFAULT_CURRENCY=config_settings.DEFAULT_CURRENCY.lower()


@retry_async(attempts=PSP_MAX_RETRIES, base_delay=0.5, if_retryable=is_retryable_http_error)
async def gateway_post(path: str, params: Dict[str, Any], idempotency_key: Optional[str] = None) -> dict:
    url = f"{PSP_API_BASE}{path}"
    headers = {}
    if idempotency_key:
        # same key on every retry so the gateway never opens two sessions for one build
        headers["Idempotency-Key"] = idempotency_key
    async with httpx.AsyncClient(timeout=PSP_TIMEOUT, auth=(PSP_SECRET_KEY, "")) as client:
        resp = await client.post(url, data=dict(encode_form(params)), headers=headers)
        resp.raise_for_status()
        return resp.json()


async def create_gateway_session(params: Dict[str, Any], discount_amount: int, currency: str,
                                 idempotency_key: str) -> dict:
    """Open the hosted checkout session , creating a one-off coupon first when a discount applies."""
    if discount_amount > 0:
        coupon = await gateway_post(
            "/coupons",
            {"amount_off": discount_amount, "currency": currency, "duration": "once", "max_redemptions": 1},
            idempotency_key=f"{idempotency_key}:coupon",
        )
        params = {**params, "discounts": [{"coupon": coupon["id"]}]}
    return await gateway_post("/checkout/sessions", params, idempotency_key=idempotency_key)


def normalize_cart_lines(cart_lines: List[Dict[str, Any]]) -> List[Dict[str, int]]:
    """Validate client lines and fold repeated variants into one line."""
    if not cart_lines:
        raise ValidationFailed("Cart is empty")

    merged: Dict[int, Dict[str, int]] = {}
    for it in cart_lines:
        it = it or {}
        product_id = it.get("product_id")
        variant_id = it.get("variant_id")
        if not product_id or not variant_id:
            raise ValidationFailed("Invalid item", details={"item": it})
        try:
            product_id, variant_id = int(product_id), int(variant_id)
        except (TypeError, ValueError):
            raise ValidationFailed("Invalid item", details={"item": it})

        qty = coerce_quantity(it.get("quantity"))
        line = merged.get(variant_id)
        if line is None:
            merged[variant_id] = {"product_id": product_id, "variant_id": variant_id, "quantity": qty}
        elif line["product_id"] != product_id:
            raise ValidationFailed("Invalid item", details={"variant_id": variant_id})
        else:
            line["quantity"] += qty
    return list(merged.values())


async def price_cart_lines(session, lines: List[Dict[str, int]]) -> List[Dict[str, Any]]:
    """Attach authoritative prices and check every line against current stock."""
    snapshot = await get_variants_snapshot(session, [it["variant_id"] for it in lines])

    priced = []
    shortages = []
    for it in lines:
        variant = snapshot.get(it["variant_id"])
        if variant is None or variant["product_id"] != it["product_id"] or not variant["product_active"]:
            raise ValidationFailed("Variant not found", details={"variant_id": it["variant_id"], "product_id": it["product_id"]})
        if it["quantity"] > variant["stock_quantity"]:
            shortages.append({"variant_id": it["variant_id"], "requested": it["quantity"], "available": variant["stock_quantity"]})
            continue
        priced.append({
            **it,
            "unit_price": variant["price"],
            "name": variant["product_name"] or "Product",
            "size": variant["size"],
            "color": variant["color"],
        })

    if shortages:
        raise InsufficientStock("Insufficient stock", details=shortages)
    return priced


def build_gateway_params(lines: List[Dict[str, Any]], currency: str, owner: Dict[str, Optional[str]],
                         discount_code: Optional[str], reservation_ref: Optional[str]) -> Dict[str, Any]:
    metadata = {
        META_USER_ID: owner.get("user_id") or "",
        META_EMAIL: owner.get("email") or "",
        META_DISCOUNT_CODE: discount_code or "",
        META_RESERVATION_REF: reservation_ref or "",
    }
    line_items = []
    for it in lines:
        line_items.append({
            "price_data": {
                "currency": currency,
                "unit_amount": it["unit_price"],
                "product_data": {
                    "name": it["name"],
                    "metadata": {
                        "product_id": it["product_id"],
                        "variant_id": it["variant_id"],
                        "size": it["size"] or "",
                        "color": it["color"] or "",
                    },
                },
            },
            "quantity": it["quantity"],
        })

    success_url = f"{SITE_URL}{config_settings.CHECKOUT_SUCCESS_PATH}?session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = f"{SITE_URL}{config_settings.CHECKOUT_CANCEL_PATH}"
    params = {
        "mode": "payment",
        "line_items": line_items,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "customer_email": owner.get("email"),
        "metadata": metadata,
        # failure events on the payment intent still need the reservation link
        "payment_intent_data": {"metadata": metadata},
    }
    countries = config_settings.SHIPPING_ALLOWED_COUNTRIES
    if countries:
        # the hosted page collects the address , it comes back on the completed session
        params["shipping_address_collection"] = {"allowed_countries": list(countries)}
    return params


async def build_checkout_session(session, owner: Dict[str, Optional[str]], cart_lines: List[Dict[str, Any]],
                                 discount_code: Optional[str] = None, reserve: bool = False) -> Dict[str, str]:
    """Price the cart from stored data , optionally hold the stock , and open a gateway session.

    Holds are committed before the gateway is called and released again if the call fails ,
    so no ledger transaction is open while waiting on the network.
    """
    lines = normalize_cart_lines(cart_lines)
    discount_code = (discount_code or "").strip() or None
    currency = DEFAULT_CURRENCY
    reservation_ref = None

    try:
        await gateway_circuit.before_call()
    except CircuitOpenError as exc:
        logger.warning("checkout.gateway.circuit_open", extra={"user_identifier": owner.get("user_id"), "error": str(exc)})
        raise GatewayUnavailable("Payment service temporarily unavailable , try again shortly") from exc

    try:
        priced = await price_cart_lines(session, lines)
        subtotal = sum(it["unit_price"] * it["quantity"] for it in priced)

        discount_amount = 0
        if discount_code:
            try:
                quote = await apply_discount(session, discount_code, subtotal)
            except DiscountNotFound as exc:
                # an unknown code is a bad checkout request here , not a missing resource
                raise ValidationFailed(exc.message, details={"discount_code": discount_code}) from exc
            discount_amount = quote["amountOff"]

        if reserve:
            reservation_ref = str(uuid7())
            await hold(session, reservation_ref, priced)
        await session.commit()
    except Exception:
        await session.rollback()
        await gateway_circuit.release_trial()
        raise

    params = build_gateway_params(priced, currency, owner, discount_code, reservation_ref)
    idempotency_key = str(uuid7())
    try:
        gateway_session = await create_gateway_session(params, discount_amount, currency, idempotency_key)
    except Exception as exc:
        await gateway_circuit.record_failure()
        logger.error("checkout.gateway.failed", extra={
            "user_identifier": owner.get("user_id"),
            "reservation_ref": reservation_ref,
            "error": str(exc),
        })
        if reservation_ref:
            await release_session(session, reservation_ref, note="gateway session failed")
            await session.commit()
        raise PaymentGatewayError("Could not open a payment session") from exc

    session_id = gateway_session.get("id")
    url = gateway_session.get("url")
    if not session_id or not url:
        await gateway_circuit.record_failure()
        if reservation_ref:
            await release_session(session, reservation_ref, note="gateway session failed")
            await session.commit()
        raise PaymentGatewayError("Payment gateway returned no session")
    await gateway_circuit.record_success()

    snapshot = [
        {"product_id": it["product_id"], "variant_id": it["variant_id"], "quantity": it["quantity"], "unit_price": it["unit_price"]}
        for it in priced
    ]
    await store_checkout_session(
        session,
        session_id,
        user_id=owner.get("user_id"),
        email=owner.get("email"),
        line_items=snapshot,
        subtotal=subtotal,
        discount_code=discount_code,
        discount_amount=discount_amount,
        total=max(0, subtotal - discount_amount),
        currency=currency,
        reservation_ref=reservation_ref,
        status=CheckoutStatus.OPEN.value,
    )
    await session.commit()

    logger.info("checkout.session.created", extra={
        "session_id": session_id,
        "user_identifier": owner.get("user_id"),
        "subtotal": subtotal,
        "discount_amount": discount_amount,
        "reservation_ref": reservation_ref,
        "reserve_ttl_minutes": RESERVATION_TTL_MINUTES if reservation_ref else None,
    })
    return {"url": url, "id": session_id}

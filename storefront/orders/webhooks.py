import json
from collections import defaultdict
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.common.custom_exceptions import SettlementError, StorefrontError, ValidationFailed
from storefront.common.logging_setup import request_id_ctx
from storefront.common.utils import json_ok
from storefront.config.settings import config_settings
from storefront.db.dependencies import get_session
from storefront.inventory.repository import decrement
from storefront.inventory.reservations import consume_session, release_session
from storefront.orders.constants import SIGNATURE_HEADER, logger
from storefront.orders.events import Ignored, PaymentFailed, PaymentSucceeded, WebhookEvent, parse_event
from storefront.orders.repository import (
    get_checkout_session, insert_order_if_absent, insert_order_items, mark_webhook_processed,
    record_webhook_event, update_checkout_status, webhook_error_recorded,
)
from storefront.orders.utils import verify_signature
from storefront.schema.full_schema import CheckoutStatus, OrderStatus, PaymentStatus

webhooks_router=APIRouter()


async def settle_stock(session, order_id: str, lines: List[Dict[str, Any]], reservation_ref: Optional[str]) -> None:
    """Permanently remove the ordered units from stock.

    Units still held under the reservation are consumed (they left stock at hold time) ,
    anything not covered by a live hold , e.g. a hold that expired before payment , is
    decremented directly.
    """
    consumed = defaultdict(int)
    if reservation_ref:
        for r in await consume_session(session, reservation_ref):
            consumed[r["variant_id"]] += r["quantity"]

    for it in sorted(lines, key=lambda x: int(x["variant_id"])):
        variant_id = int(it["variant_id"])
        remaining = int(it["quantity"]) - consumed.get(variant_id, 0)
        if remaining > 0:
            await decrement(session, variant_id, remaining, ref=order_id)


async def materialize_paid_order(session, event: PaymentSucceeded) -> str:
    checkout = await get_checkout_session(session, event.session_id)
    if checkout is None:
        # nothing to settle against yet , the redelivery will find the snapshot
        raise SettlementError(f"No checkout snapshot for session {event.session_id}")

    shipping_amount = event.shipping_amount or 0
    expected_total = checkout.total + shipping_amount
    total = event.amount_total if event.amount_total is not None else expected_total
    if total != expected_total:
        logger.warning("payment_webhook.amount_mismatch", extra={
            "session_id": event.session_id, "gateway_total": total, "local_total": expected_total,
        })

    created = await insert_order_if_absent(
        session,
        event.session_id,
        user_id=event.user_id or checkout.user_id,
        email=event.email or checkout.email,
        currency=(event.currency or checkout.currency).lower(),
        subtotal=checkout.subtotal,
        discount_amount=checkout.discount_amount,
        shipping_amount=shipping_amount,
        total=total,
        discount_code=event.discount_code or checkout.discount_code,
        payment_intent_id=event.payment_intent_id,
        shipping_address=event.shipping_address,
        billing_address=event.billing_address,
        payment_status=PaymentStatus.PAID.value,
        status=OrderStatus.PAID.value,
    )
    if not created:
        logger.info("payment_webhook.order_exists", extra={"session_id": event.session_id, "event_id": event.event_id})
        return "already processed"

    reservation_ref = event.reservation_ref or checkout.reservation_ref
    try:
        await settle_stock(session, event.session_id, checkout.line_items, reservation_ref)
    except StorefrontError as exc:
        raise SettlementError(f"Stock settlement failed for session {event.session_id}: {exc.message}", details=exc.details) from exc

    await insert_order_items(session, event.session_id, checkout.line_items)
    await update_checkout_status(
        session, CheckoutStatus.COMPLETED.value, session_id=event.session_id,
        from_statuses=(CheckoutStatus.OPEN.value, CheckoutStatus.FAILED.value, CheckoutStatus.ABANDONED.value),
    )
    # TODO: decrement remaining uses once discount codes carry a usage limit
    logger.info("payment_webhook.order_created", extra={
        "order_id": event.session_id,
        "user_identifier": event.user_id or checkout.user_id,
        "total": total,
        "reservation_ref": reservation_ref,
    })
    return "order created"


async def handle_failed_payment(session, event: PaymentFailed) -> str:
    reservation_ref = event.reservation_ref
    if not reservation_ref and event.session_id:
        checkout = await get_checkout_session(session, event.session_id)
        reservation_ref = checkout.reservation_ref if checkout else None

    released = 0
    if reservation_ref:
        released = await release_session(session, reservation_ref, note=event.event_type)

    new_status = CheckoutStatus.ABANDONED.value if event.event_type == "checkout.session.expired" else CheckoutStatus.FAILED.value
    await update_checkout_status(session, new_status, session_id=event.session_id, reservation_ref=reservation_ref)

    logger.info("payment_webhook.payment_failed", extra={
        "session_id": event.session_id,
        "reservation_ref": reservation_ref,
        "released": released,
        "reason": event.reason,
    })
    return "payment failed"


async def dispatch_event(session, event: WebhookEvent) -> str:
    if isinstance(event, PaymentSucceeded):
        return await materialize_paid_order(session, event)
    if isinstance(event, PaymentFailed):
        return await handle_failed_payment(session, event)
    if isinstance(event, Ignored):
        logger.info("payment_webhook.ignored", extra={"event_type": event.event_type, "reason": event.reason})
        return "ignored"
    raise TypeError(f"unexpected webhook event {event!r}")


@webhooks_router.post("/webhook")
async def payment_webhook(request: Request, session: AsyncSession = Depends(get_session)):
    body = await request.body()
    # nothing is written for a delivery that fails verification
    verify_signature(body, request.headers.get(SIGNATURE_HEADER), config_settings.PAYMENT_WEBHOOK_SECRET)

    try:
        payload = json.loads(body)
    except ValueError:
        logger.error("payment_webhook.invalid_json")
        raise ValidationFailed("Invalid webhook payload")
    if not isinstance(payload, dict):
        raise ValidationFailed("Invalid webhook payload")

    event = parse_event(payload)
    event_id = event.event_id

    if event_id:
        await record_webhook_event(session, event_id, event.event_type, getattr(event, "session_id", None), payload)
        await session.commit()

    try:
        note = await dispatch_event(session, event)
        if event_id:
            await mark_webhook_processed(session, event_id)
        await session.commit()
    except Exception as exc:
        rid = request_id_ctx.get(None)
        await session.rollback()
        if event_id:
            try:
                await webhook_error_recorded(session, event_id, last_error=str(exc))
                await session.commit()
            except Exception as rb_err:
                logger.error(
                    "payment_webhook.record_error_failure",
                    exc_info=(type(rb_err), rb_err, rb_err.__traceback__),
                    extra={"request_id": rid, "event_id": event_id},
                )
        # non 2xx makes the gateway redeliver , reraise to keep the traceback in logs
        raise

    logger.info("payment_webhook.processed", extra={"event_id": event_id, "event_type": event.event_type, "note": note})
    return json_ok({"received": True})

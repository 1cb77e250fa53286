from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import insert, select, update
from storefront.common.utils import now
from storefront.db.utils import dialect_insert
from storefront.orders.constants import PAYMENT_PROVIDER
from storefront.schema.full_schema import CheckoutSession, CheckoutStatus, OrderItem, Orders, PaymentWebhookEvent


async def store_checkout_session(session, session_id: str, **fields) -> None:
    ts = now()
    stmt = insert(CheckoutSession).values(id=session_id, created_at=ts, updated_at=ts, **fields)
    await session.execute(stmt)


async def get_checkout_session(session, session_id: str) -> Optional[CheckoutSession]:
    stmt = select(CheckoutSession).where(CheckoutSession.id == session_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def update_checkout_status(session, new_status: str, *, session_id: Optional[str] = None,
                                 reservation_ref: Optional[str] = None,
                                 from_statuses: Tuple[str, ...] = (CheckoutStatus.OPEN.value,)) -> int:
    """Move a checkout to a new status . Checkouts not in `from_statuses` keep theirs."""
    stmt = update(CheckoutSession).where(CheckoutSession.status.in_(from_statuses))
    if session_id:
        stmt = stmt.where(CheckoutSession.id == session_id)
    elif reservation_ref:
        stmt = stmt.where(CheckoutSession.reservation_ref == reservation_ref)
    else:
        return 0
    stmt = stmt.values(status=new_status, updated_at=now()).execution_options(synchronize_session=False)
    res = await session.execute(stmt)
    return res.rowcount


async def insert_order_if_absent(session, order_id: str, **fields) -> bool:
    """Insert the order keyed by the checkout session id . False when it already exists."""
    ts = now()
    stmt = (
        dialect_insert(session, Orders)
        .values(id=order_id, created_at=ts, updated_at=ts, **fields)
        .on_conflict_do_nothing(index_elements=["id"])
        .returning(Orders.id)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none() is not None


async def insert_order_items(session, order_id: str, lines: List[Dict[str, Any]]) -> None:
    if not lines:
        return
    rows = [
        {
            "order_id": order_id,
            "product_id": int(it["product_id"]),
            "variant_id": int(it["variant_id"]),
            "quantity": int(it["quantity"]),
            "unit_price": int(it["unit_price"]),
        }
        for it in lines
    ]
    await session.execute(insert(OrderItem), rows)


async def get_order_with_items(session, order_id: str) -> Optional[Dict[str, Any]]:
    stmt = select(Orders).where(Orders.id == order_id)
    res = await session.execute(stmt)
    order = res.scalar_one_or_none()
    if order is None:
        return None

    items_stmt = select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
    items_res = await session.execute(items_stmt)
    items = items_res.scalars().all()

    return {
        "order": order,
        "items": [
            {
                "product_id": it.product_id,
                "variant_id": it.variant_id,
                "quantity": it.quantity,
                "unit_price": it.unit_price,
            }
            for it in items
        ],
    }


async def record_webhook_event(session, provider_event_id: str, event_type: str,
                               session_id: Optional[str], payload: dict) -> bool:
    """Keep an audit row per delivery . Redeliveries of the same provider event are no-ops."""
    stmt = (
        dialect_insert(session, PaymentWebhookEvent)
        .values(
            provider=PAYMENT_PROVIDER,
            provider_event_id=provider_event_id,
            event_type=event_type,
            session_id=session_id,
            payload=payload,
            created_at=now(),
        )
        .on_conflict_do_nothing(index_elements=["provider_event_id"])
        .returning(PaymentWebhookEvent.id)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none() is not None


async def mark_webhook_processed(session, provider_event_id: str, last_error: Optional[str] = None) -> None:
    stmt = (
        update(PaymentWebhookEvent)
        .where(PaymentWebhookEvent.provider_event_id == provider_event_id)
        .values(processed_at=now(), last_error=last_error)
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)


async def webhook_error_recorded(session, provider_event_id: str, last_error: str) -> None:
    stmt = (
        update(PaymentWebhookEvent)
        .where(PaymentWebhookEvent.provider_event_id == provider_event_id)
        .values(last_error=last_error[:1000])
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)


async def get_webhook_event(session, provider_event_id: str) -> Optional[PaymentWebhookEvent]:
    stmt = select(PaymentWebhookEvent).where(PaymentWebhookEvent.provider_event_id == provider_event_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.dependencies import require_user
from storefront.common.custom_exceptions import NotFound
from storefront.common.utils import json_ok
from storefront.db.dependencies import get_session
from storefront.orders.models import CheckoutSessionInput
from storefront.orders.repository import get_order_with_items
from storefront.orders.services import build_checkout_session
from storefront.rate_limiting.dependencies import checkout_rate_limit

orders_router=APIRouter()


# cart page "checkout" button , returns the hosted payment page to redirect to
@orders_router.post("/checkout/create-session", dependencies=[Depends(checkout_rate_limit)])
async def create_checkout_session(request:Request, payload: CheckoutSessionInput,
    user_identifier: str = Depends(require_user),
    session: AsyncSession = Depends(get_session)):

    owner = {"user_id": user_identifier, "email": getattr(request.state, "user_email", None)}
    result = await build_checkout_session(
        session,
        owner,
        payload.cartItems,
        discount_code=payload.discountCode,
        reserve=payload.reserveStock,
    )
    return json_ok(result)


# success page polls this with the session id from the redirect url
@orders_router.get("/orders/{session_id}")
async def get_order_status(session_id: str,
    user_identifier: str = Depends(require_user),
    session: AsyncSession = Depends(get_session)):

    data = await get_order_with_items(session, session_id)
    # someone else's order reads the same as a missing one
    if data is None or data["order"].user_id != user_identifier:
        raise NotFound("Order not found")

    order = data["order"]
    return json_ok({
        "id": order.id,
        "status": order.status,
        "payment_status": order.payment_status,
        "currency": order.currency,
        "subtotal": order.subtotal,
        "discount_amount": order.discount_amount,
        "shipping_amount": order.shipping_amount,
        "total": order.total,
        "discount_code": order.discount_code,
        "shipping_address": order.shipping_address,
        "billing_address": order.billing_address,
        "items": data["items"],
        "created_at": order.created_at.isoformat() if order.created_at else None,
    })

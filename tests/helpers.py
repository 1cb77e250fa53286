import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from jose import jwt
from sqlalchemy import func, select
from storefront.config.settings import config_settings
from storefront.orders.utils import build_signature_header
from storefront.schema.full_schema import DiscountCode, InventoryTransaction, Orders, Product, StockReservation, Variant

url_prefix = "/api/v1"


def make_token(sub: str = "user-1", email: Optional[str] = "shopper@example.com",
               roles: Optional[List[str]] = None, expires_in: int = 3600, secret: Optional[str] = None) -> str:
    issued = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "email": email,
        "roles": roles or ["customer"],
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(seconds=expires_in)).timestamp()),
    }
    return jwt.encode(payload, secret or config_settings.JWT_SECRET, algorithm=config_settings.JWT_ALGO)


def auth_headers(sub: str = "user-1", **kwargs) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub, **kwargs)}"}


def admin_headers(sub: str = "admin-1") -> Dict[str, str]:
    return auth_headers(sub, email="admin@example.com", roles=["admin"])


async def seed_variant(session_factory, stock: int = 5, price: int = 2500, name: str = "Linen Shirt",
                       size: str = "M", color: str = "sand") -> Dict[str, int]:
    async with session_factory() as session:
        product = Product(name=name)
        session.add(product)
        await session.flush()
        variant = Variant(product_id=product.id, price=price, stock_quantity=stock, size=size, color=color)
        session.add(variant)
        await session.commit()
        return {"product_id": product.id, "variant_id": variant.id}


async def seed_discount(session_factory, code: str, type: str, value: int, **fields) -> None:
    async with session_factory() as session:
        session.add(DiscountCode(code=code, type=type, value=value, **fields))
        await session.commit()


async def stock_of(session_factory, variant_id: int) -> int:
    async with session_factory() as session:
        res = await session.execute(select(Variant.stock_quantity).where(Variant.id == variant_id))
        return res.scalar_one()


async def ledger_kinds(session_factory, variant_id: int) -> List[str]:
    async with session_factory() as session:
        res = await session.execute(
            select(InventoryTransaction.kind).where(InventoryTransaction.variant_id == variant_id).order_by(InventoryTransaction.id)
        )
        return list(res.scalars().all())


async def ledger_sum(session_factory, variant_id: int) -> int:
    async with session_factory() as session:
        res = await session.execute(
            select(func.coalesce(func.sum(InventoryTransaction.quantity), 0)).where(InventoryTransaction.variant_id == variant_id)
        )
        return int(res.scalar_one())


async def reservation_statuses(session_factory, session_ref: str) -> List[str]:
    async with session_factory() as session:
        res = await session.execute(
            select(StockReservation.status).where(StockReservation.session_ref == session_ref).order_by(StockReservation.variant_id)
        )
        return list(res.scalars().all())


async def count_orders(session_factory) -> int:
    async with session_factory() as session:
        res = await session.execute(select(func.count()).select_from(Orders))
        return int(res.scalar_one())


def checkout_event(event_type: str, session_id: str, event_id: str, metadata: Optional[Dict[str, str]] = None,
                   payment_status: str = "paid", amount_total: Optional[int] = None, **obj_fields) -> Dict[str, Any]:
    obj = {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": payment_status,
        "metadata": metadata or {},
        "currency": "usd",
        **obj_fields,
    }
    if amount_total is not None:
        obj["amount_total"] = amount_total
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def signed_body(event: Dict[str, Any], secret: Optional[str] = None, timestamp: Optional[int] = None):
    body = json.dumps(event).encode()
    header = build_signature_header(body, secret or config_settings.PAYMENT_WEBHOOK_SECRET, timestamp)
    return body, {"Stripe-Signature": header, "Content-Type": "application/json"}

from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from storefront.cart.constants import logger
from storefront.common.utils import now
from storefront.db.utils import dialect_insert
from storefront.schema.full_schema import CartItem, Variant


def coerce_quantity(quantity: Any) -> int:
    try:
        return max(1, int(quantity or 1))
    except (TypeError, ValueError):
        return 1


def coerce_id(value: Any) -> Optional[int]:
    """Positive integer id , or None for anything else (bools , floats with a fraction , junk strings)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def coerce_price(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed >= 0 else None


async def get_variant_price(session, variant_id: int) -> Optional[int]:
    stmt = select(Variant.price).where(Variant.id == variant_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def upsert_cart_line(session, user_id: str, product_id: int, variant_id: int, quantity: int, price_at_time: Optional[int]):
    """Add quantity to the shopper's line for (product , variant) , creating the line if it is absent."""
    ts = now()
    stmt = dialect_insert(session, CartItem).values(
        user_id=user_id,
        product_id=product_id,
        variant_id=variant_id,
        quantity=quantity,
        price_at_time=price_at_time,
        added_at=ts,
        updated_at=ts,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "product_id", "variant_id"],
        set_={"quantity": CartItem.quantity + stmt.excluded.quantity, "updated_at": ts},
    )
    await session.execute(stmt)


async def merge_cart(session, user_id: str, items: List[Dict[str, Any]]) -> Dict[str, int]:
    """Fold an anonymous cart into the signed in shopper's persisted cart.

    Every line runs in its own savepoint , a bad line is counted and skipped without
    undoing lines merged before it. Merging the same payload twice adds twice.
    """
    merged = 0
    errors = 0

    for it in items:
        if not isinstance(it, dict):
            errors += 1
            continue
        product_id = coerce_id(it.get("product_id"))
        variant_id = coerce_id(it.get("variant_id"))
        if product_id is None or variant_id is None:
            errors += 1
            logger.info("cart.merge.line_skipped", extra={
                "user_identifier": user_id,
                "product_id": it.get("product_id"),
                "variant_id": it.get("variant_id"),
            })
            continue

        qty = coerce_quantity(it.get("quantity"))
        price_at_time = coerce_price(it.get("price_at_time"))

        try:
            async with session.begin_nested():
                if price_at_time is None:
                    price_at_time = await get_variant_price(session, variant_id)
                await upsert_cart_line(session, user_id, product_id, variant_id, qty, price_at_time)
            merged += 1
        except IntegrityError as exc:
            # unknown product or variant ids trip the foreign keys
            errors += 1
            logger.warning("cart.merge.line_failed", extra={
                "user_identifier": user_id,
                "product_id": product_id,
                "variant_id": variant_id,
                "error": str(exc.orig),
            })

    logger.info("cart.merge.done", extra={"user_identifier": user_id, "merged": merged, "errors": errors})
    return {"merged": merged, "errors": errors}


async def get_cart_items(session, user_id: str) -> List[CartItem]:
    stmt = select(CartItem).where(CartItem.user_id == user_id).order_by(CartItem.id)
    res = await session.execute(stmt)
    return list(res.scalars().all())

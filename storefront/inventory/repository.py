from typing import Dict, List, Optional
from sqlalchemy import insert, select, update
from storefront.common.custom_exceptions import InsufficientStock, NotFound, ValidationFailed
from storefront.common.utils import now
from storefront.inventory.constants import logger
from storefront.schema.full_schema import InventoryTransaction, InventoryTxnKind, Product, Variant

# sign each kind of ledger entry must carry , ADJUST may go either way
_KIND_SIGN = {
    InventoryTxnKind.HOLD: -1,
    InventoryTxnKind.DECREMENT: -1,
    InventoryTxnKind.RELEASE: 1,
    InventoryTxnKind.RESTOCK: 1,
}


async def current_stock(session, variant_id: int) -> int:
    stmt = select(Variant.stock_quantity).where(Variant.id == variant_id)
    res = await session.execute(stmt)
    stock = res.scalar_one_or_none()
    if stock is None:
        raise NotFound(f"Variant {variant_id} not found")
    return int(stock)


async def get_variants_snapshot(session, variant_ids: List[int]) -> Dict[int, dict]:
    """Authoritative price and stock for the given variants , keyed by variant id."""
    stmt = (
        select(Variant.id, Variant.product_id, Variant.price, Variant.stock_quantity,
               Variant.size, Variant.color, Product.name, Product.is_active)
        .join(Product, Product.id == Variant.product_id)
        .where(Variant.id.in_(variant_ids))
    )
    res = await session.execute(stmt)
    return {
        int(r.id): {
            "product_id": int(r.product_id),
            "product_name": r.name,
            "product_active": bool(r.is_active),
            "size": r.size,
            "color": r.color,
            "price": int(r.price),
            "stock_quantity": int(r.stock_quantity),
        }
        for r in res.all()
    }


async def record(session, variant_id: int, delta: int, kind, ref: Optional[str] = None, note: Optional[str] = None) -> int:
    """Apply a signed stock change and append its ledger row. Returns the new stock.

    The stock check and the write are one conditional UPDATE , so two concurrent
    callers can never both pass the check and oversell. Caller owns commit/rollback.
    """
    kind = InventoryTxnKind(kind)
    delta = int(delta)
    if delta == 0:
        raise ValidationFailed("Stock delta must be non zero")
    expected_sign = _KIND_SIGN.get(kind)
    if expected_sign is not None and (delta > 0) != (expected_sign > 0):
        raise ValidationFailed(f"Delta {delta} has the wrong sign for a {kind.value} entry")

    stmt = (
        update(Variant)
        .where(Variant.id == variant_id, Variant.stock_quantity + delta >= 0)
        .values(stock_quantity=Variant.stock_quantity + delta, updated_at=now())
        .returning(Variant.stock_quantity)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    new_stock = res.scalar_one_or_none()

    if new_stock is None:
        # either the variant does not exist or stock would go negative
        available = await current_stock(session, variant_id)
        logger.info("inventory.record.insufficient_stock", extra={
            "variant_id": variant_id,
            "requested": -delta,
            "available": available,
            "kind": kind.value,
        })
        raise InsufficientStock(
            f"Not enough stock for variant {variant_id}: requested={-delta}, available={available}",
            details=[{"variant_id": variant_id, "requested": -delta, "available": available}],
        )

    await session.execute(
        insert(InventoryTransaction).values(
            variant_id=variant_id,
            quantity=delta,
            kind=kind.value,
            reference=ref,
            note=note,
            created_at=now(),
        )
    )
    logger.debug("inventory.record.applied", extra={
        "variant_id": variant_id, "delta": delta, "kind": kind.value, "stock": int(new_stock), "reference": ref,
    })
    return int(new_stock)


async def decrement(session, variant_id: int, quantity: int, ref: Optional[str] = None) -> int:
    return await record(session, variant_id, -int(quantity), InventoryTxnKind.DECREMENT, ref=ref, note="order settlement")


async def adjust(session, variant_id: int, delta: int, note: Optional[str] = "sync") -> int:
    """Privileged stock sync , restock for positive deltas and adjust for negative ones."""
    kind = InventoryTxnKind.RESTOCK if int(delta) > 0 else InventoryTxnKind.ADJUST
    return await record(session, variant_id, delta, kind, note=note)


async def list_transactions(session, variant_id: int) -> List[InventoryTransaction]:
    stmt = (
        select(InventoryTransaction)
        .where(InventoryTransaction.variant_id == variant_id)
        .order_by(InventoryTransaction.id)
    )
    res = await session.execute(stmt)
    return list(res.scalars().all())

from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional
from uuid6 import uuid7
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from storefront.common.custom_exceptions import Conflict, ValidationFailed
from storefront.common.utils import now
from storefront.inventory.constants import RESERVATION_SWEEP_BATCH, RESERVATION_TTL_MINUTES, logger
from storefront.inventory.repository import record
from storefront.schema.full_schema import InventoryTxnKind, ReservationStatus, StockReservation


def coalesce_lines(lines: Iterable[Dict[str, Any]]) -> Dict[int, int]:
    """Sum requested quantity per variant . Sorted by variant id so concurrent holds lock rows in the same order."""
    requested: Dict[int, int] = {}
    for it in lines:
        variant_id = it.get("variant_id")
        qty = int(it.get("quantity") or 0)
        if variant_id is None or qty < 1:
            raise ValidationFailed("Each reserved line needs a variant_id and a positive quantity")
        requested[int(variant_id)] = requested.get(int(variant_id), 0) + qty
    return dict(sorted(requested.items()))


async def hold(session, session_ref: str, lines, ttl: Optional[timedelta] = None) -> List[Dict[str, Any]]:
    """Reserve every line or none of them.

    Runs inside a savepoint : if any line cannot be held , the holds already taken for
    earlier lines in this call are rolled back with it and the error propagates.
    """
    ttl = ttl or timedelta(minutes=RESERVATION_TTL_MINUTES)
    requested = coalesce_lines(lines)
    if not requested:
        raise ValidationFailed("Nothing to reserve")

    created_at = now()
    expires_at = created_at + ttl
    reservations = []

    try:
        async with session.begin_nested():
            for variant_id, qty in requested.items():
                reservation_id = str(uuid7())
                await record(session, variant_id, -qty, InventoryTxnKind.HOLD, ref=reservation_id, note=f"hold for {session_ref}")
                await session.execute(
                    insert(StockReservation).values(
                        id=reservation_id,
                        session_ref=session_ref,
                        variant_id=variant_id,
                        quantity=qty,
                        status=ReservationStatus.HELD.value,
                        created_at=created_at,
                        expires_at=expires_at,
                    )
                )
                reservations.append({
                    "id": reservation_id,
                    "session_ref": session_ref,
                    "variant_id": variant_id,
                    "quantity": qty,
                    "expires_at": expires_at,
                })
    except IntegrityError as exc:
        # partial unique index : this session already holds one of these variants
        logger.warning("reservation.hold.duplicate", extra={"session_ref": session_ref, "error": str(exc.orig)})
        raise Conflict(f"An active reservation already exists for session {session_ref}")

    logger.info("reservation.hold.created", extra={
        "session_ref": session_ref,
        "reservations": len(reservations),
        "expires_at": expires_at.isoformat(),
    })
    return reservations


async def release(session, reservation_id: str, note: str = "released") -> bool:
    """Give held units back. Returns False when the reservation was not held (already released or consumed)."""
    stmt = (
        update(StockReservation)
        .where(StockReservation.id == reservation_id, StockReservation.status == ReservationStatus.HELD.value)
        .values(status=ReservationStatus.RELEASED.value, released_at=now())
        .returning(StockReservation.variant_id, StockReservation.quantity)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    row = res.one_or_none()
    if row is None:
        return False

    # only the caller that flipped held -> released returns the stock
    await record(session, int(row.variant_id), int(row.quantity), InventoryTxnKind.RELEASE, ref=reservation_id, note=note)
    logger.info("reservation.released", extra={"reservation_id": reservation_id, "variant_id": int(row.variant_id), "quantity": int(row.quantity)})
    return True


async def consume(session, reservation_id: str) -> bool:
    """Mark a hold as settled . Stock is untouched , it already left at hold time."""
    stmt = (
        update(StockReservation)
        .where(StockReservation.id == reservation_id, StockReservation.status == ReservationStatus.HELD.value)
        .values(status=ReservationStatus.CONSUMED.value, consumed_at=now())
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    consumed = res.rowcount > 0
    if consumed:
        logger.info("reservation.consumed", extra={"reservation_id": reservation_id})
    return consumed


async def held_reservation_ids(session, session_ref: str) -> List[str]:
    stmt = (
        select(StockReservation.id)
        .where(StockReservation.session_ref == session_ref, StockReservation.status == ReservationStatus.HELD.value)
        .order_by(StockReservation.variant_id)
    )
    res = await session.execute(stmt)
    return [r for r in res.scalars().all()]


async def release_session(session, session_ref: str, note: str = "checkout released") -> int:
    released = 0
    for reservation_id in await held_reservation_ids(session, session_ref):
        if await release(session, reservation_id, note=note):
            released += 1
    return released


async def consume_session(session, session_ref: str) -> List[Dict[str, Any]]:
    """Consume every held reservation of a checkout and return what was consumed."""
    stmt = (
        update(StockReservation)
        .where(StockReservation.session_ref == session_ref, StockReservation.status == ReservationStatus.HELD.value)
        .values(status=ReservationStatus.CONSUMED.value, consumed_at=now())
        .returning(StockReservation.id, StockReservation.variant_id, StockReservation.quantity)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    rows = res.all()
    logger.info("reservation.session_consumed", extra={"session_ref": session_ref, "consumed": len(rows)})
    return [{"id": r.id, "variant_id": int(r.variant_id), "quantity": int(r.quantity)} for r in rows]


async def get_reservations(session, session_ref: str) -> List[StockReservation]:
    stmt = select(StockReservation).where(StockReservation.session_ref == session_ref).order_by(StockReservation.variant_id)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def sweep_expired(session, as_of=None, batch_size: int = RESERVATION_SWEEP_BATCH) -> int:
    """Release held reservations past expires_at . Each release commits on its own to keep lock windows short."""
    as_of = as_of or now()
    stmt = (
        select(StockReservation.id)
        .where(StockReservation.status == ReservationStatus.HELD.value, StockReservation.expires_at <= as_of)
        .order_by(StockReservation.expires_at)
        .limit(batch_size)
    )
    res = await session.execute(stmt)
    expired_ids = list(res.scalars().all())
    await session.commit()

    released = 0
    for reservation_id in expired_ids:
        try:
            if await release(session, reservation_id, note="expired"):
                released += 1
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("reservation.sweep.release_failed", extra={"reservation_id": reservation_id})

    if released:
        logger.info("reservation.sweep.released", extra={"released": released, "scanned": len(expired_ids)})
    return released

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.dependencies import require_privileged_user
from storefront.common.utils import json_ok
from storefront.db.dependencies import get_session
from storefront.inventory.constants import logger
from storefront.inventory.models import InventorySyncInput
from storefront.inventory.repository import adjust

inventory_router = APIRouter()


# admin stock sync , a positive delta restocks and a negative one writes an adjustment
@inventory_router.post("/sync")
async def sync_inventory(payload: InventorySyncInput,
    user_identifier: str = Depends(require_privileged_user),
    session: AsyncSession = Depends(get_session)):

    try:
        stock_quantity = await adjust(session, payload.variant_id, payload.delta, note=f"sync by {user_identifier}")
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("inventory.sync.applied", extra={
        "variant_id": payload.variant_id,
        "delta": payload.delta,
        "stock_quantity": stock_quantity,
        "user_identifier": user_identifier,
    })
    return json_ok({"ok": True, "stock_quantity": stock_quantity})

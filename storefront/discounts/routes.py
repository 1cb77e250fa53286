from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.common.utils import json_ok
from storefront.db.dependencies import get_session
from storefront.discounts.models import DiscountApplyInput
from storefront.discounts.services import apply_discount

discounts_router = APIRouter()


@discounts_router.post("/apply")
async def apply_discount_code(payload: DiscountApplyInput, session: AsyncSession = Depends(get_session)):
    quote = await apply_discount(session, payload.code, payload.cartSubtotal)
    return json_ok({"ok": True, **quote})

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.dependencies import require_user
from storefront.cart.models import CartMergeInput
from storefront.cart.repository import merge_cart
from storefront.common.utils import json_ok
from storefront.db.dependencies import get_session

carts_router=APIRouter()


# called by the client right after sign in with whatever it kept in local storage
@carts_router.post("/merge")
async def merge_guest_cart(payload: CartMergeInput,
    user_identifier: str = Depends(require_user),
    session: AsyncSession = Depends(get_session)):

    items = payload.items
    if not items:
        return json_ok({"success": True, "merged": 0, "errors": 0})

    result = await merge_cart(session, user_identifier, items)
    await session.commit()

    return json_ok({"success": True, "merged": result["merged"], "errors": result["errors"]})

from typing import Optional
from sqlalchemy import select
from storefront.schema.full_schema import DiscountCode


async def get_active_discount(session, code: str) -> Optional[DiscountCode]:
    stmt = select(DiscountCode).where(DiscountCode.code == code, DiscountCode.is_active == True)  # noqa: E712
    res = await session.execute(stmt)
    return res.scalar_one_or_none()

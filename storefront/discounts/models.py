from pydantic import BaseModel


class DiscountApplyInput(BaseModel):
    code: str = ""
    cartSubtotal: int = 0

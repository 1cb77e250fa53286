from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class CheckoutSessionInput(BaseModel):
    cartItems: List[Dict[str, Any]] = []
    discountCode: Optional[str] = None
    reserveStock: bool = False

from typing import Any, List
from pydantic import BaseModel


# lines stay loosely typed , each one is checked on its own while merging
class CartMergeInput(BaseModel):
    items: List[Any] = []

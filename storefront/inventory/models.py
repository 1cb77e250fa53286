from pydantic import BaseModel


class InventorySyncInput(BaseModel):
    variant_id: int
    delta: int

import enum
from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, BigInteger, UniqueConstraint, text
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlmodel import Column, SQLModel, Field, Relationship, String
from storefront.common.utils import now


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"

class InventoryTxnKind(str, enum.Enum):
    HOLD = "hold"
    RELEASE = "release"
    DECREMENT = "decrement"
    RESTOCK = "restock"
    ADJUST = "adjust"

class ReservationStatus(str, enum.Enum):
    HELD = "held"
    CONSUMED = "consumed"
    RELEASED = "released"

class CheckoutStatus(str, enum.Enum):
    OPEN = "open"
    COMPLETED = "completed"
    FAILED = "failed"
    ABANDONED = "abandoned"

class OrderStatus(str, enum.Enum):
    PAID = "paid"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"

class PaymentStatus(str, enum.Enum):
    PAID = "paid"
    UNPAID = "unpaid"
    FAILED = "failed"


# --------------------------------------------------------------------------------------------
# Catalog , Product --> Variants (1:many) . Variant owns the stock counter .

class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, server_default=text("true")))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))

    variants: List["Variant"] = Relationship(back_populates="product")


class Variant(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(sa_column=Column(Integer, ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True))
    sku: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True, unique=True))
    size: Optional[str] = Field(default=None, sa_column=Column(String(32), nullable=True))
    color: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    price: int = Field(default=0, sa_column=Column(BigInteger, nullable=False), description="Price in minor units (cents)")
    # only the inventory ledger writes this column
    stock_quantity: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))

    product: "Product" = Relationship(back_populates="variants")

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_variant_stock_non_negative"),
    )


# append only , sum of deltas per variant reconciles with variant.stock_quantity
class InventoryTransaction(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    variant_id: int = Field(sa_column=Column(Integer, ForeignKey("variant.id", ondelete="RESTRICT"), nullable=False, index=True))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))   # signed delta
    kind: str = Field(sa_column=Column(String(16), nullable=False, index=True))
    reference: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True, index=True))  # order id or reservation id
    note: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))


class StockReservation(SQLModel, table=True):
    id: str = Field(sa_column=Column(String(36), primary_key=True))   # uuid7
    session_ref: str = Field(sa_column=Column(String(64), nullable=False, index=True))
    variant_id: int = Field(sa_column=Column(Integer, ForeignKey("variant.id", ondelete="RESTRICT"), nullable=False, index=True))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    status: str = Field(default=ReservationStatus.HELD.value, sa_column=Column(String(16), nullable=False, index=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False, index=True))
    released_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    consumed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))

    __table_args__ = (
        # at most one active hold per (variant , originating session)
        Index(
            "uq_reservation_held_variant_session",
            "variant_id",
            "session_ref",
            unique=True,
            postgresql_where=text("status = 'held'"),
            sqlite_where=text("status = 'held'"),
        ),
        CheckConstraint("quantity >= 1", name="ck_reservation_quantity_positive"),
    )

#-----------------------------------------------------------------------------------------------------------

# persisted cart of a signed-in shopper , anonymous carts live on the client until merge
class CartItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(sa_column=Column(String(64), nullable=False, index=True))
    product_id: int = Field(sa_column=Column(Integer, ForeignKey("product.id", ondelete="CASCADE"), nullable=False))
    variant_id: int = Field(sa_column=Column(Integer, ForeignKey("variant.id", ondelete="CASCADE"), nullable=False))
    quantity: int = Field(default=1, sa_column=Column(Integer, nullable=False))
    price_at_time: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    added_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", "variant_id", name="uq_cart_user_product_variant"),
        CheckConstraint("quantity >= 1", name="ck_cartitem_quantity_positive"),
    )

# --------------------------------------------------------------------------------------------

class DiscountCode(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(sa_column=Column(String(64), nullable=False, unique=True, index=True))
    type: str = Field(sa_column=Column(String(16), nullable=False))
    value: int = Field(sa_column=Column(BigInteger, nullable=False))   # percent for percentage codes , minor units for fixed codes
    minimum_order_amount: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    start_date: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    end_date: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, server_default=text("true")))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

# --------------------------------------------------------------------------------------------

# local shadow of the gateway owned checkout session , id is the provider issued session id
class CheckoutSession(SQLModel, table=True):
    id: str = Field(sa_column=Column(String(255), primary_key=True))
    user_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, index=True))
    email: Optional[str] = Field(default=None, sa_column=Column(String(320), nullable=True))
    line_items: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    subtotal: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    discount_code: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    discount_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    total: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    currency: str = Field(default="usd", sa_column=Column(String(8), nullable=False))
    reservation_ref: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, index=True))
    status: str = Field(default=CheckoutStatus.OPEN.value, sa_column=Column(String(16), nullable=False, index=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))


# Order.id == checkout session id , the primary key is the idempotency anchor for webhook replays
class Orders(SQLModel, table=True):
    id: str = Field(sa_column=Column(String(255), primary_key=True))
    user_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, index=True))
    email: Optional[str] = Field(default=None, sa_column=Column(String(320), nullable=True))
    currency: str = Field(default="USD", sa_column=Column(String(8), nullable=False))
    subtotal: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    discount_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    shipping_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    total: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    discount_code: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    payment_intent_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    shipping_address: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    billing_address: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    payment_status: str = Field(default=PaymentStatus.PAID.value, sa_column=Column(String(16), nullable=False))
    status: str = Field(default=OrderStatus.PAID.value, sa_column=Column(String(16), nullable=False, index=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))


class OrderItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: str = Field(sa_column=Column(String(255), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True))
    product_id: int = Field(sa_column=Column(Integer, nullable=False))
    variant_id: int = Field(sa_column=Column(Integer, nullable=False))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    unit_price: int = Field(sa_column=Column(BigInteger, nullable=False))

    __table_args__ = (
        UniqueConstraint("order_id", "variant_id", name="uq_order_variant"),
    )


class PaymentWebhookEvent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    provider: str = Field(default="stripe", sa_column=Column(String(64), nullable=False))
    provider_event_id: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    event_type: str = Field(sa_column=Column(String(128), nullable=False))
    session_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True, index=True))
    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    processed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    last_error: Optional[str] = Field(default=None, sa_column=Column(String(1000), nullable=True))

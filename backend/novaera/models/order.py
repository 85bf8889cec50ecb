import enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Float, String
from sqlalchemy.sql import func

from novaera.core.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StoreOrder(Base):
    __tablename__ = "store_orders"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, index=True, nullable=True)
    customer_email = Column(String, index=True)
    payment_method = Column(String, default="pix")
    status = Column(String, index=True, default=OrderStatus.PENDING.value)
    subtotal = Column(Float, default=0.0)
    discount_amount = Column(Float, default=0.0)
    total = Column(Float, default=0.0)
    coupon_code = Column(String, nullable=True)
    coupon_id = Column(String, index=True, nullable=True)

    # Snapshot of the cart at checkout: product_id, product_name, quantity, unit_price, total.
    items = Column(JSON)
    delivered_items = Column(JSON, nullable=True)

    payment_reference = Column(String, index=True, nullable=True)
    payer_name = Column(String, nullable=True)
    payer_document = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    paid_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String
from sqlalchemy.sql import func

from novaera.core.database import Base


class StoreCoupon(Base):
    __tablename__ = "store_coupons"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    code = Column(String, unique=True, index=True)
    discount_type = Column(String, default="percentage")
    discount_value = Column(Float, default=0.0)
    # 0 disables the limit for every numeric bound below.
    max_uses = Column(Integer, default=0)
    used_count = Column(Integer, default=0)
    min_order_value = Column(Float, default=0.0)
    max_order_value = Column(Float, default=0.0)
    max_discount_amount = Column(Float, default=0.0)
    is_active = Column(Boolean, default=True, index=True)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    category_ids = Column(JSON, nullable=True)
    product_ids = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

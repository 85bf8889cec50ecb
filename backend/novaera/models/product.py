from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from novaera.core.database import Base


class StoreCategory(Base):
    __tablename__ = "store_categories"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    name = Column(String)
    slug = Column(String, index=True, unique=True)
    description = Column(Text, nullable=True)
    icon = Column(String, nullable=True)
    display_order = Column(Integer, default=0)
    status = Column(String, index=True, default="active")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    products = relationship("StoreProduct", back_populates="category")


class StoreProduct(Base):
    __tablename__ = "store_products"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    category_id = Column(String, ForeignKey("store_categories.id"), index=True)
    name = Column(String)
    slug = Column(String, index=True, nullable=True)
    price = Column(Float, default=0.0)
    status = Column(String, index=True, default="active")
    # "lines": one deliverable per stock line. Anything else delivers the whole stock text.
    product_type = Column(String, default="lines")
    stock = Column(Text, nullable=True)
    min_quantity = Column(Integer, nullable=True)
    max_quantity = Column(Integer, nullable=True)
    post_sale_instructions = Column(Text, nullable=True)
    short_description = Column(Text, nullable=True)
    is_hidden = Column(Boolean, default=False)
    display_order = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("StoreCategory", back_populates="products")

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Float, String, Text
from sqlalchemy.sql import func

from novaera.core.database import Base


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(String, index=True, nullable=True)
    user_id = Column(String, index=True, nullable=True)
    provider = Column(String, index=True, default="misticpay")
    provider_transaction_id = Column(String, index=True, unique=True)
    amount = Column(Float, default=0.0)
    fee = Column(Float, default=0.0)
    # Mirrors the gateway: PENDENTE, COMPLETO or FALHA.
    status = Column(String, index=True, default="PENDENTE")
    transaction_type = Column(String, default="DEPOSITO")
    payer_name = Column(String, nullable=True)
    payer_document = Column(String, nullable=True)
    description = Column(String, nullable=True)
    qr_code_base64 = Column(Text, nullable=True)
    qr_code_url = Column(String, nullable=True)
    copy_paste = Column(Text, nullable=True)
    provider_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

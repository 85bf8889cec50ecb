from uuid import uuid4

from sqlalchemy import JSON, Column, Date, DateTime, Float, String, Text
from sqlalchemy.sql import func

from novaera.core.database import Base


class OperationMethod(Base):
    __tablename__ = "operation_methods"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    name = Column(String)
    color = Column(String, default="#3b82f6")
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Operation(Base):
    __tablename__ = "operations"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, index=True)
    method_id = Column(String, index=True, nullable=True)
    invested_amount = Column(Float, default=0.0)
    return_amount = Column(Float, default=0.0)
    operation_date = Column(Date, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ExpenseCategory(Base):
    __tablename__ = "expense_categories"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    name = Column(String)
    color = Column(String, default="#ef4444")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, index=True)
    category_id = Column(String, index=True, nullable=True)
    amount = Column(Float, default=0.0)
    description = Column(String)
    expense_date = Column(Date, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Goal(Base):
    __tablename__ = "goals"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, index=True)
    title = Column(String)
    goal_type = Column(String, default="monthly")
    target_amount = Column(Float, default=0.0)
    current_amount = Column(Float, default=0.0)
    start_date = Column(Date, nullable=True)
    deadline = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DutchingHistory(Base):
    __tablename__ = "dutching_history"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, index=True)
    odds = Column(JSON)
    stakes = Column(JSON)
    total_invested = Column(Float, default=0.0)
    guaranteed_return = Column(Float, default=0.0)
    profit = Column(Float, default=0.0)
    roi = Column(Float, default=0.0)
    observation = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class BalanceAdjustment(Base):
    __tablename__ = "balance_adjustments"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, index=True)
    # Signed: negative amounts take money out of the balance.
    amount = Column(Float, default=0.0)
    description = Column(String)
    adjustment_date = Column(Date, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

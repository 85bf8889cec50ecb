from pydantic import BaseModel
from typing import List, Optional
from datetime import date, datetime


class OperationCreate(BaseModel):
    invested_amount: float
    return_amount: float = 0.0
    operation_date: date
    method_id: Optional[str] = None
    notes: Optional[str] = None


class OperationResponse(OperationCreate):
    id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OperationUpdate(BaseModel):
    invested_amount: Optional[float] = None
    return_amount: Optional[float] = None
    operation_date: Optional[date] = None
    method_id: Optional[str] = None
    notes: Optional[str] = None


class ExpenseCreate(BaseModel):
    amount: float
    description: str
    expense_date: date
    category_id: Optional[str] = None


class ExpenseResponse(ExpenseCreate):
    id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExpenseUpdate(BaseModel):
    amount: Optional[float] = None
    description: Optional[str] = None
    expense_date: Optional[date] = None
    category_id: Optional[str] = None


class GoalCreate(BaseModel):
    title: str
    goal_type: str = "monthly"
    target_amount: float
    current_amount: float = 0.0
    start_date: Optional[date] = None
    deadline: Optional[date] = None


class GoalResponse(GoalCreate):
    id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GoalUpdate(BaseModel):
    title: Optional[str] = None
    goal_type: Optional[str] = None
    target_amount: Optional[float] = None
    current_amount: Optional[float] = None
    start_date: Optional[date] = None
    deadline: Optional[date] = None


class BalanceAdjustmentCreate(BaseModel):
    amount: float
    description: str
    adjustment_date: Optional[date] = None


class BalanceAdjustmentResponse(BaseModel):
    id: str
    amount: float
    description: str
    adjustment_date: date
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DutchingRequest(BaseModel):
    total_stake: float
    odds: List[float]
    save: bool = False
    observation: Optional[str] = None


class DutchingObservationUpdate(BaseModel):
    observation: Optional[str] = None


class DutchingHistoryResponse(BaseModel):
    id: str
    odds: List[float]
    stakes: List[float]
    total_invested: float
    guaranteed_return: float
    profit: float
    roi: float
    observation: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

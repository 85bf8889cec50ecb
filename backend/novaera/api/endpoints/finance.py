from __future__ import annotations

from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from novaera.core.database import get_db
from novaera.core.security import CurrentUser, get_current_user
from novaera.models.finance import BalanceAdjustment, DutchingHistory, Expense, Goal, Operation
from novaera.schemas.finance import (
    BalanceAdjustmentCreate,
    BalanceAdjustmentResponse,
    DutchingHistoryResponse,
    DutchingObservationUpdate,
    DutchingRequest,
    ExpenseCreate,
    ExpenseResponse,
    ExpenseUpdate,
    GoalCreate,
    GoalResponse,
    GoalUpdate,
    OperationCreate,
    OperationResponse,
    OperationUpdate,
)
from novaera.services.dutching import DutchingError, calculate_dutching
from novaera.services.money import round_money, to_amount
from novaera.services.monthly_comparison import compute_monthly_comparison, summarize_months


router = APIRouter(dependencies=[Depends(get_current_user)])

GOAL_TYPES = {"monthly", "weekly", "daily"}


def _owned(db: Session, model, row_id: str, user_id: str):
    row = db.query(model).filter(model.id == row_id, model.user_id == user_id).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Not found")
    return row


def _apply(db: Session, row, changes: dict):
    for key, value in changes.items():
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row


@router.get("/finance/operations", response_model=list[OperationResponse])
async def list_operations(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    return (
        db.query(Operation)
        .filter(Operation.user_id == current_user.id)
        .order_by(Operation.operation_date.desc(), Operation.created_at.desc())
        .all()
    )


@router.post("/finance/operations", response_model=OperationResponse)
async def create_operation(
    body: OperationCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    if body.invested_amount < 0 or body.return_amount < 0:
        raise HTTPException(status_code=400, detail="Valores devem ser positivos")
    op = Operation(user_id=current_user.id, **body.model_dump())
    db.add(op)
    db.commit()
    db.refresh(op)
    return op


@router.patch("/finance/operations/{operation_id}", response_model=OperationResponse)
async def update_operation(
    operation_id: str,
    body: OperationUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    op = _owned(db, Operation, operation_id, current_user.id)
    changes = body.model_dump(exclude_unset=True)
    for key in ("invested_amount", "return_amount"):
        if key in changes and (changes[key] is None or changes[key] < 0):
            raise HTTPException(status_code=400, detail="Valores devem ser positivos")
    if "operation_date" in changes and changes["operation_date"] is None:
        raise HTTPException(status_code=400, detail="Data é obrigatória")
    return _apply(db, op, changes)


@router.delete("/finance/operations/{operation_id}")
async def delete_operation(
    operation_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    db.delete(_owned(db, Operation, operation_id, current_user.id))
    db.commit()
    return {"ok": True}


@router.get("/finance/expenses", response_model=list[ExpenseResponse])
async def list_expenses(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    return (
        db.query(Expense)
        .filter(Expense.user_id == current_user.id)
        .order_by(Expense.expense_date.desc(), Expense.created_at.desc())
        .all()
    )


@router.post("/finance/expenses", response_model=ExpenseResponse)
async def create_expense(
    body: ExpenseCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    if body.amount <= 0:
        raise HTTPException(status_code=400, detail="Valor inválido")
    if not body.description.strip():
        raise HTTPException(status_code=400, detail="Descrição é obrigatória")
    expense = Expense(user_id=current_user.id, **body.model_dump())
    db.add(expense)
    db.commit()
    db.refresh(expense)
    return expense


@router.patch("/finance/expenses/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: str,
    body: ExpenseUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    expense = _owned(db, Expense, expense_id, current_user.id)
    changes = body.model_dump(exclude_unset=True)
    if "amount" in changes and (changes["amount"] is None or changes["amount"] <= 0):
        raise HTTPException(status_code=400, detail="Valor inválido")
    if "description" in changes and not (changes["description"] or "").strip():
        raise HTTPException(status_code=400, detail="Descrição é obrigatória")
    if "expense_date" in changes and changes["expense_date"] is None:
        raise HTTPException(status_code=400, detail="Data é obrigatória")
    return _apply(db, expense, changes)


@router.delete("/finance/expenses/{expense_id}")
async def delete_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    db.delete(_owned(db, Expense, expense_id, current_user.id))
    db.commit()
    return {"ok": True}


@router.get("/finance/goals", response_model=list[GoalResponse])
async def list_goals(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    return db.query(Goal).filter(Goal.user_id == current_user.id).order_by(Goal.created_at.desc()).all()


@router.post("/finance/goals", response_model=GoalResponse)
async def create_goal(
    body: GoalCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    if body.goal_type not in GOAL_TYPES:
        raise HTTPException(status_code=400, detail="Tipo de meta inválido")
    if body.target_amount <= 0:
        raise HTTPException(status_code=400, detail="Valor da meta inválido")
    goal = Goal(user_id=current_user.id, **body.model_dump())
    db.add(goal)
    db.commit()
    db.refresh(goal)
    return goal


@router.patch("/finance/goals/{goal_id}", response_model=GoalResponse)
async def update_goal(
    goal_id: str,
    body: GoalUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    goal = _owned(db, Goal, goal_id, current_user.id)
    changes = body.model_dump(exclude_unset=True)
    if "goal_type" in changes and changes["goal_type"] not in GOAL_TYPES:
        raise HTTPException(status_code=400, detail="Tipo de meta inválido")
    if "target_amount" in changes and (changes["target_amount"] is None or changes["target_amount"] <= 0):
        raise HTTPException(status_code=400, detail="Valor da meta inválido")
    if "title" in changes and not (changes["title"] or "").strip():
        raise HTTPException(status_code=400, detail="Título é obrigatório")
    return _apply(db, goal, changes)


@router.delete("/finance/goals/{goal_id}")
async def delete_goal(
    goal_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    db.delete(_owned(db, Goal, goal_id, current_user.id))
    db.commit()
    return {"ok": True}


@router.get("/finance/balance-adjustments")
async def list_balance_adjustments(
    start: date | None = None,
    end: date | None = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    query = db.query(BalanceAdjustment).filter(BalanceAdjustment.user_id == current_user.id)
    if start is not None:
        query = query.filter(BalanceAdjustment.adjustment_date >= start)
    if end is not None:
        query = query.filter(BalanceAdjustment.adjustment_date <= end)
    rows = query.order_by(BalanceAdjustment.adjustment_date.desc(), BalanceAdjustment.created_at.desc()).all()
    return {
        "adjustments": [BalanceAdjustmentResponse.model_validate(r).model_dump(mode="json") for r in rows],
        "total_adjustments": round_money(sum(to_amount(r.amount) for r in rows)),
    }


@router.post("/finance/balance-adjustments", response_model=BalanceAdjustmentResponse)
async def create_balance_adjustment(
    body: BalanceAdjustmentCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    if body.amount == 0:
        raise HTTPException(status_code=400, detail="Valor inválido")
    if not body.description.strip():
        raise HTTPException(status_code=400, detail="Descrição é obrigatória")
    adjustment = BalanceAdjustment(
        user_id=current_user.id,
        amount=round_money(body.amount),
        description=body.description.strip(),
        adjustment_date=body.adjustment_date or date.today(),
    )
    db.add(adjustment)
    db.commit()
    db.refresh(adjustment)
    return adjustment


@router.delete("/finance/balance-adjustments/{adjustment_id}")
async def delete_balance_adjustment(
    adjustment_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    db.delete(_owned(db, BalanceAdjustment, adjustment_id, current_user.id))
    db.commit()
    return {"ok": True}


@router.get("/finance/monthly-comparison")
async def monthly_comparison(
    months: int = 6,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    months = max(1, min(int(months or 6), 24))
    operations = db.query(Operation).filter(Operation.user_id == current_user.id).all()
    expenses = db.query(Expense).filter(Expense.user_id == current_user.id).all()
    data = compute_monthly_comparison(operations, expenses, months=months)
    return {"months": [asdict(m) for m in data], "summary": summarize_months(data)}


@router.post("/finance/dutching")
async def dutching(
    body: DutchingRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        result = calculate_dutching(body.total_stake, body.odds)
    except DutchingError as e:
        raise HTTPException(status_code=400, detail=str(e))

    out = asdict(result)
    if body.save:
        entry = DutchingHistory(
            user_id=current_user.id,
            odds=[s.odd for s in result.stakes],
            stakes=[s.stake for s in result.stakes],
            total_invested=result.total_invested,
            guaranteed_return=result.guaranteed_return,
            profit=result.profit,
            roi=result.roi,
            observation=(body.observation or "").strip() or None,
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        out["history_id"] = entry.id
    return out


@router.get("/finance/dutching/history", response_model=list[DutchingHistoryResponse])
async def dutching_history(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    return (
        db.query(DutchingHistory)
        .filter(DutchingHistory.user_id == current_user.id)
        .order_by(DutchingHistory.created_at.desc())
        .all()
    )


@router.patch("/finance/dutching/history/{entry_id}", response_model=DutchingHistoryResponse)
async def update_dutching_observation(
    entry_id: str,
    body: DutchingObservationUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    entry = _owned(db, DutchingHistory, entry_id, current_user.id)
    entry.observation = (body.observation or "").strip() or None
    db.commit()
    db.refresh(entry)
    return entry


@router.delete("/finance/dutching/history/{entry_id}")
async def delete_dutching_entry(
    entry_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    db.delete(_owned(db, DutchingHistory, entry_id, current_user.id))
    db.commit()
    return {"ok": True}

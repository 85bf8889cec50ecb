from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Iterable

from novaera.services.money import round_money, to_amount


_MONTH_ABBR_PT = ["jan", "fev", "mar", "abr", "mai", "jun", "jul", "ago", "set", "out", "nov", "dez"]


@dataclass
class MonthlyData:
    month: str
    display_month: str
    operations_count: int
    total_invested: float
    total_return: float
    profit: float
    total_expenses: float
    net_balance: float
    profit_variation: float | None = None


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _month_key(value: Any) -> str | None:
    if isinstance(value, date):
        return f"{value.year:04d}-{value.month:02d}"
    raw = str(value or "").strip()
    return raw[:7] if len(raw) >= 7 else None


def compute_monthly_comparison(
    operations: Iterable[Any],
    expenses: Iterable[Any],
    *,
    months: int = 6,
    today: date | None = None,
) -> list[MonthlyData]:
    """Bucket operations and expenses into the last ``months`` calendar months, oldest first."""
    today = today or date.today()
    months = max(1, int(months or 1))
    ops = list(operations or [])
    exps = list(expenses or [])

    out: list[MonthlyData] = []
    for offset in range(months - 1, -1, -1):
        year, month = _shift_month(today.year, today.month, -offset)
        key = f"{year:04d}-{month:02d}"
        month_ops = [op for op in ops if _month_key(getattr(op, "operation_date", None)) == key]
        month_exps = [e for e in exps if _month_key(getattr(e, "expense_date", None)) == key]

        invested = sum(to_amount(op.invested_amount) for op in month_ops)
        returned = sum(to_amount(op.return_amount) for op in month_ops)
        profit = returned - invested
        total_expenses = sum(to_amount(e.amount) for e in month_exps)
        out.append(
            MonthlyData(
                month=key,
                display_month=f"{_MONTH_ABBR_PT[month - 1]}/{year % 100:02d}",
                operations_count=len(month_ops),
                total_invested=round_money(invested),
                total_return=round_money(returned),
                profit=round_money(profit),
                total_expenses=round_money(total_expenses),
                net_balance=round_money(profit - total_expenses),
            )
        )

    for i in range(1, len(out)):
        prev_profit = out[i - 1].profit
        curr_profit = out[i].profit
        if prev_profit != 0:
            out[i].profit_variation = round((curr_profit - prev_profit) / abs(prev_profit) * 100, 2)
        elif curr_profit != 0:
            out[i].profit_variation = 100.0
    return out


def _avg(values: list[float]) -> float:
    return sum(values) / len(values)


def summarize_months(data: list[MonthlyData]) -> dict[str, Any]:
    if not data:
        return {"avg_profit": 0.0, "total_profit": 0.0, "best_month": None, "worst_month": None, "trend": "stable"}

    total = sum(m.net_balance for m in data)
    ranked = sorted(data, key=lambda m: m.net_balance, reverse=True)

    trend = "stable"
    recent = data[-3:]
    if len(recent) >= 2:
        half = (len(recent) + 1) // 2
        first_avg = _avg([m.net_balance for m in recent[:half]])
        second_avg = _avg([m.net_balance for m in recent[half:]])
        if second_avg > first_avg * 1.1:
            trend = "up"
        elif second_avg < first_avg * 0.9:
            trend = "down"

    return {
        "avg_profit": round_money(total / len(data)),
        "total_profit": round_money(total),
        "best_month": asdict(ranked[0]),
        "worst_month": asdict(ranked[-1]),
        "trend": trend,
    }

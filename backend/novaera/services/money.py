from __future__ import annotations

import math


def to_amount(value: object, default: float = 0.0) -> float:
    try:
        v = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return v if math.isfinite(v) else default


def round_money(v: float) -> float:
    return round(to_amount(v), 2)


def format_brl(v: float) -> str:
    return f"R$ {to_amount(v):.2f}".replace(".", ",")

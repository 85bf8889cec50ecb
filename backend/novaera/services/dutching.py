from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable


class DutchingError(ValueError):
    pass


@dataclass(frozen=True)
class DutchingStake:
    odd: float
    stake: float
    potential_return: float


@dataclass(frozen=True)
class DutchingResult:
    total_invested: float
    stakes: list[DutchingStake]
    guaranteed_return: float
    profit: float
    roi: float


def calculate_dutching(total_stake: float, odds: Iterable[float]) -> DutchingResult:
    """Split ``total_stake`` across ``odds`` so every outcome returns the same amount."""
    valid = [float(o) for o in odds if o is not None and math.isfinite(float(o)) and float(o) > 1]
    if len(valid) < 2:
        raise DutchingError("Informe pelo menos duas odds maiores que 1")
    total = float(total_stake or 0)
    if not math.isfinite(total) or total <= 0:
        raise DutchingError("Valor total inválido")

    inverse_sum = sum(1.0 / odd for odd in valid)
    stakes = []
    for odd in valid:
        stake = round(total * (1.0 / odd) / inverse_sum, 2)
        stakes.append(DutchingStake(odd=odd, stake=stake, potential_return=round(stake * odd, 2)))

    guaranteed = round(total / inverse_sum, 2)
    profit = round(guaranteed - total, 2)
    return DutchingResult(
        total_invested=round(total, 2),
        stakes=stakes,
        guaranteed_return=guaranteed,
        profit=profit,
        roi=round(profit / total * 100, 2),
    )

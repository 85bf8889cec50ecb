"""Coupon validation and redemption.

Validation is read-only: it looks a coupon up by its normalized code, checks
the validity window, usage limit, order value bounds and product/category
restrictions, and computes the discount. Redemption is a separate, single
conditional UPDATE so two checkouts racing for the last use cannot both win.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from novaera.models.coupon import StoreCoupon
from novaera.services.money import format_brl, round_money, to_amount


logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 50

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"


class CouponError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def status_code(self) -> int:
        return 404 if self.code == "not_found" else 400


@dataclass(frozen=True)
class CartLine:
    product_id: str
    category_id: str | None
    price: float
    quantity: int

    @property
    def total(self) -> float:
        return to_amount(self.price) * max(0, int(self.quantity or 0))


@dataclass(frozen=True)
class CouponQuote:
    coupon_id: str
    code: str
    discount_type: str
    discount_value: float
    discount_amount: float
    eligible_value: float
    valid: bool = True


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_code(raw: object) -> str:
    if not isinstance(raw, str):
        return ""
    return raw.strip().upper()[:MAX_CODE_LENGTH]


def compute_discount(
    *,
    discount_type: str,
    discount_value: float,
    eligible_value: float,
    max_discount_amount: float = 0.0,
) -> float:
    eligible = max(0.0, to_amount(eligible_value))
    value = max(0.0, to_amount(discount_value))
    if (discount_type or "").lower() == DISCOUNT_PERCENTAGE:
        discount = eligible * (value / 100.0)
    else:
        discount = value
    cap = to_amount(max_discount_amount)
    if cap > 0 and discount > cap:
        discount = cap
    return round_money(min(discount, eligible))


def compute_eligible_value(
    coupon: StoreCoupon,
    order_value: float,
    cart_items: Iterable[CartLine] | None,
) -> float:
    product_ids = {str(p) for p in (coupon.product_ids or []) if p}
    category_ids = {str(c) for c in (coupon.category_ids or []) if c}
    lines = list(cart_items or [])
    # Without cart lines there is nothing to filter; the whole order value counts.
    if (not product_ids and not category_ids) or not lines:
        return to_amount(order_value)

    eligible = [
        item
        for item in lines
        if str(item.product_id) in product_ids or (item.category_id and str(item.category_id) in category_ids)
    ]
    if not eligible:
        if product_ids:
            raise CouponError("product_restriction", "Cupom não aplicável aos produtos do carrinho")
        raise CouponError("category_restriction", "Cupom não aplicável às categorias dos produtos do carrinho")
    return sum(item.total for item in eligible)


def check_coupon(
    coupon: StoreCoupon,
    *,
    order_value: float,
    cart_items: Iterable[CartLine] | None = None,
    now: datetime | None = None,
) -> CouponQuote:
    now = _as_utc(now) or utcnow()

    valid_from = _as_utc(coupon.valid_from)
    valid_until = _as_utc(coupon.valid_until)
    if valid_until is not None and valid_until < now:
        raise CouponError("expired", "Cupom expirado")
    if valid_from is not None and valid_from > now:
        raise CouponError("not_started", "Cupom ainda não está válido")

    max_uses = int(coupon.max_uses or 0)
    if max_uses > 0 and int(coupon.used_count or 0) >= max_uses:
        raise CouponError("exhausted", "Cupom esgotado")

    min_order = to_amount(coupon.min_order_value)
    max_order = to_amount(coupon.max_order_value)
    if min_order > 0 and order_value < min_order:
        raise CouponError("below_min_order", f"Valor mínimo do pedido: {format_brl(min_order)}")
    if max_order > 0 and order_value > max_order:
        raise CouponError("above_max_order", f"Valor máximo do pedido: {format_brl(max_order)}")

    eligible_value = compute_eligible_value(coupon, order_value, cart_items)
    discount_amount = compute_discount(
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        eligible_value=eligible_value,
        max_discount_amount=coupon.max_discount_amount,
    )
    return CouponQuote(
        coupon_id=coupon.id,
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=to_amount(coupon.discount_value),
        discount_amount=discount_amount,
        eligible_value=round_money(eligible_value),
    )


def validate_coupon(
    db: Session,
    *,
    code: object,
    order_value: object,
    cart_items: Iterable[CartLine] | None = None,
    now: datetime | None = None,
) -> CouponQuote:
    normalized = normalize_code(code)
    if not normalized:
        raise CouponError("invalid_code", "Código do cupom é obrigatório")
    if isinstance(order_value, bool) or not isinstance(order_value, (int, float)):
        raise CouponError("invalid_order_value", "Valor do pedido inválido")
    value = float(order_value)
    if not math.isfinite(value) or value < 0:
        raise CouponError("invalid_order_value", "Valor do pedido inválido")

    coupon = (
        db.query(StoreCoupon)
        .filter(StoreCoupon.code == normalized, StoreCoupon.is_active.is_(True))
        .first()
    )
    if coupon is None:
        raise CouponError("not_found", "Cupom não encontrado ou inativo")

    quote = check_coupon(coupon, order_value=value, cart_items=cart_items, now=now)
    logger.info(
        "coupons.validate.ok code=%s order_value=%s eligible=%s discount=%s",
        normalized,
        value,
        quote.eligible_value,
        quote.discount_amount,
    )
    return quote


def redeem_coupon(db: Session, coupon_id: str) -> bool:
    """Consume one use of a coupon. Returns False when no use is left.

    The caller owns the transaction and must commit.
    """
    stmt = (
        update(StoreCoupon)
        .where(
            StoreCoupon.id == coupon_id,
            StoreCoupon.is_active.is_(True),
            or_(
                StoreCoupon.max_uses.is_(None),
                StoreCoupon.max_uses <= 0,
                func.coalesce(StoreCoupon.used_count, 0) < StoreCoupon.max_uses,
            ),
        )
        .values(used_count=func.coalesce(StoreCoupon.used_count, 0) + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    redeemed = (result.rowcount or 0) == 1
    if not redeemed:
        logger.warning("coupons.redeem.exhausted coupon_id=%s", coupon_id)
    return redeemed


def release_coupon(db: Session, coupon_id: str) -> None:
    stmt = (
        update(StoreCoupon)
        .where(StoreCoupon.id == coupon_id, StoreCoupon.used_count > 0)
        .values(used_count=StoreCoupon.used_count - 1)
        .execution_options(synchronize_session=False)
    )
    db.execute(stmt)
    logger.info("coupons.release coupon_id=%s", coupon_id)

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy.orm import Session

from novaera.models.order import OrderStatus, StoreOrder
from novaera.models.product import StoreProduct
from novaera.models.profile import Profile
from novaera.services.cart import quantity_bounds
from novaera.services.coupon_validator import CartLine, CouponError, redeem_coupon, release_coupon, validate_coupon
from novaera.services.money import round_money


logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING.value: {OrderStatus.PAID.value, OrderStatus.FAILED.value, OrderStatus.CANCELLED.value},
    OrderStatus.PAID.value: {OrderStatus.DELIVERED.value},
}

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class OrderError(Exception):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidTransition(OrderError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Transição inválida: {current} -> {target}", status_code=409)
        self.current = current
        self.target = target


@dataclass(frozen=True)
class OrderLineRequest:
    product_id: str
    quantity: int


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_valid_email(email: str | None) -> bool:
    value = (email or "").strip()
    if len(value) < 5:
        return False
    return "@" in value and "." in value and " " not in value


def is_uuid(value: str | None) -> bool:
    return bool(value) and bool(_UUID_RE.match(str(value)))


def serialize_order(order: StoreOrder) -> dict[str, Any]:
    return {
        "id": order.id,
        "customer_email": order.customer_email,
        "status": order.status,
        "subtotal": order.subtotal,
        "discount_amount": order.discount_amount,
        "total": order.total,
        "coupon_code": order.coupon_code,
        "payment_method": order.payment_method,
        "items": order.items or [],
        "delivered_items": order.delivered_items or [],
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "paid_at": order.paid_at.isoformat() if order.paid_at else None,
    }


def _snapshot_lines(db: Session, items: Iterable[OrderLineRequest]) -> tuple[list[dict[str, Any]], list[CartLine]]:
    requested = list(items or [])
    if not requested:
        raise OrderError("Carrinho vazio")

    for item in requested:
        if not is_uuid(item.product_id):
            raise OrderError("Produto inválido")
        if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
            raise OrderError("Quantidade inválida")

    # Repeated product ids collapse into one line so the bounds apply to the total quantity.
    quantities: dict[str, int] = {}
    for item in requested:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

    products = {p.id: p for p in db.query(StoreProduct).filter(StoreProduct.id.in_(sorted(quantities))).all()}

    snapshot: list[dict[str, Any]] = []
    cart_lines: list[CartLine] = []
    for product_id, quantity in quantities.items():
        product = products.get(product_id)
        if product is None or (product.status or "active") != "active":
            raise OrderError("Produto inválido")
        min_qty, max_qty = quantity_bounds(product)
        if max_qty <= 0:
            raise OrderError(f"Produto esgotado: {product.name}")
        if quantity < min_qty or quantity > max_qty:
            raise OrderError(f"Quantidade inválida para {product.name}")
        unit_price = round_money(product.price)
        snapshot.append(
            {
                "product_id": product.id,
                "product_name": product.name,
                "quantity": quantity,
                "unit_price": unit_price,
                "total": round_money(unit_price * quantity),
            }
        )
        cart_lines.append(
            CartLine(product_id=product.id, category_id=product.category_id, price=unit_price, quantity=quantity)
        )
    return snapshot, cart_lines


def create_order(
    db: Session,
    *,
    customer_email: str,
    items: Iterable[OrderLineRequest],
    payment_method: str | None = "pix",
    coupon_code: str | None = None,
    user_id: str | None = None,
    now: datetime | None = None,
) -> StoreOrder:
    email = (customer_email or "").strip().lower()
    if not is_valid_email(email):
        raise OrderError("E-mail inválido")
    if (payment_method or "pix").lower() != "pix":
        raise OrderError("Método de pagamento inválido")

    snapshot, cart_lines = _snapshot_lines(db, items)
    subtotal = round_money(sum(line["total"] for line in snapshot))

    discount = 0.0
    coupon_id = None
    normalized_code = None
    if coupon_code and coupon_code.strip():
        quote = validate_coupon(db, code=coupon_code, order_value=subtotal, cart_items=cart_lines, now=now)
        discount = quote.discount_amount
        coupon_id = quote.coupon_id
        normalized_code = quote.code

    order = StoreOrder(
        user_id=user_id,
        customer_email=email,
        payment_method="pix",
        status=OrderStatus.PENDING.value,
        subtotal=subtotal,
        discount_amount=discount,
        total=round_money(max(0.0, subtotal - discount)),
        coupon_code=normalized_code,
        coupon_id=coupon_id,
        items=snapshot,
    )
    try:
        db.add(order)
        if coupon_id and not redeem_coupon(db, coupon_id):
            raise CouponError("exhausted", "Cupom esgotado")
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)
    logger.info(
        "orders.create order_id=%s email=%s subtotal=%s discount=%s total=%s coupon=%s",
        order.id,
        email,
        order.subtotal,
        order.discount_amount,
        order.total,
        normalized_code,
    )
    return order


def transition_order(
    db: Session,
    order: StoreOrder,
    status: str,
    *,
    force: bool = False,
    now: datetime | None = None,
) -> bool:
    """Move an order to ``status``. Returns False when it already was there."""
    try:
        target = OrderStatus(str(status or "").strip().lower()).value
    except ValueError:
        raise OrderError("Status inválido")

    current = order.status or OrderStatus.PENDING.value
    if current == target:
        return False
    if not force and target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(current, target)

    now = now or utcnow()
    order.status = target
    if target == OrderStatus.PAID.value and order.paid_at is None:
        order.paid_at = now
    if target == OrderStatus.DELIVERED.value:
        order.delivered_at = now
        if order.paid_at is None:
            order.paid_at = now
    releases_coupon = target in {OrderStatus.FAILED.value, OrderStatus.CANCELLED.value} and current in {
        OrderStatus.PENDING.value,
        OrderStatus.PAID.value,
    }
    if releases_coupon and order.coupon_id:
        release_coupon(db, order.coupon_id)
    db.commit()
    logger.info("orders.transition order_id=%s from=%s to=%s force=%s", order.id, current, target, force)
    return True


def get_order(db: Session, order_id: str) -> StoreOrder:
    if not is_uuid(order_id):
        raise OrderError("ID do pedido inválido")
    order = db.query(StoreOrder).filter(StoreOrder.id == order_id).first()
    if order is None:
        raise OrderError("Pedido não encontrado", status_code=404)
    return order


def get_order_delivery(
    db: Session,
    order_id: str,
    *,
    window_hours: int = 24,
    now: datetime | None = None,
) -> dict[str, Any]:
    order = get_order(db, order_id)
    now = now or utcnow()
    created_at = _as_utc(order.created_at)
    if created_at is not None and created_at < now - timedelta(hours=window_hours):
        raise OrderError("Acesso expirado. Consulte seus pedidos na página de consulta.", status_code=403)
    return {
        "success": True,
        "orderId": order.id,
        "status": order.status,
        "delivered_items": order.delivered_items or [],
    }


def list_orders_for_email(db: Session, email: str) -> list[StoreOrder]:
    return (
        db.query(StoreOrder)
        .filter(StoreOrder.customer_email == (email or "").strip().lower())
        .order_by(StoreOrder.created_at.desc(), StoreOrder.id.desc())
        .all()
    )


def lookup_guest_orders(db: Session, email: str) -> dict[str, Any]:
    customer_email = (email or "").strip().lower()
    if not is_valid_email(customer_email):
        raise OrderError("E-mail inválido")

    profile = db.query(Profile.id).filter(Profile.email == customer_email).first()
    if profile is not None:
        return {
            "registered": True,
            "message": "Este e-mail pertence a uma conta registrada. Faça login para acessar seus pedidos.",
        }
    return {
        "registered": False,
        "orders": [serialize_order(o) for o in list_orders_for_email(db, customer_email)],
    }

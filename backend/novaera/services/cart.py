from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, MutableMapping

from novaera.services.money import round_money, to_amount


logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "nova-era-cart"


class CartError(ValueError):
    pass


@dataclass(frozen=True)
class ProductSnapshot:
    id: str
    name: str
    price: float
    category_id: str | None = None
    product_type: str = "lines"
    stock: str | None = None
    min_quantity: int | None = None
    max_quantity: int | None = None

    @classmethod
    def from_model(cls, product: Any) -> "ProductSnapshot":
        return cls(
            id=str(product.id),
            name=str(product.name or ""),
            price=to_amount(product.price),
            category_id=(str(product.category_id) if product.category_id else None),
            product_type=str(product.product_type or "lines"),
            stock=product.stock,
            min_quantity=product.min_quantity,
            max_quantity=product.max_quantity,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "category_id": self.category_id,
            "product_type": self.product_type,
            "stock": self.stock,
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
        }


def stock_lines(stock: str | None) -> list[str]:
    return [line for line in (stock or "").split("\n") if line.strip()]


def available_stock(product: Any) -> int:
    stock = getattr(product, "stock", None)
    if not stock or not str(stock).strip():
        return 0
    if (getattr(product, "product_type", None) or "lines") == "lines":
        return len(stock_lines(stock))
    return 1


def quantity_bounds(product: Any) -> tuple[int, int]:
    stock = available_stock(product)
    min_qty = int(getattr(product, "min_quantity", None) or 1)
    max_quantity = int(getattr(product, "max_quantity", None) or 0)
    max_qty = min(max_quantity, stock) if max_quantity > 0 else stock
    return (min_qty, max_qty)


@dataclass
class CartLineState:
    product: ProductSnapshot
    quantity: int

    @property
    def total(self) -> float:
        return self.product.price * self.quantity


@dataclass
class CartSession:
    """Shopping cart for one customer session.

    The cart is plain state handed to whoever needs it; persistence goes
    through the storage mapping given to ``save``/``load``.
    """

    lines: list[CartLineState] = field(default_factory=list)
    coupon_code: str | None = None
    discount_amount: float = 0.0

    def _find(self, product_id: str) -> CartLineState | None:
        for line in self.lines:
            if line.product.id == product_id:
                return line
        return None

    def add_item(self, product: ProductSnapshot, quantity: int = 1) -> CartLineState:
        if available_stock(product) == 0:
            raise CartError("Produto esgotado")

        min_qty, max_qty = quantity_bounds(product)
        existing = self._find(product.id)
        if existing is not None:
            new_qty = min(existing.quantity + int(quantity), max_qty)
            if new_qty == existing.quantity:
                raise CartError("Quantidade máxima atingida")
            existing.quantity = new_qty
            return existing

        line = CartLineState(product=product, quantity=min(max(int(quantity), min_qty), max(max_qty, min_qty)))
        self.lines.append(line)
        return line

    def remove_item(self, product_id: str) -> None:
        self.lines = [line for line in self.lines if line.product.id != product_id]

    def update_quantity(self, product_id: str, quantity: int) -> None:
        line = self._find(product_id)
        if line is None:
            return
        min_qty, max_qty = quantity_bounds(line.product)
        line.quantity = max(min_qty, min(int(quantity), max_qty))

    def clear(self) -> None:
        self.lines = []
        self.remove_coupon()

    def apply_coupon(self, code: str, discount: float) -> None:
        self.coupon_code = code
        self.discount_amount = round_money(max(0.0, to_amount(discount)))

    def remove_coupon(self) -> None:
        self.coupon_code = None
        self.discount_amount = 0.0

    @property
    def subtotal(self) -> float:
        return round_money(sum(line.total for line in self.lines))

    @property
    def total(self) -> float:
        return round_money(max(0.0, self.subtotal - self.discount_amount))

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def save(self, storage: MutableMapping[str, str]) -> None:
        payload = [{"product": line.product.as_dict(), "quantity": line.quantity} for line in self.lines]
        storage[CART_STORAGE_KEY] = json.dumps(payload)

    @classmethod
    def load(cls, storage: MutableMapping[str, str]) -> "CartSession":
        raw = storage.get(CART_STORAGE_KEY)
        if not raw:
            return cls()
        try:
            parsed = json.loads(raw)
            if not isinstance(parsed, list):
                return cls()
            lines = [
                CartLineState(product=ProductSnapshot(**entry["product"]), quantity=int(entry["quantity"]))
                for entry in parsed
            ]
        except (ValueError, TypeError, KeyError):
            logger.warning("cart.load.corrupt key=%s", CART_STORAGE_KEY)
            return cls()
        return cls(lines=lines)

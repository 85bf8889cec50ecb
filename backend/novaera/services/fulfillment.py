from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from novaera.models.order import OrderStatus, StoreOrder
from novaera.models.product import StoreProduct
from novaera.services.cart import stock_lines
from novaera.services.orders import transition_order


logger = logging.getLogger(__name__)


class FulfillmentError(RuntimeError):
    pass


def _take_content(product: StoreProduct, quantity: int) -> list[str]:
    if (product.product_type or "lines") == "lines":
        lines = stock_lines(product.stock)
        if len(lines) < quantity:
            raise FulfillmentError(f"insufficient stock product_id={product.id} have={len(lines)} need={quantity}")
        product.stock = "\n".join(lines[quantity:])
        return lines[:quantity]
    content = (product.stock or "").strip()
    if not content:
        raise FulfillmentError(f"no content product_id={product.id}")
    return [content]


def fulfill_order(db: Session, order: StoreOrder, *, now: datetime | None = None) -> list[dict[str, Any]]:
    """Release the digital goods of a paid order and mark it delivered.

    Stock is only consumed when every line can be served; otherwise nothing
    changes and the order stays paid.
    """
    if order.status == OrderStatus.DELIVERED.value:
        return list(order.delivered_items or [])
    if order.status != OrderStatus.PAID.value:
        raise FulfillmentError(f"order {order.id} is {order.status}, not paid")

    order_id = order.id
    items = list(order.items or [])
    ids = {str(item.get("product_id")) for item in items}
    products = {
        p.id: p
        for p in db.query(StoreProduct).filter(StoreProduct.id.in_(sorted(ids))).with_for_update().all()
    }

    delivered: list[dict[str, Any]] = []
    try:
        for item in items:
            product = products.get(str(item.get("product_id")))
            if product is None:
                raise FulfillmentError(f"product missing product_id={item.get('product_id')}")
            quantity = int(item.get("quantity") or 0)
            delivered.append(
                {
                    "product_id": product.id,
                    "product_name": item.get("product_name") or product.name,
                    "quantity": quantity,
                    "content": _take_content(product, quantity),
                    "post_sale_instructions": product.post_sale_instructions,
                }
            )
        order.delivered_items = delivered
        transition_order(db, order, OrderStatus.DELIVERED.value, now=now)
    except Exception:
        db.rollback()
        logger.exception("fulfillment.failed order_id=%s", order_id)
        raise

    logger.info("fulfillment.delivered order_id=%s lines=%s", order_id, len(delivered))
    return delivered

"""Store catalog: categories and products.

Public views never include the stock text itself, only how many units are
available; the stock is the merchandise.
"""
from __future__ import annotations

import logging
import re
import unicodedata
from typing import Any

from sqlalchemy.orm import Session

from novaera.models.product import StoreCategory, StoreProduct
from novaera.services.cart import available_stock, quantity_bounds
from novaera.services.money import round_money, to_amount


logger = logging.getLogger(__name__)

PRODUCT_TYPES = {"lines", "text"}
STATUSES = {"active", "inactive"}


class CatalogError(Exception):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def slugify(value: str) -> str:
    ascii_value = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "-", ascii_value.lower()).strip("-")


def serialize_category(c: StoreCategory) -> dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "description": c.description,
        "icon": c.icon,
        "status": c.status,
        "display_order": int(c.display_order or 0),
    }


def serialize_product(p: StoreProduct, *, admin: bool = False) -> dict[str, Any]:
    min_qty, max_qty = quantity_bounds(p)
    out = {
        "id": p.id,
        "category_id": p.category_id,
        "category": ({"name": p.category.name, "slug": p.category.slug} if p.category is not None else None),
        "name": p.name,
        "slug": p.slug,
        "short_description": p.short_description,
        "price": round_money(p.price),
        "product_type": p.product_type or "lines",
        "min_quantity": min_qty,
        "max_quantity": max_qty,
        "available_stock": available_stock(p),
        "display_order": int(p.display_order or 0),
    }
    if admin:
        out.update(
            {
                "status": p.status,
                "is_hidden": bool(p.is_hidden),
                "stock": p.stock,
                "configured_min_quantity": p.min_quantity,
                "configured_max_quantity": p.max_quantity,
                "post_sale_instructions": p.post_sale_instructions,
            }
        )
    return out


def list_categories(db: Session, *, only_active: bool = True) -> list[StoreCategory]:
    query = db.query(StoreCategory)
    if only_active:
        query = query.filter(StoreCategory.status == "active")
    return query.order_by(StoreCategory.display_order.asc(), StoreCategory.name.asc()).all()


def list_products(
    db: Session,
    *,
    category_id: str | None = None,
    only_active: bool = True,
) -> list[StoreProduct]:
    query = db.query(StoreProduct)
    if category_id:
        query = query.filter(StoreProduct.category_id == category_id)
    if only_active:
        query = query.filter(StoreProduct.status == "active", StoreProduct.is_hidden.isnot(True))
    return query.order_by(StoreProduct.display_order.asc(), StoreProduct.name.asc()).all()


def get_public_product(db: Session, product_id: str) -> StoreProduct:
    # Hidden products stay reachable by direct link.
    product = (
        db.query(StoreProduct)
        .filter(StoreProduct.id == product_id, StoreProduct.status == "active")
        .first()
    )
    if product is None:
        raise CatalogError("Produto não encontrado", status_code=404)
    return product


def _check_category_values(db: Session, values: dict[str, Any], *, current_id: str | None = None) -> None:
    if "name" in values and not str(values["name"] or "").strip():
        raise CatalogError("Nome é obrigatório")
    if "status" in values and values["status"] not in STATUSES:
        raise CatalogError("Status inválido")
    if "slug" in values:
        slug = slugify(values["slug"] or "")
        if not slug:
            raise CatalogError("Slug inválido")
        clash = db.query(StoreCategory).filter(StoreCategory.slug == slug)
        if current_id:
            clash = clash.filter(StoreCategory.id != current_id)
        if clash.first() is not None:
            raise CatalogError("Já existe uma categoria com este slug")
        values["slug"] = slug


def create_category(db: Session, values: dict[str, Any]) -> StoreCategory:
    values = dict(values)
    if not values.get("slug"):
        values["slug"] = slugify(values.get("name") or "")
    _check_category_values(db, values)
    category = StoreCategory(**values)
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info("catalog.category.created slug=%s", category.slug)
    return category


def update_category(db: Session, category_id: str, changes: dict[str, Any]) -> StoreCategory:
    category = db.query(StoreCategory).filter(StoreCategory.id == category_id).first()
    if category is None:
        raise CatalogError("Categoria não encontrada", status_code=404)
    changes = dict(changes)
    _check_category_values(db, changes, current_id=category.id)
    for key, value in changes.items():
        setattr(category, key, value)
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category_id: str) -> None:
    category = db.query(StoreCategory).filter(StoreCategory.id == category_id).first()
    if category is None:
        raise CatalogError("Categoria não encontrada", status_code=404)
    in_use = db.query(StoreProduct.id).filter(StoreProduct.category_id == category_id).first()
    if in_use is not None:
        raise CatalogError("Categoria possui produtos", status_code=409)
    db.delete(category)
    db.commit()
    logger.info("catalog.category.deleted category_id=%s", category_id)


def _check_product_values(db: Session, values: dict[str, Any], *, current: StoreProduct | None = None) -> None:
    if "name" in values and not str(values["name"] or "").strip():
        raise CatalogError("Nome é obrigatório")
    if "price" in values:
        price = to_amount(values["price"], default=-1.0)
        if price < 0:
            raise CatalogError("Preço inválido")
        values["price"] = round_money(price)
    if "product_type" in values and values["product_type"] not in PRODUCT_TYPES:
        raise CatalogError("Tipo de produto inválido")
    if "status" in values and values["status"] not in STATUSES:
        raise CatalogError("Status inválido")
    for key in ("min_quantity", "max_quantity"):
        if values.get(key) is not None and int(values[key]) < 0:
            raise CatalogError("Quantidade inválida")
    min_qty = values.get("min_quantity", current.min_quantity if current is not None else None)
    max_qty = values.get("max_quantity", current.max_quantity if current is not None else None)
    if min_qty and max_qty and min_qty > max_qty:
        raise CatalogError("Quantidade mínima maior que a máxima")
    if values.get("category_id"):
        if db.query(StoreCategory.id).filter(StoreCategory.id == values["category_id"]).first() is None:
            raise CatalogError("Categoria não encontrada", status_code=404)
    if "slug" in values and values["slug"]:
        values["slug"] = slugify(values["slug"])


def create_product(db: Session, values: dict[str, Any]) -> StoreProduct:
    values = dict(values)
    if not values.get("slug"):
        values["slug"] = slugify(values.get("name") or "") or None
    _check_product_values(db, values)
    product = StoreProduct(**values)
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("catalog.product.created product_id=%s", product.id)
    return product


def update_product(db: Session, product_id: str, changes: dict[str, Any]) -> StoreProduct:
    product = db.query(StoreProduct).filter(StoreProduct.id == product_id).first()
    if product is None:
        raise CatalogError("Produto não encontrado", status_code=404)
    changes = dict(changes)
    _check_product_values(db, changes, current=product)
    for key, value in changes.items():
        setattr(product, key, value)
    db.commit()
    db.refresh(product)
    return product


def delete_product(db: Session, product_id: str) -> None:
    # Orders keep their own name and price snapshot, so a hard delete is safe.
    product = db.query(StoreProduct).filter(StoreProduct.id == product_id).first()
    if product is None:
        raise CatalogError("Produto não encontrado", status_code=404)
    db.delete(product)
    db.commit()
    logger.info("catalog.product.deleted product_id=%s", product_id)

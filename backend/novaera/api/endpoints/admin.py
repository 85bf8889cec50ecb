from __future__ import annotations

import json
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from novaera.api.endpoints.payments import get_misticpay_client
from novaera.core.database import get_db
from novaera.core.security import CurrentUser, require_admin
from novaera.core.settings import settings
from novaera.models.coupon import StoreCoupon
from novaera.models.order import OrderStatus, StoreOrder
from novaera.services.backup import backup_filename, export_tables
from novaera.services.catalog import (
    CatalogError,
    create_category,
    create_product,
    delete_category,
    delete_product,
    list_categories,
    list_products,
    serialize_category,
    serialize_product,
    update_category,
    update_product,
)
from novaera.services.coupon_validator import DISCOUNT_FIXED, DISCOUNT_PERCENTAGE, normalize_code
from novaera.services.fulfillment import FulfillmentError, fulfill_order
from novaera.services.misticpay import MisticPayClient, MisticPayError
from novaera.services.orders import OrderError, get_order, serialize_order, transition_order
from novaera.services.team import TeamError, create_team_operator, list_team_members, remove_team_member


logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


class CouponCreateRequest(BaseModel):
    code: str
    discount_type: str = DISCOUNT_PERCENTAGE
    discount_value: float
    max_uses: int = 0
    min_order_value: float = 0.0
    max_order_value: float = 0.0
    max_discount_amount: float = 0.0
    is_active: bool = True
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    category_ids: list[str] | None = None
    product_ids: list[str] | None = None


class CouponUpdateRequest(BaseModel):
    discount_type: str | None = None
    discount_value: float | None = None
    max_uses: int | None = None
    min_order_value: float | None = None
    max_order_value: float | None = None
    max_discount_amount: float | None = None
    is_active: bool | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    category_ids: list[str] | None = None
    product_ids: list[str] | None = None


class CategoryCreateRequest(BaseModel):
    name: str
    slug: str | None = None
    description: str | None = None
    icon: str | None = None
    status: str = "active"
    display_order: int = 0


class CategoryUpdateRequest(BaseModel):
    name: str | None = None
    slug: str | None = None
    description: str | None = None
    icon: str | None = None
    status: str | None = None
    display_order: int | None = None


class ProductCreateRequest(BaseModel):
    name: str
    price: float
    category_id: str | None = None
    slug: str | None = None
    short_description: str | None = None
    product_type: str = "lines"
    stock: str | None = None
    min_quantity: int | None = None
    max_quantity: int | None = None
    post_sale_instructions: str | None = None
    status: str = "active"
    is_hidden: bool = False
    display_order: int = 0


class ProductUpdateRequest(BaseModel):
    name: str | None = None
    price: float | None = None
    category_id: str | None = None
    slug: str | None = None
    short_description: str | None = None
    product_type: str | None = None
    stock: str | None = None
    min_quantity: int | None = None
    max_quantity: int | None = None
    post_sale_instructions: str | None = None
    status: str | None = None
    is_hidden: bool | None = None
    display_order: int | None = None


class OrderStatusRequest(BaseModel):
    status: str
    force: bool = True


class TeamOperatorRequest(BaseModel):
    email: str
    password: str
    full_name: str
    nickname: str | None = None
    team_name: str | None = None


def _coupon_out(c: StoreCoupon) -> dict:
    return {
        "id": c.id,
        "code": c.code,
        "discount_type": c.discount_type,
        "discount_value": float(c.discount_value or 0.0),
        "max_uses": int(c.max_uses or 0),
        "used_count": int(c.used_count or 0),
        "min_order_value": float(c.min_order_value or 0.0),
        "max_order_value": float(c.max_order_value or 0.0),
        "max_discount_amount": float(c.max_discount_amount or 0.0),
        "is_active": bool(c.is_active),
        "valid_from": c.valid_from.isoformat() if c.valid_from else None,
        "valid_until": c.valid_until.isoformat() if c.valid_until else None,
        "category_ids": c.category_ids or [],
        "product_ids": c.product_ids or [],
    }


def _check_discount(discount_type: str | None, discount_value: float | None) -> None:
    if discount_type is not None and discount_type not in {DISCOUNT_PERCENTAGE, DISCOUNT_FIXED}:
        raise HTTPException(status_code=400, detail="Invalid discount_type")
    if discount_value is not None and discount_value < 0:
        raise HTTPException(status_code=400, detail="discount_value must be >= 0")
    if discount_type == DISCOUNT_PERCENTAGE and discount_value is not None and discount_value > 100:
        raise HTTPException(status_code=400, detail="Percentage discount must be <= 100")


def _catalog_http_error(e: CatalogError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/admin/store/categories")
async def admin_list_categories(db: Session = Depends(get_db)) -> list[dict]:
    return [serialize_category(c) for c in list_categories(db, only_active=False)]


@router.post("/admin/store/categories")
async def admin_create_category(body: CategoryCreateRequest, db: Session = Depends(get_db)) -> dict:
    try:
        return serialize_category(create_category(db, body.model_dump()))
    except CatalogError as e:
        raise _catalog_http_error(e)


@router.patch("/admin/store/categories/{category_id}")
async def admin_update_category(
    category_id: str, body: CategoryUpdateRequest, db: Session = Depends(get_db)
) -> dict:
    try:
        return serialize_category(update_category(db, category_id, body.model_dump(exclude_unset=True)))
    except CatalogError as e:
        raise _catalog_http_error(e)


@router.delete("/admin/store/categories/{category_id}")
async def admin_delete_category(category_id: str, db: Session = Depends(get_db)) -> dict:
    try:
        delete_category(db, category_id)
    except CatalogError as e:
        raise _catalog_http_error(e)
    return {"ok": True}


@router.get("/admin/store/products")
async def admin_list_products(category_id: str | None = None, db: Session = Depends(get_db)) -> list[dict]:
    rows = list_products(db, category_id=category_id, only_active=False)
    return [serialize_product(p, admin=True) for p in rows]


@router.post("/admin/store/products")
async def admin_create_product(body: ProductCreateRequest, db: Session = Depends(get_db)) -> dict:
    try:
        return serialize_product(create_product(db, body.model_dump()), admin=True)
    except CatalogError as e:
        raise _catalog_http_error(e)


@router.patch("/admin/store/products/{product_id}")
async def admin_update_product(product_id: str, body: ProductUpdateRequest, db: Session = Depends(get_db)) -> dict:
    try:
        product = update_product(db, product_id, body.model_dump(exclude_unset=True))
    except CatalogError as e:
        raise _catalog_http_error(e)
    return serialize_product(product, admin=True)


@router.delete("/admin/store/products/{product_id}")
async def admin_delete_product(product_id: str, db: Session = Depends(get_db)) -> dict:
    try:
        delete_product(db, product_id)
    except CatalogError as e:
        raise _catalog_http_error(e)
    return {"ok": True}


@router.get("/admin/store/coupons")
async def admin_list_coupons(db: Session = Depends(get_db)) -> list[dict]:
    rows = db.query(StoreCoupon).order_by(StoreCoupon.created_at.desc()).all()
    return [_coupon_out(c) for c in rows]


@router.post("/admin/store/coupons")
async def admin_create_coupon(body: CouponCreateRequest, db: Session = Depends(get_db)) -> dict:
    code = normalize_code(body.code)
    if not code:
        raise HTTPException(status_code=400, detail="Invalid code")
    _check_discount(body.discount_type, body.discount_value)
    if db.query(StoreCoupon).filter(StoreCoupon.code == code).first() is not None:
        raise HTTPException(status_code=400, detail="Coupon already exists")
    coupon = StoreCoupon(code=code, **body.model_dump(exclude={"code"}))
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    logger.info("admin.coupon.created code=%s", code)
    return _coupon_out(coupon)


@router.patch("/admin/store/coupons/{coupon_id}")
async def admin_update_coupon(coupon_id: str, body: CouponUpdateRequest, db: Session = Depends(get_db)) -> dict:
    coupon = db.query(StoreCoupon).filter(StoreCoupon.id == coupon_id).first()
    if coupon is None:
        raise HTTPException(status_code=404, detail="Coupon not found")
    changes = body.model_dump(exclude_unset=True)
    _check_discount(changes.get("discount_type", coupon.discount_type), changes.get("discount_value"))
    for key, value in changes.items():
        setattr(coupon, key, value)
    db.commit()
    db.refresh(coupon)
    return _coupon_out(coupon)


@router.delete("/admin/store/coupons/{coupon_id}")
async def admin_deactivate_coupon(coupon_id: str, db: Session = Depends(get_db)) -> dict:
    coupon = db.query(StoreCoupon).filter(StoreCoupon.id == coupon_id).first()
    if coupon is None:
        raise HTTPException(status_code=404, detail="Coupon not found")
    coupon.is_active = False
    db.commit()
    logger.info("admin.coupon.deactivated code=%s", coupon.code)
    return {"ok": True}


@router.get("/admin/store/orders")
async def admin_list_orders(
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
) -> list[dict]:
    limit = max(1, min(int(limit or 100), 500))
    offset = max(0, int(offset or 0))
    query = db.query(StoreOrder)
    if status:
        query = query.filter(StoreOrder.status == status.strip().lower())
    rows = query.order_by(StoreOrder.created_at.desc(), StoreOrder.id.desc()).offset(offset).limit(limit).all()
    return [serialize_order(o) for o in rows]


@router.post("/admin/store/orders/{order_id}/status")
async def admin_set_order_status(
    order_id: str,
    body: OrderStatusRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    try:
        order = get_order(db, order_id)
        changed = transition_order(db, order, body.status, force=body.force)
    except OrderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    logger.info("admin.order.status order_id=%s status=%s by=%s", order_id, order.status, admin.id)

    # Goods already handed out are never taken from stock a second time.
    if order.status == OrderStatus.PAID.value and settings.store_auto_deliver and not order.delivered_items:
        try:
            fulfill_order(db, order)
        except FulfillmentError as e:
            order = get_order(db, order_id)
            return {"ok": True, "changed": changed, "order": serialize_order(order), "fulfillment_error": str(e)}
    return {"ok": True, "changed": changed, "order": serialize_order(order)}


@router.get("/admin/payments/balance")
async def admin_gateway_balance(client: MisticPayClient = Depends(get_misticpay_client)) -> dict:
    try:
        return await client.get_balance()
    except MisticPayError:
        logger.exception("admin.balance.gateway_error")
        raise HTTPException(status_code=502, detail="Erro ao consultar saldo")


@router.get("/admin/backup-export")
async def admin_backup_export(db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    backup = export_tables(db)
    backup["exported_by"] = admin.email
    filename = backup_filename()
    return Response(
        content=json.dumps(backup, ensure_ascii=False, default=str),
        media_type="application/json; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename=\"{filename}\""},
    )


@router.post("/admin/team/operators")
async def admin_create_team_operator(
    body: TeamOperatorRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    try:
        return create_team_operator(
            db,
            manager_id=admin.id,
            email=body.email,
            password=body.password,
            full_name=body.full_name,
            nickname=body.nickname,
            team_name=body.team_name,
        )
    except TeamError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/admin/team/operators")
async def admin_list_team(db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)) -> list[dict]:
    return list_team_members(db, admin.id)


@router.delete("/admin/team/operators/{member_id}")
async def admin_remove_team_member(
    member_id: str,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    try:
        remove_team_member(db, manager_id=admin.id, member_id=member_id)
    except TeamError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"ok": True}

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from novaera.api.endpoints.payments import get_misticpay_client, start_fallback_watcher
from novaera.core.database import get_db
from novaera.core.security import CurrentUser, get_current_user, get_optional_user
from novaera.core.settings import settings
from novaera.models.order import OrderStatus
from novaera.models.product import StoreProduct
from novaera.schemas.store import (
    CartQuoteRequest,
    CouponValidateRequest,
    CouponValidateResponse,
    GuestLookupRequest,
    OrderCreateRequest,
    OrderIdRequest,
    OrderPixRequest,
    PixChargeResponse,
)
from novaera.services.cart import CartError, CartSession, ProductSnapshot
from novaera.services.catalog import (
    CatalogError,
    get_public_product,
    list_categories,
    list_products,
    serialize_category,
    serialize_product,
)
from novaera.services.coupon_validator import CartLine, CouponError, validate_coupon
from novaera.services.misticpay import MisticPayClient, MisticPayError
from novaera.services.money import to_amount
from novaera.services.orders import (
    OrderError,
    OrderLineRequest,
    create_order,
    get_order,
    get_order_delivery,
    list_orders_for_email,
    lookup_guest_orders,
    serialize_order,
)
from novaera.services.payments import create_pix_for_order, refresh_transaction, settle_free_order


logger = logging.getLogger(__name__)

router = APIRouter()


def _order_http_error(e: OrderError | CouponError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/store/categories")
async def public_categories(db: Session = Depends(get_db)) -> list[dict]:
    return [serialize_category(c) for c in list_categories(db)]


@router.get("/store/products")
async def public_products(category_id: str | None = None, db: Session = Depends(get_db)) -> list[dict]:
    return [serialize_product(p) for p in list_products(db, category_id=category_id)]


@router.get("/store/products/{product_id}")
async def public_product(product_id: str, db: Session = Depends(get_db)) -> dict:
    try:
        return serialize_product(get_public_product(db, product_id))
    except CatalogError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/store/coupons/validate", response_model=CouponValidateResponse)
async def validate_coupon_endpoint(body: CouponValidateRequest, db: Session = Depends(get_db)):
    cart_items = None
    if body.cart_items is not None:
        cart_items = [
            CartLine(
                product_id=item.product_id,
                category_id=item.category_id,
                price=to_amount(item.price),
                quantity=int(to_amount(item.quantity)),
            )
            for item in body.cart_items
        ]
    try:
        quote = validate_coupon(db, code=body.code, order_value=body.order_value, cart_items=cart_items)
    except CouponError as e:
        logger.info("store.coupon.rejected reason=%s", e.code)
        return JSONResponse(
            status_code=e.status_code,
            content={"valid": False, "error": e.message, "reason": e.code},
        )
    return CouponValidateResponse(
        valid=True,
        coupon_id=quote.coupon_id,
        code=quote.code,
        discount_type=quote.discount_type,
        discount_value=quote.discount_value,
        discount_amount=quote.discount_amount,
        eligible_value=quote.eligible_value,
    )


@router.post("/store/cart/quote")
async def quote_cart(body: CartQuoteRequest, db: Session = Depends(get_db)) -> dict:
    ids = {item.product_id for item in body.items}
    products = {
        p.id: p
        for p in db.query(StoreProduct).filter(StoreProduct.id.in_(sorted(ids)), StoreProduct.status == "active").all()
    }

    cart = CartSession()
    errors: list[dict] = []
    for item in body.items:
        product = products.get(item.product_id)
        if product is None:
            errors.append({"product_id": item.product_id, "error": "Produto não encontrado"})
            continue
        try:
            cart.add_item(ProductSnapshot.from_model(product), item.quantity)
        except CartError as e:
            errors.append({"product_id": item.product_id, "error": str(e)})

    coupon_error = None
    if body.coupon_code and body.coupon_code.strip() and cart.lines:
        lines = [
            CartLine(
                product_id=line.product.id,
                category_id=line.product.category_id,
                price=line.product.price,
                quantity=line.quantity,
            )
            for line in cart.lines
        ]
        try:
            quote = validate_coupon(db, code=body.coupon_code, order_value=cart.subtotal, cart_items=lines)
            cart.apply_coupon(quote.code, quote.discount_amount)
        except CouponError as e:
            coupon_error = {"error": e.message, "reason": e.code}

    return {
        "items": [
            {
                "product_id": line.product.id,
                "product_name": line.product.name,
                "unit_price": line.product.price,
                "quantity": line.quantity,
                "total": round(line.total, 2),
            }
            for line in cart.lines
        ],
        "errors": errors,
        "item_count": cart.item_count,
        "subtotal": cart.subtotal,
        "coupon_code": cart.coupon_code,
        "coupon_error": coupon_error,
        "discount_amount": cart.discount_amount,
        "total": cart.total,
    }


@router.post("/store/orders")
async def create_order_endpoint(
    body: OrderCreateRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser | None = Depends(get_optional_user),
) -> dict:
    try:
        order = create_order(
            db,
            customer_email=body.customer_email,
            items=[OrderLineRequest(product_id=i.product_id, quantity=i.quantity) for i in body.items],
            payment_method=body.payment_method,
            coupon_code=body.coupon_code,
            user_id=(current_user.id if current_user else None),
        )
    except (OrderError, CouponError) as e:
        raise _order_http_error(e)
    order = settle_free_order(db, order, auto_deliver=settings.store_auto_deliver)
    return {"success": True, "order": serialize_order(order)}


@router.get("/store/orders/mine")
async def my_orders(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[dict]:
    if not current_user.email:
        return []
    return [serialize_order(o) for o in list_orders_for_email(db, current_user.email)]


@router.get("/store/orders/{order_id}/status")
async def order_status(
    order_id: str,
    refresh: bool = False,
    db: Session = Depends(get_db),
    client: MisticPayClient = Depends(get_misticpay_client),
) -> dict:
    try:
        order = get_order(db, order_id)
    except OrderError as e:
        raise _order_http_error(e)

    if refresh and order.status == OrderStatus.PENDING.value and order.payment_reference:
        try:
            await refresh_transaction(db, client, order.payment_reference, auto_deliver=settings.store_auto_deliver)
        except MisticPayError:
            logger.warning("store.status.refresh_failed order_id=%s", order_id)
        db.refresh(order)

    return {
        "id": order.id,
        "status": order.status,
        "total": order.total,
        "paid_at": order.paid_at.isoformat() if order.paid_at else None,
        "delivered_at": order.delivered_at.isoformat() if order.delivered_at else None,
    }


@router.post("/store/orders/delivery")
async def order_delivery(body: OrderIdRequest, db: Session = Depends(get_db)) -> dict:
    try:
        return get_order_delivery(db, body.order_id, window_hours=settings.delivery_access_window_hours)
    except OrderError as e:
        raise _order_http_error(e)


@router.post("/store/orders/guest-lookup")
async def guest_lookup(body: GuestLookupRequest, db: Session = Depends(get_db)) -> dict:
    try:
        return lookup_guest_orders(db, body.email)
    except OrderError as e:
        raise _order_http_error(e)


@router.post("/store/orders/{order_id}/pix", response_model=PixChargeResponse)
async def create_order_pix(
    order_id: str,
    body: OrderPixRequest,
    request: Request,
    db: Session = Depends(get_db),
    client: MisticPayClient = Depends(get_misticpay_client),
):
    try:
        txn = await create_pix_for_order(
            db,
            client,
            order_id=order_id,
            payer_name=body.payer_name,
            payer_document=body.payer_document,
            description=body.description,
            webhook_url=settings.misticpay_webhook_url(),
            default_payer_name=settings.default_payer_name,
        )
    except OrderError as e:
        raise _order_http_error(e)
    except MisticPayError:
        logger.exception("store.pix.gateway_error order_id=%s", order_id)
        raise HTTPException(status_code=502, detail="Erro ao gerar PIX")

    start_fallback_watcher(request, client, txn.provider_transaction_id)
    return PixChargeResponse(
        order_id=txn.order_id,
        transaction_id=txn.provider_transaction_id,
        amount=txn.amount,
        fee=txn.fee or 0.0,
        status=txn.status,
        qr_code_base64=txn.qr_code_base64,
        qr_code_url=txn.qr_code_url,
        copy_paste=txn.copy_paste,
    )

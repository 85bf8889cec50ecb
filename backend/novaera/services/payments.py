from __future__ import annotations

import hashlib
import hmac
import logging
import re
import time
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from novaera.models.order import OrderStatus, StoreOrder
from novaera.models.payment_transaction import PaymentTransaction
from novaera.services.fulfillment import FulfillmentError, fulfill_order
from novaera.services.misticpay import (
    STATE_COMPLETED,
    STATE_FAILED,
    STATE_PENDING,
    MisticPayClient,
)
from novaera.services.money import round_money, to_amount
from novaera.services.orders import OrderError, get_order, transition_order


logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT = "00000000000"

PROVIDER_TO_ORDER_STATUS: dict[str, str] = {
    STATE_COMPLETED: OrderStatus.PAID.value,
    STATE_FAILED: OrderStatus.FAILED.value,
}


class PaymentNotFound(LookupError):
    pass


def _digits(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


def _save_transaction(db: Session, txn: PaymentTransaction) -> PaymentTransaction:
    db.add(txn)
    db.commit()
    db.refresh(txn)
    return txn


def _deliver_paid_order(db: Session, order: StoreOrder, *, now: datetime | None = None) -> StoreOrder:
    try:
        fulfill_order(db, order, now=now)
    except FulfillmentError:
        # Paid but undelivered orders are resolved by an admin.
        order = db.query(StoreOrder).filter(StoreOrder.id == order.id).first()
    return order


def settle_free_order(
    db: Session,
    order: StoreOrder,
    *,
    auto_deliver: bool = True,
    now: datetime | None = None,
) -> StoreOrder:
    """Mark a pending order whose total is zero as paid without a gateway charge."""
    if order.status != OrderStatus.PENDING.value or round_money(order.total) > 0:
        return order
    transition_order(db, order, OrderStatus.PAID.value, now=now)
    logger.info("payments.free_order.settled order_id=%s coupon=%s", order.id, order.coupon_code)
    if auto_deliver:
        order = _deliver_paid_order(db, order, now=now)
    return order


async def create_pix_for_order(
    db: Session,
    client: MisticPayClient,
    *,
    order_id: str,
    payer_name: str | None = None,
    payer_document: str | None = None,
    description: str | None = None,
    webhook_url: str | None = None,
    default_payer_name: str = "Cliente Nova Era",
) -> PaymentTransaction:
    order = get_order(db, order_id)
    if order.status != OrderStatus.PENDING.value:
        raise OrderError("Pedido não está aguardando pagamento", status_code=409)
    amount = round_money(order.total)
    if amount <= 0:
        raise OrderError("Pedido sem valor a pagar", status_code=409)

    document = _digits(payer_document) or DEFAULT_DOCUMENT
    name = (payer_name or "").strip() or default_payer_name
    charge = await client.create_transaction(
        amount=amount,
        payer_name=name,
        payer_document=document,
        transaction_id=order.id,
        description=(description or "").strip() or f"Pedido {order.id}",
        webhook_url=webhook_url,
    )

    order.payment_reference = charge.transaction_id
    order.payer_name = name
    order.payer_document = document
    txn = _save_transaction(
        db,
        PaymentTransaction(
            order_id=order.id,
            user_id=order.user_id,
            provider_transaction_id=charge.transaction_id,
            amount=amount,
            fee=charge.fee,
            status=STATE_PENDING,
            payer_name=name,
            payer_document=document,
            description=description,
            qr_code_base64=charge.qr_code_base64,
            qr_code_url=charge.qr_code_url,
            copy_paste=charge.copy_paste,
            provider_metadata=charge.raw,
        ),
    )
    logger.info("payments.pix.created order_id=%s provider_id=%s amount=%s", order.id, charge.transaction_id, amount)
    return txn


async def create_user_deposit(
    db: Session,
    client: MisticPayClient,
    *,
    user_id: str,
    amount: float,
    payer_name: str,
    payer_document: str,
    description: str | None = None,
    webhook_url: str | None = None,
) -> PaymentTransaction:
    value = round_money(to_amount(amount))
    if value <= 0:
        raise OrderError("Valor inválido")
    name = (payer_name or "").strip()
    if len(name) < 2:
        raise OrderError("Nome do pagador inválido")
    document = _digits(payer_document)
    if len(document) != 11:
        raise OrderError("CPF inválido")

    reference = f"novaera_{user_id}_{int(time.time() * 1000)}"
    charge = await client.create_transaction(
        amount=value,
        payer_name=name,
        payer_document=document,
        transaction_id=reference,
        description=(description or "").strip() or "Pagamento Nova Era",
        webhook_url=webhook_url,
    )
    return _save_transaction(
        db,
        PaymentTransaction(
            user_id=user_id,
            provider_transaction_id=charge.transaction_id,
            amount=value,
            fee=charge.fee,
            status=STATE_PENDING,
            payer_name=name,
            payer_document=document,
            description=description,
            qr_code_base64=charge.qr_code_base64,
            qr_code_url=charge.qr_code_url,
            copy_paste=charge.copy_paste,
            provider_metadata=charge.raw,
        ),
    )


def apply_provider_status(
    db: Session,
    provider_transaction_id: str,
    state: str,
    *,
    auto_deliver: bool = True,
    now: datetime | None = None,
) -> StoreOrder | None:
    """Mirror a gateway state onto the local transaction and its order.

    Both the webhook (push) and the status poll (pull) end up here, so
    repeated or late notifications must be harmless.
    """
    reference = str(provider_transaction_id or "").strip()
    normalized = str(state or "").strip().upper() or STATE_PENDING

    txn = db.query(PaymentTransaction).filter(PaymentTransaction.provider_transaction_id == reference).first()
    order = None
    if txn is not None and txn.order_id:
        order = db.query(StoreOrder).filter(StoreOrder.id == txn.order_id).first()
    if order is None:
        order = db.query(StoreOrder).filter(StoreOrder.payment_reference == reference).first()
    if txn is None and order is None:
        raise PaymentNotFound(reference)

    if txn is not None and txn.status != normalized:
        txn.status = normalized
        db.commit()

    target = PROVIDER_TO_ORDER_STATUS.get(normalized)
    if order is None or target is None:
        return order

    if order.status == OrderStatus.PENDING.value:
        transition_order(db, order, target, now=now)
    elif order.status != target and not (
        target == OrderStatus.PAID.value and order.status == OrderStatus.DELIVERED.value
    ):
        logger.warning(
            "payments.status.ignored order_id=%s order_status=%s provider_state=%s",
            order.id,
            order.status,
            normalized,
        )
        return order

    if target == OrderStatus.PAID.value and auto_deliver and order.status == OrderStatus.PAID.value:
        order = _deliver_paid_order(db, order, now=now)
    return order


async def refresh_transaction(
    db: Session,
    client: MisticPayClient,
    provider_transaction_id: str,
    *,
    auto_deliver: bool = True,
) -> str:
    status = await client.check_transaction(provider_transaction_id)
    try:
        apply_provider_status(db, provider_transaction_id, status.status, auto_deliver=auto_deliver)
    except PaymentNotFound:
        logger.warning("payments.refresh.unknown provider_id=%s", provider_transaction_id)
    return status.status


def verify_webhook_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    sig = (signature or "").strip()
    if not sig:
        return False
    if sig.lower().startswith("sha256="):
        sig = sig.split("=", 1)[1]
    digest = hmac.new(key=secret.encode("utf-8"), msg=raw_body, digestmod=hashlib.sha256).hexdigest()
    return hmac.compare_digest(digest, sig.lower())


def handle_webhook(db: Session, payload: dict[str, Any], *, auto_deliver: bool = True) -> dict[str, Any]:
    transaction_type = str(payload.get("transactionType") or "").strip().upper()
    if transaction_type != "DEPOSITO":
        logger.info("payments.webhook.ignored transaction_type=%s", transaction_type)
        return {"received": True, "ignored": True}

    reference = str(payload.get("transactionId") or "").strip()
    state = str(payload.get("status") or "").strip().upper()
    if not reference:
        return {"received": False, "error": "missing transactionId"}

    try:
        order = apply_provider_status(db, reference, state, auto_deliver=auto_deliver)
    except PaymentNotFound:
        logger.warning("payments.webhook.not_found provider_id=%s", reference)
        return {"received": False, "error": "Order not found"}

    logger.info(
        "payments.webhook.applied provider_id=%s state=%s order_id=%s order_status=%s",
        reference,
        state,
        order.id if order else None,
        order.status if order else None,
    )
    return {"received": True, "orderStatus": order.status if order else None}

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from novaera.core.database import get_db
from novaera.core.security import CurrentUser, get_current_user
from novaera.core.settings import settings
from novaera.services.misticpay import MisticPayClient, MisticPayError, build_misticpay_client
from novaera.services.orders import OrderError
from novaera.services.payment_watcher import PaymentWatcher, WatcherRegistry
from novaera.services.payments import (
    create_user_deposit,
    handle_webhook,
    refresh_transaction,
    verify_webhook_signature,
)


logger = logging.getLogger(__name__)

router = APIRouter()


class DepositRequest(BaseModel):
    amount: float
    payer_name: str
    payer_document: str
    description: str | None = None


class CheckRequest(BaseModel):
    transaction_id: str


def get_misticpay_client(request: Request) -> MisticPayClient:
    client = getattr(request.app.state, "misticpay_client", None)
    if client is None:
        client = build_misticpay_client()
        request.app.state.misticpay_client = client
    return client


def _watcher_registry(request: Request) -> WatcherRegistry:
    registry = getattr(request.app.state, "payment_watchers", None)
    if registry is None:
        registry = WatcherRegistry()
        request.app.state.payment_watchers = registry
    return registry


def start_fallback_watcher(request: Request, client: MisticPayClient, transaction_id: str) -> None:
    """Poll the gateway for ``transaction_id`` in case the webhook never arrives."""
    if not settings.pix_poll_enabled:
        return
    session_factory = getattr(request.app.state, "session_factory", None)
    if session_factory is None:
        return

    async def _check(txid: str) -> str:
        db = session_factory()
        try:
            return await refresh_transaction(db, client, txid, auto_deliver=settings.store_auto_deliver)
        finally:
            db.close()

    watcher = PaymentWatcher(
        _check,
        interval_s=settings.pix_poll_interval_s,
        timeout_s=settings.pix_poll_timeout_s,
    )
    _watcher_registry(request).start(watcher, transaction_id)


@router.post("/payments/misticpay/create")
async def create_deposit(
    body: DepositRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    client: MisticPayClient = Depends(get_misticpay_client),
) -> dict:
    try:
        txn = await create_user_deposit(
            db,
            client,
            user_id=current_user.id,
            amount=body.amount,
            payer_name=body.payer_name,
            payer_document=body.payer_document,
            description=body.description,
            webhook_url=settings.misticpay_webhook_url(),
        )
    except OrderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except MisticPayError:
        logger.exception("payments.deposit.gateway_error user_id=%s", current_user.id)
        raise HTTPException(status_code=502, detail="Erro ao processar pagamento")

    start_fallback_watcher(request, client, txn.provider_transaction_id)
    return {
        "transaction_id": txn.provider_transaction_id,
        "amount": txn.amount,
        "fee": txn.fee,
        "status": txn.status,
        "qr_code_base64": txn.qr_code_base64,
        "qr_code_url": txn.qr_code_url,
        "copy_paste": txn.copy_paste,
    }


@router.post("/payments/misticpay/check")
async def check_payment(
    body: CheckRequest,
    db: Session = Depends(get_db),
    client: MisticPayClient = Depends(get_misticpay_client),
) -> dict:
    transaction_id = (body.transaction_id or "").strip()
    if not transaction_id:
        raise HTTPException(status_code=400, detail="transaction_id é obrigatório")
    try:
        status = await refresh_transaction(db, client, transaction_id, auto_deliver=settings.store_auto_deliver)
    except MisticPayError:
        logger.exception("payments.check.gateway_error transaction_id=%s", transaction_id)
        raise HTTPException(status_code=502, detail="Erro ao consultar pagamento")
    return {"transaction_id": transaction_id, "status": status}


@router.post("/payments/misticpay/webhook")
async def misticpay_webhook(request: Request, db: Session = Depends(get_db)) -> dict:
    raw_body = await request.body()
    secret = settings.misticpay_webhook_secret
    if secret and not verify_webhook_signature(raw_body, request.headers.get("x-signature"), secret):
        logger.warning("payments.webhook.bad_signature")
        return {"received": False, "error": "Invalid signature"}

    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        return {"received": False, "error": "Invalid JSON"}
    if not isinstance(payload, dict):
        return {"received": False, "error": "Invalid JSON"}

    try:
        result = handle_webhook(db, payload, auto_deliver=settings.store_auto_deliver)
    except Exception as e:
        db.rollback()
        logger.exception("payments.webhook.error")
        return {"received": False, "error": str(e)}

    if result.get("received") and not result.get("ignored"):
        _watcher_registry(request).notify(
            str(payload.get("transactionId") or "").strip(),
            str(payload.get("status") or ""),
        )
    return result

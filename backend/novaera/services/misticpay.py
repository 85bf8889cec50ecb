from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from novaera.core.settings import settings
from novaera.services.money import to_amount


logger = logging.getLogger(__name__)

STATE_PENDING = "PENDENTE"
STATE_COMPLETED = "COMPLETO"
STATE_FAILED = "FALHA"
TERMINAL_STATES = frozenset({STATE_COMPLETED, STATE_FAILED})


class MisticPayError(RuntimeError):
    pass


@dataclass(frozen=True)
class PixCharge:
    transaction_id: str
    qr_code_base64: str
    qr_code_url: str
    copy_paste: str
    amount: float
    fee: float
    state: str
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionStatus:
    transaction_id: str
    status: str
    raw: dict[str, Any] = field(default_factory=dict)


class MisticPayClient:
    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        base_url: str = "https://api.misticpay.com/api",
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client_id = (client_id or "").strip()
        self._client_secret = (client_secret or "").strip()
        self._base_url = (base_url or "").strip().rstrip("/")
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_s), transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {"ci": self._client_id, "cs": self._client_secret, "Content-Type": "application/json"}

    async def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self._client_id or not self._client_secret:
            raise MisticPayError("MisticPay credentials are not configured")

        try:
            resp = await self._client.request(
                method,
                f"{self._base_url}{path}",
                headers=self._headers(),
                json=payload,
            )
        except httpx.HTTPError as e:
            raise MisticPayError(f"MisticPay request failed: {e}")

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code >= 400:
            message = data.get("message") if isinstance(data, dict) else None
            logger.warning("misticpay.error path=%s status=%s body=%s", path, resp.status_code, resp.text[:500])
            raise MisticPayError(message or f"MisticPay error {resp.status_code}")
        if not isinstance(data, dict):
            raise MisticPayError("MisticPay returned invalid JSON")
        return data

    async def create_transaction(
        self,
        *,
        amount: float,
        payer_name: str,
        payer_document: str,
        transaction_id: str,
        description: str,
        webhook_url: str | None = None,
    ) -> PixCharge:
        payload: dict[str, Any] = {
            "amount": amount,
            "payerName": payer_name,
            "payerDocument": payer_document,
            "transactionId": transaction_id,
            "description": description,
        }
        if webhook_url:
            payload["projectWebhook"] = webhook_url

        data = await self._request("POST", "/transactions/create", payload)
        body = data.get("data") or {}
        if not isinstance(body, dict) or not body.get("transactionId"):
            raise MisticPayError("MisticPay response is missing transactionId")

        logger.info("misticpay.create ok reference=%s provider_id=%s", transaction_id, body.get("transactionId"))
        return PixCharge(
            transaction_id=str(body.get("transactionId")),
            qr_code_base64=str(body.get("qrCodeBase64") or ""),
            qr_code_url=str(body.get("qrcodeUrl") or ""),
            copy_paste=str(body.get("copyPaste") or ""),
            amount=to_amount(body.get("transactionAmount"), default=to_amount(amount)),
            # Fees come back in cents.
            fee=to_amount(body.get("transactionFee")) / 100.0,
            state=str(body.get("transactionState") or STATE_PENDING).upper(),
            raw=body,
        )

    async def check_transaction(self, transaction_id: str) -> TransactionStatus:
        data = await self._request("POST", "/transactions/check", {"transactionId": transaction_id})
        transaction = data.get("transaction") or {}
        if not isinstance(transaction, dict):
            transaction = {}
        status = str(transaction.get("transactionState") or STATE_PENDING).upper()
        return TransactionStatus(transaction_id=str(transaction_id), status=status, raw=transaction)

    async def get_balance(self) -> dict[str, Any]:
        data = await self._request("GET", "/users/balance")
        body = data.get("data")
        return body if isinstance(body, dict) else {"balance": body}


def build_misticpay_client(transport: httpx.AsyncBaseTransport | None = None) -> MisticPayClient:
    return MisticPayClient(
        client_id=settings.misticpay_client_id or "",
        client_secret=settings.misticpay_client_secret or "",
        base_url=settings.misticpay_api_url,
        timeout_s=settings.misticpay_timeout_s,
        transport=transport,
    )

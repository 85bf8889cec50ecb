import json
from datetime import datetime, timezone

import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from novaera.core.database import Base
from novaera.models import coupon, finance, order, payment_transaction, product, profile, team  # noqa: F401
from novaera.models.coupon import StoreCoupon
from novaera.models.product import StoreCategory, StoreProduct
from novaera.services.misticpay import MisticPayClient


def make_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def add_category(db, name="Contas", slug="contas") -> StoreCategory:
    category = StoreCategory(name=name, slug=slug)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def add_product(
    db,
    *,
    name="Conta Premium",
    price=50.0,
    stock="acc-1\nacc-2\nacc-3",
    category_id=None,
    product_type="lines",
    min_quantity=None,
    max_quantity=None,
    status="active",
    post_sale_instructions=None,
) -> StoreProduct:
    p = StoreProduct(
        name=name,
        price=price,
        stock=stock,
        category_id=category_id,
        product_type=product_type,
        min_quantity=min_quantity,
        max_quantity=max_quantity,
        status=status,
        post_sale_instructions=post_sale_instructions,
    )
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


def add_coupon(db, code="SAVE10", **kwargs) -> StoreCoupon:
    values = {"discount_type": "percentage", "discount_value": 10.0, "is_active": True}
    values.update(kwargs)
    c = StoreCoupon(code=code, **values)
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


class FakeMisticPay:
    """In-memory stand-in for the gateway HTTP API."""

    def __init__(self) -> None:
        self.states: dict[str, str] = {}
        self.requests: list[httpx.Request] = []
        self.created: list[dict] = []
        self.counter = 0
        self.fail_with: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "Gateway indisponível"})
        body = json.loads(request.content or b"{}") if request.content else {}
        path = request.url.path
        if path.endswith("/transactions/create"):
            self.counter += 1
            txid = f"mp-{self.counter}"
            self.states[txid] = "PENDENTE"
            self.created.append(body)
            return httpx.Response(
                200,
                json={
                    "data": {
                        "transactionId": txid,
                        "qrCodeBase64": "aGVsbG8=",
                        "qrcodeUrl": "https://qr.test/" + txid,
                        "copyPaste": "00020126pix" + txid,
                        "transactionAmount": body.get("amount"),
                        "transactionFee": 150,
                        "transactionState": "PENDENTE",
                    }
                },
            )
        if path.endswith("/transactions/check"):
            txid = str(body.get("transactionId"))
            if txid not in self.states:
                return httpx.Response(404, json={"message": "Transação não encontrada"})
            return httpx.Response(200, json={"transaction": {"transactionId": txid, "transactionState": self.states[txid]}})
        if path.endswith("/users/balance"):
            return httpx.Response(200, json={"data": {"balance": 1234.5}})
        return httpx.Response(404, json={"message": "not found"})

    def client(self) -> MisticPayClient:
        return MisticPayClient(
            client_id="ci-test",
            client_secret="cs-test",
            base_url="https://api.misticpay.test/api",
            transport=httpx.MockTransport(self.handler),
        )

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from novaera.core.database import Base
from novaera.models.coupon import StoreCoupon
from novaera.models.order import StoreOrder
from novaera.models.payment_transaction import PaymentTransaction
from novaera.models.product import StoreProduct
from novaera.services.orders import OrderLineRequest, create_order
from novaera.services.payments import apply_provider_status


def main() -> None:
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        product = StoreProduct(name="Conta", price=50.0, stock="a\nb\nc\nd", status="active")
        coupon = StoreCoupon(code="VINTE", discount_type="fixed", discount_value=20, max_uses=1, is_active=True)
        db.add_all([product, coupon])
        db.commit()

        order = create_order(
            db,
            customer_email="cliente@example.com",
            items=[OrderLineRequest(product_id=product.id, quantity=3)],
            coupon_code="VINTE",
        )
        assert (order.subtotal, order.discount_amount, order.total) == (150.0, 20.0, 130.0), order.total
        assert order.status == "pending", order.status
        db.refresh(coupon)
        assert coupon.used_count == 1, coupon.used_count

        order.payment_reference = "mp-verify-1"
        db.add(PaymentTransaction(order_id=order.id, provider_transaction_id="mp-verify-1", amount=order.total))
        db.commit()

        apply_provider_status(db, "mp-verify-1", "COMPLETO")
        order = db.query(StoreOrder).filter(StoreOrder.id == order.id).first()
        assert order.status == "delivered", order.status
        assert [i["content"] for i in order.delivered_items] == [["a", "b", "c"]], order.delivered_items
        db.refresh(product)
        assert product.stock == "d", product.stock

        apply_provider_status(db, "mp-verify-1", "COMPLETO")
        db.refresh(product)
        assert product.stock == "d", product.stock
    finally:
        db.close()


if __name__ == "__main__":
    main()
    print("OK")

import hashlib
import hmac
import json
import unittest

from novaera.models.coupon import StoreCoupon
from novaera.models.order import StoreOrder
from novaera.models.payment_transaction import PaymentTransaction
from novaera.services.misticpay import MisticPayError
from novaera.services.orders import OrderError, OrderLineRequest, create_order, transition_order
from novaera.services.payments import (
    apply_provider_status,
    create_pix_for_order,
    create_user_deposit,
    handle_webhook,
    refresh_transaction,
    settle_free_order,
    verify_webhook_signature,
)

from _support import FakeMisticPay, add_coupon, add_product, make_session_factory


class PaymentTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.Session = make_session_factory()
        self.db = self.Session()
        self.gateway = FakeMisticPay()
        self.client = self.gateway.client()
        self.product = add_product(self.db, price=50.0, stock="k1\nk2\nk3\nk4")

    async def asyncTearDown(self):
        await self.client.aclose()
        self.db.close()

    def new_order(self, quantity=3, coupon_code=None):
        return create_order(
            self.db,
            customer_email="cliente@example.com",
            items=[OrderLineRequest(product_id=self.product.id, quantity=quantity)],
            coupon_code=coupon_code,
        )

    async def pix_for(self, order, **kwargs):
        return await create_pix_for_order(self.db, self.client, order_id=order.id, **kwargs)


class TestCreatePix(PaymentTestCase):
    async def test_amount_is_order_total(self):
        add_coupon(self.db, "VINTE", discount_type="fixed", discount_value=20)
        order = self.new_order(coupon_code="VINTE")
        txn = await self.pix_for(order, payer_document="123.456.789-09")

        sent = self.gateway.created[0]
        self.assertEqual(sent["amount"], 130.0)
        self.assertEqual(sent["transactionId"], order.id)
        self.assertEqual(sent["payerDocument"], "12345678909")
        self.assertEqual(sent["payerName"], "Cliente Nova Era")
        self.assertEqual(txn.amount, 130.0)
        self.assertEqual(txn.fee, 1.5)
        self.assertEqual(txn.status, "PENDENTE")
        self.db.refresh(order)
        self.assertEqual(order.payment_reference, txn.provider_transaction_id)

    async def test_default_document(self):
        order = self.new_order(quantity=1)
        await self.pix_for(order, payer_name="Maria")
        self.assertEqual(self.gateway.created[0]["payerDocument"], "00000000000")
        self.assertEqual(self.gateway.created[0]["payerName"], "Maria")

    async def test_credentials_sent_as_headers(self):
        order = self.new_order(quantity=1)
        await self.pix_for(order)
        request = self.gateway.requests[0]
        self.assertEqual(request.headers["ci"], "ci-test")
        self.assertEqual(request.headers["cs"], "cs-test")

    async def test_only_pending_orders(self):
        order = self.new_order(quantity=1)
        transition_order(self.db, order, "cancelled")
        with self.assertRaises(OrderError) as ctx:
            await self.pix_for(order)
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(self.gateway.created, [])

    async def test_gateway_error(self):
        self.gateway.fail_with = 500
        order = self.new_order(quantity=1)
        with self.assertRaises(MisticPayError) as ctx:
            await self.pix_for(order)
        self.assertIn("Gateway indisponível", str(ctx.exception))
        self.assertEqual(self.db.query(PaymentTransaction).count(), 0)


class TestFreeOrders(PaymentTestCase):
    async def test_zero_total_is_paid_and_delivered_without_a_charge(self):
        coupon = add_coupon(self.db, "GRATIS", discount_type="fixed", discount_value=500, max_uses=1)
        order = self.new_order(quantity=2, coupon_code="GRATIS")
        self.assertEqual(order.total, 0.0)

        order = settle_free_order(self.db, order)
        self.assertEqual(order.status, "delivered")
        self.assertIsNotNone(order.paid_at)
        self.assertEqual(order.delivered_items[0]["content"], ["k1", "k2"])
        self.assertEqual(self.gateway.requests, [])
        self.db.refresh(coupon)
        self.assertEqual(coupon.used_count, 1)

    async def test_zero_total_without_auto_delivery_stays_paid(self):
        add_coupon(self.db, "GRATIS", discount_type="fixed", discount_value=500)
        order = settle_free_order(self.db, self.new_order(quantity=1, coupon_code="GRATIS"), auto_deliver=False)
        self.assertEqual(order.status, "paid")

    async def test_orders_with_a_total_are_left_pending(self):
        order = settle_free_order(self.db, self.new_order(quantity=1))
        self.assertEqual(order.status, "pending")

    async def test_pix_refuses_zero_total(self):
        add_coupon(self.db, "GRATIS", discount_type="fixed", discount_value=500)
        order = self.new_order(quantity=1, coupon_code="GRATIS")
        with self.assertRaises(OrderError) as ctx:
            await self.pix_for(order)
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(self.gateway.created, [])


class TestProviderStatus(PaymentTestCase):
    async def test_completed_delivers(self):
        order = self.new_order(quantity=2)
        txn = await self.pix_for(order)
        result = handle_webhook(
            self.db,
            {"transactionId": txn.provider_transaction_id, "status": "COMPLETO", "transactionType": "DEPOSITO"},
        )
        self.assertTrue(result["received"])
        self.assertEqual(result["orderStatus"], "delivered")
        order = self.db.get(StoreOrder, order.id)
        self.assertEqual([i["content"] for i in order.delivered_items], [["k1", "k2"]])
        self.assertEqual(self.db.get(PaymentTransaction, txn.id).status, "COMPLETO")

    async def test_completed_without_auto_delivery(self):
        order = self.new_order(quantity=3)
        txn = await self.pix_for(order)
        apply_provider_status(self.db, txn.provider_transaction_id, "COMPLETO", auto_deliver=False)
        self.assertEqual(self.db.get(StoreOrder, order.id).status, "paid")

    async def test_repeated_notifications_are_harmless(self):
        order = self.new_order(quantity=1)
        txn = await self.pix_for(order)
        payload = {"transactionId": txn.provider_transaction_id, "status": "COMPLETO", "transactionType": "DEPOSITO"}
        handle_webhook(self.db, payload)
        second = handle_webhook(self.db, payload)
        self.assertEqual(second["orderStatus"], "delivered")
        self.db.refresh(self.product)
        self.assertEqual(self.product.stock, "k2\nk3\nk4")

    async def test_failure_releases_coupon(self):
        coupon = add_coupon(self.db, "UMA", max_uses=1)
        order = self.new_order(quantity=1, coupon_code="UMA")
        txn = await self.pix_for(order)
        result = handle_webhook(
            self.db,
            {"transactionId": txn.provider_transaction_id, "status": "FALHA", "transactionType": "DEPOSITO"},
        )
        self.assertEqual(result["orderStatus"], "failed")
        self.db.expire_all()
        self.assertEqual(self.db.get(StoreCoupon, coupon.id).used_count, 0)

    async def test_pending_state_changes_nothing(self):
        order = self.new_order(quantity=1)
        txn = await self.pix_for(order)
        apply_provider_status(self.db, txn.provider_transaction_id, "PENDENTE")
        self.assertEqual(self.db.get(StoreOrder, order.id).status, "pending")

    async def test_late_failure_after_payment_is_ignored(self):
        order = self.new_order(quantity=1)
        txn = await self.pix_for(order)
        apply_provider_status(self.db, txn.provider_transaction_id, "COMPLETO")
        apply_provider_status(self.db, txn.provider_transaction_id, "FALHA")
        self.assertEqual(self.db.get(StoreOrder, order.id).status, "delivered")

    async def test_stock_shortage_keeps_order_paid(self):
        order = self.new_order(quantity=3)
        txn = await self.pix_for(order)
        self.product.stock = "k1"
        self.db.commit()
        result = handle_webhook(
            self.db,
            {"transactionId": txn.provider_transaction_id, "status": "COMPLETO", "transactionType": "DEPOSITO"},
        )
        self.assertEqual(result["orderStatus"], "paid")

    async def test_refresh_transaction(self):
        order = self.new_order(quantity=1)
        txn = await self.pix_for(order)
        self.gateway.states[txn.provider_transaction_id] = "COMPLETO"
        state = await refresh_transaction(self.db, self.client, txn.provider_transaction_id)
        self.assertEqual(state, "COMPLETO")
        self.assertEqual(self.db.get(StoreOrder, order.id).status, "delivered")


class TestWebhookPayloads(PaymentTestCase):
    async def test_non_deposit_ignored(self):
        result = handle_webhook(self.db, {"transactionId": "x", "status": "COMPLETO", "transactionType": "SAQUE"})
        self.assertEqual(result, {"received": True, "ignored": True})

    async def test_unknown_transaction(self):
        result = handle_webhook(self.db, {"transactionId": "nope", "status": "COMPLETO", "transactionType": "DEPOSITO"})
        self.assertFalse(result["received"])
        self.assertEqual(result["error"], "Order not found")

    async def test_missing_transaction_id(self):
        result = handle_webhook(self.db, {"status": "COMPLETO", "transactionType": "DEPOSITO"})
        self.assertFalse(result["received"])


class TestDeposits(PaymentTestCase):
    async def test_creates_user_deposit(self):
        txn = await create_user_deposit(
            self.db,
            self.client,
            user_id="u-1",
            amount=25,
            payer_name="João Silva",
            payer_document="123.456.789-09",
        )
        self.assertIsNone(txn.order_id)
        self.assertTrue(self.gateway.created[0]["transactionId"].startswith("novaera_u-1_"))
        self.assertEqual(self.gateway.created[0]["description"], "Pagamento Nova Era")

    async def test_validation(self):
        cases = [
            {"amount": 0, "payer_name": "João", "payer_document": "12345678909"},
            {"amount": 10, "payer_name": "J", "payer_document": "12345678909"},
            {"amount": 10, "payer_name": "João", "payer_document": "1234"},
        ]
        for case in cases:
            with self.assertRaises(OrderError):
                await create_user_deposit(self.db, self.client, user_id="u-1", **case)
        self.assertEqual(self.gateway.created, [])


class TestSignature(unittest.TestCase):
    def test_hmac_sha256(self):
        body = json.dumps({"transactionId": "mp-1"}).encode("utf-8")
        digest = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
        self.assertTrue(verify_webhook_signature(body, digest, "s3cret"))
        self.assertTrue(verify_webhook_signature(body, "sha256=" + digest.upper(), "s3cret"))
        self.assertFalse(verify_webhook_signature(body, digest, "other"))
        self.assertFalse(verify_webhook_signature(body, None, "s3cret"))
        self.assertFalse(verify_webhook_signature(body + b" ", digest, "s3cret"))


if __name__ == "__main__":
    unittest.main()

import unittest
from datetime import timedelta

from novaera.models.coupon import StoreCoupon
from novaera.services.coupon_validator import (
    CartLine,
    CouponError,
    compute_discount,
    normalize_code,
    redeem_coupon,
    release_coupon,
    validate_coupon,
)

from _support import add_coupon, make_session_factory, utc


NOW = utc(2026, 5, 10, 12, 0, 0)


class TestCouponValidation(unittest.TestCase):
    def setUp(self):
        self.Session = make_session_factory()
        self.db = self.Session()

    def tearDown(self):
        self.db.close()

    def assertReason(self, reason, **kwargs):
        with self.assertRaises(CouponError) as ctx:
            validate_coupon(self.db, now=NOW, **kwargs)
        self.assertEqual(ctx.exception.code, reason)
        return ctx.exception

    def test_percentage_with_min_order(self):
        add_coupon(self.db, "SAVE10", discount_value=10, min_order_value=50)
        quote = validate_coupon(self.db, code="SAVE10", order_value=200, now=NOW)
        self.assertTrue(quote.valid)
        self.assertEqual(quote.discount_amount, 20.0)
        self.assertEqual(quote.eligible_value, 200.0)

    def test_code_is_normalized(self):
        add_coupon(self.db, "SAVE10")
        quote = validate_coupon(self.db, code="  save10 ", order_value=100, now=NOW)
        self.assertEqual(quote.code, "SAVE10")
        self.assertEqual(normalize_code("x" * 80), "X" * 50)

    def test_invalid_inputs(self):
        self.assertReason("invalid_code", code="", order_value=10)
        self.assertReason("invalid_code", code=123, order_value=10)
        self.assertReason("invalid_order_value", code="SAVE10", order_value=-1)
        self.assertReason("invalid_order_value", code="SAVE10", order_value="10")
        self.assertReason("invalid_order_value", code="SAVE10", order_value=True)

    def test_not_found_and_inactive(self):
        add_coupon(self.db, "OFF", is_active=False)
        err = self.assertReason("not_found", code="OFF", order_value=10)
        self.assertEqual(err.status_code, 404)
        self.assertReason("not_found", code="MISSING", order_value=10)

    def test_expired_is_reported_before_other_failures(self):
        add_coupon(
            self.db,
            "OLD",
            valid_until=NOW - timedelta(days=1),
            max_uses=1,
            used_count=1,
            min_order_value=1000,
        )
        err = self.assertReason("expired", code="OLD", order_value=10)
        self.assertEqual(err.status_code, 400)

    def test_not_started(self):
        add_coupon(self.db, "SOON", valid_from=NOW + timedelta(hours=2))
        self.assertReason("not_started", code="SOON", order_value=10)

    def test_exhausted(self):
        add_coupon(self.db, "USED", max_uses=3, used_count=3)
        self.assertReason("exhausted", code="USED", order_value=10)

    def test_unlimited_uses_when_max_is_zero(self):
        add_coupon(self.db, "FREE", max_uses=0, used_count=999)
        self.assertEqual(validate_coupon(self.db, code="FREE", order_value=100, now=NOW).discount_amount, 10.0)

    def test_order_bounds(self):
        add_coupon(self.db, "MID", min_order_value=50, max_order_value=100)
        low = self.assertReason("below_min_order", code="MID", order_value=49.99)
        self.assertIn("R$ 50,00", low.message)
        high = self.assertReason("above_max_order", code="MID", order_value=100.01)
        self.assertIn("R$ 100,00", high.message)

    def test_percentage_cap(self):
        add_coupon(self.db, "CAP", discount_value=50, max_discount_amount=15)
        quote = validate_coupon(self.db, code="CAP", order_value=100, now=NOW)
        self.assertEqual(quote.discount_amount, 15.0)
        self.assertLessEqual(quote.discount_amount, min(100 * 0.5, 15))

    def test_fixed_discount_clamped_to_eligible_value(self):
        add_coupon(self.db, "BIG", discount_type="fixed", discount_value=80)
        quote = validate_coupon(self.db, code="BIG", order_value=30, now=NOW)
        self.assertEqual(quote.discount_amount, 30.0)

    def test_product_restriction(self):
        add_coupon(self.db, "PROD", product_ids=["p-1"])
        items = [CartLine(product_id="p-2", category_id="c-1", price=40, quantity=1)]
        self.assertReason("product_restriction", code="PROD", order_value=40, cart_items=items)

    def test_category_restriction(self):
        add_coupon(self.db, "CAT", category_ids=["c-9"])
        items = [CartLine(product_id="p-2", category_id="c-1", price=40, quantity=1)]
        self.assertReason("category_restriction", code="CAT", order_value=40, cart_items=items)

    def test_restricted_coupon_without_cart_items_uses_order_value(self):
        add_coupon(self.db, "CAT10", discount_value=10, category_ids=["c-9"])
        for cart_items in (None, []):
            quote = validate_coupon(self.db, code="CAT10", order_value=200, cart_items=cart_items, now=NOW)
            self.assertEqual(quote.eligible_value, 200.0)
            self.assertEqual(quote.discount_amount, 20.0)

    def test_restricted_discount_uses_matching_lines_only(self):
        add_coupon(self.db, "MIX", discount_value=10, product_ids=["p-1"], category_ids=["c-2"])
        items = [
            CartLine(product_id="p-1", category_id="c-1", price=100, quantity=2),
            CartLine(product_id="p-3", category_id="c-2", price=50, quantity=1),
            CartLine(product_id="p-4", category_id="c-3", price=500, quantity=1),
        ]
        quote = validate_coupon(self.db, code="MIX", order_value=750, cart_items=items, now=NOW)
        self.assertEqual(quote.eligible_value, 250.0)
        self.assertEqual(quote.discount_amount, 25.0)

    def test_validation_does_not_consume_uses(self):
        coupon = add_coupon(self.db, "RO", max_uses=1)
        validate_coupon(self.db, code="RO", order_value=10, now=NOW)
        self.db.refresh(coupon)
        self.assertEqual(coupon.used_count or 0, 0)


class TestComputeDiscount(unittest.TestCase):
    def test_rounds_to_cents(self):
        self.assertEqual(
            compute_discount(discount_type="percentage", discount_value=33.333, eligible_value=10),
            3.33,
        )

    def test_negative_values_yield_zero(self):
        self.assertEqual(compute_discount(discount_type="fixed", discount_value=-5, eligible_value=10), 0.0)


class TestCouponRedemption(unittest.TestCase):
    def setUp(self):
        self.Session = make_session_factory()

    def test_last_use_cannot_be_redeemed_twice(self):
        setup = self.Session()
        coupon = add_coupon(setup, "LAST", max_uses=1, used_count=0)
        coupon_id = coupon.id
        setup.close()

        first, second = self.Session(), self.Session()
        try:
            # Both checkouts validated the coupon while one use was left.
            validate_coupon(first, code="LAST", order_value=10, now=NOW)
            validate_coupon(second, code="LAST", order_value=10, now=NOW)

            self.assertTrue(redeem_coupon(first, coupon_id))
            first.commit()
            self.assertFalse(redeem_coupon(second, coupon_id))
            second.commit()
        finally:
            first.close()
            second.close()

        check = self.Session()
        self.assertEqual(check.get(StoreCoupon, coupon_id).used_count, 1)
        check.close()

    def test_many_redemptions_never_exceed_max_uses(self):
        db = self.Session()
        coupon = add_coupon(db, "FIVE", max_uses=5)
        results = []
        for _ in range(8):
            results.append(redeem_coupon(db, coupon.id))
            db.commit()
        db.refresh(coupon)
        self.assertEqual(results.count(True), 5)
        self.assertEqual(coupon.used_count, 5)
        db.close()

    def test_release_never_goes_negative(self):
        db = self.Session()
        coupon = add_coupon(db, "BACK", max_uses=2, used_count=1)
        release_coupon(db, coupon.id)
        release_coupon(db, coupon.id)
        db.commit()
        db.refresh(coupon)
        self.assertEqual(coupon.used_count, 0)
        db.close()

    def test_inactive_coupon_is_not_redeemed(self):
        db = self.Session()
        coupon = add_coupon(db, "DEAD", is_active=False)
        self.assertFalse(redeem_coupon(db, coupon.id))
        db.close()


if __name__ == "__main__":
    unittest.main()

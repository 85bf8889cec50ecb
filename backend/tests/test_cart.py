import json
import unittest

from novaera.services.cart import (
    CART_STORAGE_KEY,
    CartError,
    CartSession,
    ProductSnapshot,
    available_stock,
    quantity_bounds,
)


def snapshot(pid="p-1", price=10.0, stock="a\nb\nc", product_type="lines", min_quantity=None, max_quantity=None):
    return ProductSnapshot(
        id=pid,
        name=f"Produto {pid}",
        price=price,
        category_id="c-1",
        product_type=product_type,
        stock=stock,
        min_quantity=min_quantity,
        max_quantity=max_quantity,
    )


class TestStock(unittest.TestCase):
    def test_lines_ignore_blanks(self):
        self.assertEqual(available_stock(snapshot(stock="a\n\n  \nb\n")), 2)

    def test_non_line_product_counts_one(self):
        self.assertEqual(available_stock(snapshot(product_type="file", stock="https://x")), 1)
        self.assertEqual(available_stock(snapshot(product_type="file", stock="   ")), 0)

    def test_bounds(self):
        self.assertEqual(quantity_bounds(snapshot()), (1, 3))
        self.assertEqual(quantity_bounds(snapshot(min_quantity=2, max_quantity=10)), (2, 3))
        self.assertEqual(quantity_bounds(snapshot(max_quantity=2)), (1, 2))


class TestCartSession(unittest.TestCase):
    def test_add_out_of_stock(self):
        cart = CartSession()
        with self.assertRaises(CartError):
            cart.add_item(snapshot(stock=""))

    def test_merged_quantity_is_clamped_then_rejected(self):
        cart = CartSession()
        p = snapshot()
        cart.add_item(p, 2)
        cart.add_item(p, 2)
        self.assertEqual(cart.lines[0].quantity, 3)
        with self.assertRaises(CartError):
            cart.add_item(p, 1)

    def test_new_line_raised_to_minimum(self):
        cart = CartSession()
        line = cart.add_item(snapshot(min_quantity=2), 1)
        self.assertEqual(line.quantity, 2)

    def test_update_quantity_clamps(self):
        cart = CartSession()
        cart.add_item(snapshot(min_quantity=2))
        cart.update_quantity("p-1", 50)
        self.assertEqual(cart.lines[0].quantity, 3)
        cart.update_quantity("p-1", 0)
        self.assertEqual(cart.lines[0].quantity, 2)

    def test_totals_and_coupon(self):
        cart = CartSession()
        cart.add_item(snapshot("p-1", price=10.0), 3)
        cart.add_item(snapshot("p-2", price=25.5), 1)
        self.assertEqual(cart.subtotal, 55.5)
        self.assertEqual(cart.item_count, 4)
        cart.apply_coupon("SAVE10", 5.55)
        self.assertEqual(cart.total, 49.95)
        cart.apply_coupon("HUGE", 500)
        self.assertEqual(cart.total, 0.0)

    def test_remove_and_clear(self):
        cart = CartSession()
        cart.add_item(snapshot("p-1"))
        cart.add_item(snapshot("p-2"))
        cart.apply_coupon("SAVE10", 1)
        cart.remove_item("p-1")
        self.assertEqual([line.product.id for line in cart.lines], ["p-2"])
        cart.clear()
        self.assertEqual(cart.lines, [])
        self.assertIsNone(cart.coupon_code)
        self.assertEqual(cart.discount_amount, 0.0)

    def test_save_and_load(self):
        storage: dict[str, str] = {}
        cart = CartSession()
        cart.add_item(snapshot("p-1", price=12.0), 2)
        cart.save(storage)
        self.assertIn(CART_STORAGE_KEY, storage)

        restored = CartSession.load(storage)
        self.assertEqual(restored.item_count, 2)
        self.assertEqual(restored.subtotal, 24.0)

    def test_load_tolerates_corrupt_payload(self):
        for raw in ["{not json", json.dumps({"a": 1}), json.dumps([{"quantity": 1}])]:
            cart = CartSession.load({CART_STORAGE_KEY: raw})
            self.assertEqual(cart.lines, [])
        self.assertEqual(CartSession.load({}).lines, [])


if __name__ == "__main__":
    unittest.main()

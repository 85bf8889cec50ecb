import unittest
from datetime import date
from types import SimpleNamespace

from novaera.services.dutching import DutchingError, calculate_dutching
from novaera.services.monthly_comparison import compute_monthly_comparison, summarize_months


def op(day, invested, returned):
    return SimpleNamespace(operation_date=day, invested_amount=invested, return_amount=returned)


def expense(day, amount):
    return SimpleNamespace(expense_date=day, amount=amount)


class TestMonthlyComparison(unittest.TestCase):
    def setUp(self):
        self.operations = [
            op(date(2026, 1, 5), 100, 150),
            op(date(2026, 2, 10), 60, 100),
            op(date(2026, 2, 20), 40, 100),
            op(date(2025, 6, 1), 1000, 0),
        ]
        self.expenses = [expense(date(2026, 2, 11), 20), expense("2026-03-01", 0)]

    def test_buckets_oldest_first(self):
        data = compute_monthly_comparison(self.operations, self.expenses, months=3, today=date(2026, 3, 15))
        self.assertEqual([m.month for m in data], ["2026-01", "2026-02", "2026-03"])
        self.assertEqual([m.display_month for m in data], ["jan/26", "fev/26", "mar/26"])
        jan, feb, mar = data
        self.assertEqual((jan.operations_count, jan.profit, jan.net_balance), (1, 50.0, 50.0))
        self.assertEqual((feb.operations_count, feb.total_invested, feb.total_return), (2, 100.0, 200.0))
        self.assertEqual((feb.profit, feb.total_expenses, feb.net_balance), (100.0, 20.0, 80.0))
        self.assertEqual(mar.operations_count, 0)

    def test_profit_variation(self):
        jan, feb, mar = compute_monthly_comparison(self.operations, self.expenses, months=3, today=date(2026, 3, 15))
        self.assertIsNone(jan.profit_variation)
        self.assertEqual(feb.profit_variation, 100.0)
        self.assertEqual(mar.profit_variation, -100.0)

    def test_variation_from_zero(self):
        data = compute_monthly_comparison([op(date(2026, 3, 2), 10, 30)], [], months=2, today=date(2026, 3, 15))
        self.assertEqual(data[1].profit_variation, 100.0)
        quiet = compute_monthly_comparison([], [], months=2, today=date(2026, 3, 15))
        self.assertIsNone(quiet[1].profit_variation)

    def test_crosses_year_boundary(self):
        data = compute_monthly_comparison([], [], months=3, today=date(2026, 1, 31))
        self.assertEqual([m.month for m in data], ["2025-11", "2025-12", "2026-01"])

    def test_summary(self):
        data = compute_monthly_comparison(self.operations, self.expenses, months=3, today=date(2026, 3, 15))
        summary = summarize_months(data)
        self.assertEqual(summary["total_profit"], 130.0)
        self.assertEqual(summary["avg_profit"], 43.33)
        self.assertEqual(summary["best_month"]["month"], "2026-02")
        self.assertEqual(summary["worst_month"]["month"], "2026-03")
        self.assertEqual(summary["trend"], "down")

    def test_upward_trend(self):
        ops = [op(date(2026, 1, 1), 0, 10), op(date(2026, 2, 1), 0, 10), op(date(2026, 3, 1), 0, 50)]
        data = compute_monthly_comparison(ops, [], months=3, today=date(2026, 3, 15))
        self.assertEqual(summarize_months(data)["trend"], "up")

    def test_empty_summary(self):
        self.assertEqual(summarize_months([])["trend"], "stable")


class TestDutching(unittest.TestCase):
    def test_even_odds(self):
        result = calculate_dutching(100, [2.0, 2.0])
        self.assertEqual([s.stake for s in result.stakes], [50.0, 50.0])
        self.assertEqual(result.guaranteed_return, 100.0)
        self.assertEqual(result.profit, 0.0)

    def test_profitable_split(self):
        result = calculate_dutching(100, [2.5, 2.5])
        self.assertEqual(result.guaranteed_return, 125.0)
        self.assertEqual(result.profit, 25.0)
        self.assertEqual(result.roi, 25.0)

    def test_stakes_are_inverse_to_odds(self):
        result = calculate_dutching(100, [2.0, 4.0])
        self.assertEqual([s.stake for s in result.stakes], [66.67, 33.33])
        self.assertEqual(result.guaranteed_return, 133.33)
        for s in result.stakes:
            self.assertAlmostEqual(s.potential_return, result.guaranteed_return, delta=0.02)

    def test_invalid_input(self):
        with self.assertRaises(DutchingError):
            calculate_dutching(100, [2.0])
        with self.assertRaises(DutchingError):
            calculate_dutching(100, [2.0, 1.0])
        with self.assertRaises(DutchingError):
            calculate_dutching(0, [2.0, 3.0])


if __name__ == "__main__":
    unittest.main()

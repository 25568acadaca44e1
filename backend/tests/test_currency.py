import pathlib
import sys
import unittest
from decimal import Decimal

TESTS_DIR = pathlib.Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

import memory_repo  # noqa: F401

from finanzas.core.errors import InvalidAccount, InvalidInput
from finanzas.services.currency import (
    Currency,
    both_currencies,
    convert,
    normalize_currency,
    round_money,
    to_foreign,
    to_local,
)
from finanzas.services.pools import CASH, BankPool, pool_columns, pool_from_descriptor

RATE = Decimal("36.7")


class CurrencyTests(unittest.TestCase):
    def test_same_currency_is_unchanged(self):
        self.assertEqual(to_local(Decimal("12.34"), "NIO", RATE), Decimal("12.34"))
        self.assertEqual(to_foreign(Decimal("12.34"), "USD", RATE), Decimal("12.34"))

    def test_foreign_to_local_multiplies_by_rate(self):
        self.assertEqual(to_local(Decimal("10"), "USD", RATE), Decimal("367.0"))

    def test_local_to_foreign_divides_without_rounding(self):
        value = to_foreign(Decimal("100"), "NIO", RATE)
        self.assertNotEqual(value, round_money(value))
        self.assertEqual(round_money(value), Decimal("2.72"))

    def test_round_trip_stays_within_a_cent(self):
        for raw in ("0.01", "1", "99.99", "12345.67"):
            amount = Decimal(raw)
            back = to_local(to_foreign(amount, "NIO", RATE), "USD", RATE)
            self.assertLessEqual(abs(round_money(back) - amount), Decimal("0.01"))

    def test_floats_and_none_are_accepted(self):
        self.assertEqual(to_local(1.1, "NIO", RATE), Decimal("1.1"))
        self.assertEqual(to_local(None, "USD", RATE), Decimal("0"))

    def test_normalize_currency_defaults_to_local(self):
        self.assertIs(normalize_currency(" usd "), Currency.USD)
        self.assertIs(normalize_currency("EUR"), Currency.NIO)
        self.assertIs(normalize_currency(None), Currency.NIO)
        self.assertIsNone(normalize_currency("EUR", default=None))

    def test_convert_and_both_currencies(self):
        self.assertEqual(convert(Decimal("2"), "USD", "NIO", RATE), Decimal("73.4"))
        self.assertEqual(convert(Decimal("73.4"), "NIO", "USD", RATE), Decimal("2"))
        self.assertEqual(both_currencies(Decimal("1"), "USD", RATE), {"nio": Decimal("36.7"), "usd": Decimal("1")})

    def test_round_money_half_up(self):
        self.assertEqual(round_money(Decimal("2.345")), Decimal("2.35"))
        self.assertEqual(round_money(None), Decimal("0.00"))


class PoolDescriptorTests(unittest.TestCase):
    def test_cash_descriptor_ignores_account(self):
        self.assertIs(pool_from_descriptor("cash", "whatever"), CASH)
        self.assertIsNone(CASH.account_id)

    def test_bank_descriptor_requires_account(self):
        with self.assertRaises(InvalidAccount):
            pool_from_descriptor("bank", None)
        self.assertEqual(pool_from_descriptor("BANK", "abc"), BankPool("abc"))

    def test_unknown_descriptor_is_rejected(self):
        with self.assertRaises(InvalidInput):
            pool_from_descriptor("wallet")

    def test_pool_columns(self):
        self.assertEqual(pool_columns(CASH, "source", "account_id"), {"source": "cash", "account_id": None})
        self.assertEqual(
            pool_columns(BankPool("a1"), "from_type", "from_account_id"),
            {"from_type": "bank", "from_account_id": "a1"},
        )


if __name__ == "__main__":
    unittest.main()

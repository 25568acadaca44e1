import pathlib
import sys
import unittest
from datetime import date
from decimal import Decimal
from unittest import mock

TESTS_DIR = pathlib.Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from memory_repo import OTHER_USER, USER, InMemoryRepository

from finanzas.core.errors import (
    CurrencyMismatch,
    InsufficientBalance,
    InvalidAccount,
    InvalidCategory,
    InvalidInput,
    NotFound,
    SameAccount,
)
from finanzas.services.ledger import compute_balance
from finanzas.services.movements import (
    create_expense,
    create_income,
    create_transfer,
    delete_expense,
    delete_income,
    delete_transfer,
    get_transfer,
    list_movements,
    list_transfers,
    pool_balance,
    update_expense,
    update_income,
    update_transfer,
)
from finanzas.services.pools import CASH, BankPool

DAY = date(2024, 3, 10)


def bank_expense(account_id: str, amount, **extra) -> dict:
    return {"amount": amount, "source": "bank", "account_id": account_id, "date": DAY, **extra}


class ExpenseValidationTests(unittest.TestCase):
    def setUp(self):
        self.repo = InMemoryRepository()
        self.bank_x = self.repo.add_account("NIO", initial_balance=1000, name="Bank-X")

    def balance(self, pool=None, currency="NIO"):
        return compute_balance(self.repo, USER, pool or BankPool(self.bank_x), currency)

    def test_expense_may_drain_account_to_zero(self):
        row = create_expense(self.repo, USER, bank_expense(self.bank_x, Decimal("1000")))
        self.assertEqual(row["currency"], "NIO")
        self.assertEqual(row["source"], "bank")
        self.assertEqual(self.balance(), Decimal("0"))

    def test_overdraft_is_rejected_without_persisting(self):
        create_expense(self.repo, USER, bank_expense(self.bank_x, "1000"))
        writes = self.repo.writes
        with self.assertRaises(InsufficientBalance) as ctx:
            create_expense(self.repo, USER, bank_expense(self.bank_x, "1"))
        self.assertEqual(ctx.exception.available, Decimal("0"))
        self.assertEqual(ctx.exception.requested, Decimal("1"))
        self.assertEqual(self.repo.writes, writes)
        self.assertEqual(self.balance(), Decimal("0"))

    def test_account_currency_overrides_requested_currency(self):
        row = create_expense(self.repo, USER, bank_expense(self.bank_x, "10", currency="USD"))
        self.assertEqual(row["currency"], "NIO")

    def test_cash_expense_defaults_to_local_currency(self):
        create_income(self.repo, USER, {"amount": "50", "date": DAY})
        row = create_expense(self.repo, USER, {"amount": "20", "source": "cash", "date": DAY})
        self.assertEqual(row["currency"], "NIO")
        self.assertIsNone(row["account_id"])
        self.assertEqual(self.balance(CASH), Decimal("30"))

    def test_cash_pools_are_separate_per_currency(self):
        create_income(self.repo, USER, {"amount": "50", "currency": "USD", "date": DAY})
        with self.assertRaises(InsufficientBalance):
            create_expense(self.repo, USER, {"amount": "1", "currency": "NIO", "date": DAY})

    def test_unknown_deleted_or_foreign_account_is_rejected(self):
        foreign = self.repo.add_account("NIO", initial_balance=10, user_id=OTHER_USER)
        deleted = self.repo.add_account("NIO", initial_balance=10)
        self.repo.soft_delete("accounts", deleted, USER)
        for account_id in (foreign, deleted, "7d0c3c80-7f5d-4b6a-9a55-2b1f8f1f0a01"):
            with self.assertRaises(InvalidAccount):
                create_expense(self.repo, USER, bank_expense(account_id, "1"))

    def test_bank_source_without_account_is_rejected(self):
        with self.assertRaises(InvalidAccount):
            create_income(self.repo, USER, {"amount": "1", "source": "bank", "date": DAY})

    def test_amount_must_be_non_negative_with_two_decimals(self):
        for amount in ("-1", "1.001", "abc", None):
            with self.assertRaises(InvalidInput):
                create_income(self.repo, USER, {"amount": amount, "date": DAY})

    def test_category_must_be_live_owned_and_of_matching_type(self):
        income_cat = self.repo.add_category("Salario", "income")
        expense_cat = self.repo.add_category("Comida", "expense")
        foreign_cat = self.repo.add_category("Otro", "expense", user_id=OTHER_USER)
        deleted_cat = self.repo.add_category("Viejo", "expense")
        self.repo.soft_delete("categories", deleted_cat, USER)

        for category_id in (income_cat, foreign_cat, deleted_cat):
            with self.assertRaises(InvalidCategory):
                create_expense(self.repo, USER, bank_expense(self.bank_x, "1", category_id=category_id))
        row = create_expense(self.repo, USER, bank_expense(self.bank_x, "1", category_id=expense_cat))
        self.assertEqual(row["category_id"], expense_cat)

    def test_validator_takes_pool_lock_before_reading_balance(self):
        create_expense(self.repo, USER, bank_expense(self.bank_x, "5"))
        self.assertIn(("account", USER, self.bank_x), self.repo.locks)
        create_income(self.repo, USER, {"amount": "5", "date": DAY})
        create_expense(self.repo, USER, {"amount": "5", "date": DAY})
        self.assertIn(("cash", USER, "NIO"), self.repo.locks)

    def test_locking_can_be_disabled(self):
        from finanzas.services import movements

        with mock.patch.object(movements, "settings", mock.Mock(serialize_pool_writes=False)):
            create_expense(self.repo, USER, bank_expense(self.bank_x, "5"))
        self.assertEqual(self.repo.locks, [])


class MovementUpdateTests(unittest.TestCase):
    def setUp(self):
        self.repo = InMemoryRepository()
        self.bank_x = self.repo.add_account("NIO", initial_balance=100)
        self.expense = create_expense(self.repo, USER, bank_expense(self.bank_x, "100"))

    def test_own_amount_is_credited_back_on_same_pool_edit(self):
        row = update_expense(self.repo, USER, self.expense["id"], {"amount": "60"})
        self.assertEqual(row["amount"], Decimal("60"))
        self.assertEqual(compute_balance(self.repo, USER, BankPool(self.bank_x), "NIO"), Decimal("40"))

    def test_raising_amount_beyond_credit_back_is_rejected(self):
        with self.assertRaises(InsufficientBalance):
            update_expense(self.repo, USER, self.expense["id"], {"amount": "100.01"})

    def test_note_edit_keeps_balance(self):
        before = compute_balance(self.repo, USER, BankPool(self.bank_x), "NIO")
        update_expense(self.repo, USER, self.expense["id"], {"note": "Supermercado"})
        after = compute_balance(self.repo, USER, BankPool(self.bank_x), "NIO")
        self.assertEqual(before, after)

    def test_moving_to_another_pool_gets_no_credit_back(self):
        other = self.repo.add_account("NIO", initial_balance=50)
        with self.assertRaises(InsufficientBalance):
            update_expense(self.repo, USER, self.expense["id"], {"account_id": other})
        row = update_expense(self.repo, USER, self.expense["id"], {"account_id": other, "amount": "50"})
        self.assertEqual(row["account_id"], other)
        self.assertEqual(compute_balance(self.repo, USER, BankPool(self.bank_x), "NIO"), Decimal("100"))
        self.assertEqual(compute_balance(self.repo, USER, BankPool(other), "NIO"), Decimal("0"))

    def test_switching_to_cash_drops_account(self):
        create_income(self.repo, USER, {"amount": "100", "date": DAY})
        row = update_expense(self.repo, USER, self.expense["id"], {"source": "cash"})
        self.assertEqual(row["source"], "cash")
        self.assertIsNone(row["account_id"])

    def test_income_updates_are_not_balance_gated(self):
        income = create_income(self.repo, USER, {"amount": "10", "date": DAY})
        row = update_income(self.repo, USER, income["id"], {"amount": "0"})
        self.assertEqual(row["amount"], Decimal("0"))
        delete_income(self.repo, USER, income["id"])

    def test_missing_deleted_or_foreign_movement_is_not_found(self):
        delete_expense(self.repo, USER, self.expense["id"])
        with self.assertRaises(NotFound):
            update_expense(self.repo, USER, self.expense["id"], {"note": "x"})
        with self.assertRaises(NotFound):
            delete_expense(self.repo, USER, self.expense["id"])
        foreign = self.repo.add_movement("expenses", 1, user_id=OTHER_USER)
        with self.assertRaises(NotFound):
            update_expense(self.repo, USER, foreign, {"note": "x"})

    def test_empty_update_is_rejected(self):
        with self.assertRaises(InvalidInput):
            update_expense(self.repo, USER, self.expense["id"], {})

    def test_list_movements_is_newest_first_with_category_names(self):
        category = self.repo.add_category("Casa", "expense")
        self.repo.add_movement("expenses", 1, day=date(2024, 5, 1), category_id=category)
        rows = list_movements(self.repo, USER, "expense")
        self.assertEqual(rows[0]["date"], date(2024, 5, 1))
        self.assertEqual(rows[0]["category_name"], "Casa")
        self.assertEqual(len(list_movements(self.repo, USER, "expense", category_id=category)), 1)


class TransferTests(unittest.TestCase):
    def setUp(self):
        self.repo = InMemoryRepository()
        self.bank_x = self.repo.add_account("NIO", initial_balance=200, name="Bank-X")

    def transfer(self, **data):
        payload = {"amount": "50", "date": DAY, "source_type": "bank", "source_account_id": self.bank_x}
        payload.update(data)
        payload.setdefault("destination_type", "cash")
        return create_transfer(self.repo, USER, payload)

    def test_transfer_moves_balance_between_pools(self):
        row = self.transfer()
        self.assertEqual(row["currency"], "NIO")
        self.assertEqual(compute_balance(self.repo, USER, BankPool(self.bank_x), "NIO"), Decimal("150"))
        self.assertEqual(compute_balance(self.repo, USER, CASH, "NIO"), Decimal("50"))

    def test_same_account_is_rejected_without_persisting(self):
        writes = self.repo.writes
        with self.assertRaises(SameAccount):
            self.transfer(destination_type="bank", destination_account_id=self.bank_x)
        self.assertEqual(self.repo.writes, writes)
        self.assertEqual(self.repo.tables["transfers"], [])

    def test_destination_currency_must_match(self):
        usd = self.repo.add_account("USD")
        with self.assertRaises(CurrencyMismatch):
            self.transfer(destination_type="bank", destination_account_id=usd)

    def test_currency_comes_from_destination_account_when_source_is_cash(self):
        usd = self.repo.add_account("USD")
        create_income(self.repo, USER, {"amount": "80", "currency": "USD", "date": DAY})
        row = self.transfer(
            source_type="cash",
            source_account_id=None,
            destination_type="bank",
            destination_account_id=usd,
            currency="NIO",
        )
        self.assertEqual(row["currency"], "USD")
        self.assertEqual(compute_balance(self.repo, USER, BankPool(usd), "USD"), Decimal("50"))

    def test_transfer_amount_must_be_positive(self):
        with self.assertRaises(InvalidInput):
            self.transfer(amount="0")

    def test_transfer_cannot_overdraw_source(self):
        with self.assertRaises(InsufficientBalance):
            self.transfer(amount="200.01")

    def test_update_credits_back_own_amount(self):
        row = self.transfer(amount="200")
        updated = update_transfer(self.repo, USER, row["id"], {"amount": "150", "note": "ajuste"})
        self.assertEqual(updated["amount"], Decimal("150"))
        self.assertEqual(compute_balance(self.repo, USER, BankPool(self.bank_x), "NIO"), Decimal("50"))

    def spend_cash_proceeds(self):
        row = self.transfer()
        create_expense(self.repo, USER, {"amount": "50", "date": DAY})
        return row

    def test_lowering_amount_cannot_overdraw_destination(self):
        row = self.spend_cash_proceeds()
        with self.assertRaises(InsufficientBalance) as ctx:
            update_transfer(self.repo, USER, row["id"], {"amount": "10"})
        self.assertEqual(ctx.exception.available, Decimal("10"))
        self.assertEqual(ctx.exception.requested, Decimal("50"))
        self.assertEqual(compute_balance(self.repo, USER, CASH, "NIO"), Decimal("0"))

    def test_redirecting_destination_cannot_overdraw_old_destination(self):
        row = self.spend_cash_proceeds()
        other = self.repo.add_account("NIO")
        with self.assertRaises(InsufficientBalance):
            update_transfer(
                self.repo, USER, row["id"], {"destination_type": "bank", "destination_account_id": other}
            )
        self.assertEqual(compute_balance(self.repo, USER, BankPool(other), "NIO"), Decimal("0"))
        self.assertEqual(compute_balance(self.repo, USER, CASH, "NIO"), Decimal("0"))

    def test_delete_cannot_overdraw_destination(self):
        row = self.spend_cash_proceeds()
        with self.assertRaises(InsufficientBalance):
            delete_transfer(self.repo, USER, row["id"])
        self.assertEqual([t["id"] for t in list_transfers(self.repo, USER)], [row["id"]])

    def test_delete_restores_source_when_destination_is_covered(self):
        row = self.transfer()
        delete_transfer(self.repo, USER, row["id"])
        self.assertEqual(compute_balance(self.repo, USER, BankPool(self.bank_x), "NIO"), Decimal("200"))
        self.assertEqual(compute_balance(self.repo, USER, CASH, "NIO"), Decimal("0"))
        with self.assertRaises(NotFound):
            delete_transfer(self.repo, USER, row["id"])

    def test_reversing_direction_checks_old_destination(self):
        row = self.spend_cash_proceeds()
        create_income(self.repo, USER, {"amount": "30", "date": DAY})
        with self.assertRaises(InsufficientBalance):
            update_transfer(
                self.repo,
                USER,
                row["id"],
                {
                    "source_type": "cash",
                    "destination_type": "bank",
                    "destination_account_id": self.bank_x,
                    "amount": "10",
                },
            )
        self.assertEqual(compute_balance(self.repo, USER, CASH, "NIO"), Decimal("30"))

    def test_update_to_same_account_is_rejected(self):
        other = self.repo.add_account("NIO")
        row = self.transfer(destination_type="bank", destination_account_id=other)
        with self.assertRaises(SameAccount):
            update_transfer(self.repo, USER, row["id"], {"destination_account_id": self.bank_x})

    def test_get_and_list_expose_source_and_destination(self):
        row = self.transfer()
        transfer = get_transfer(self.repo, USER, row["id"])
        self.assertEqual(transfer["source_type"], "bank")
        self.assertEqual(transfer["source_account"]["name"], "Bank-X")
        self.assertEqual(transfer["destination_type"], "cash")
        self.assertIsNone(transfer["destination_account"])
        self.assertEqual([t["id"] for t in list_transfers(self.repo, USER)], [row["id"]])
        with self.assertRaises(NotFound):
            get_transfer(self.repo, OTHER_USER, row["id"])


class NonNegativityTests(unittest.TestCase):
    def test_accepted_sequences_never_leave_a_negative_pool(self):
        repo = InMemoryRepository()
        bank = repo.add_account("NIO", initial_balance=30)
        pools = [CASH, BankPool(bank)]
        steps = [
            ("income", {"amount": "40"}),
            ("expense", {"amount": "45"}),
            ("expense", {"amount": "25"}),
            ("transfer", {"amount": "20", "source_type": "bank", "source_account_id": bank, "destination_type": "cash"}),
            ("expense", {"amount": "30", "source": "bank", "account_id": bank}),
            ("transfer", {"amount": "35", "source_type": "cash", "destination_type": "bank", "destination_account_id": bank}),
            ("expense", {"amount": "10", "source": "bank", "account_id": bank}),
            ("expense", {"amount": "0.01"}),
        ]
        handlers = {"income": create_income, "expense": create_expense, "transfer": create_transfer}
        accepted = 0
        for kind, data in steps:
            try:
                handlers[kind](repo, USER, {**data, "date": DAY})
                accepted += 1
            except InsufficientBalance:
                pass
            for pool in pools:
                self.assertGreaterEqual(compute_balance(repo, USER, pool, "NIO"), Decimal("0"))
        self.assertGreater(accepted, 0)


class PoolBalanceTests(unittest.TestCase):
    def test_pool_balance_reports_both_currencies(self):
        repo = InMemoryRepository()
        usd = repo.add_account("USD", initial_balance=10)
        result = pool_balance(repo, USER, "bank", usd, "NIO")
        self.assertEqual(result["currency"], "USD")
        self.assertEqual(result["balance"], Decimal("10"))
        self.assertEqual(result["nio"], Decimal("367.0"))
        self.assertEqual(result["usd"], Decimal("10"))


if __name__ == "__main__":
    unittest.main()

"""Tests for the wallet reconciliation engine."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from walletwise.database.models import Transaction, Wallet
from walletwise.database.repository import (
    ConstraintViolationError,
    Repository,
    SchemaMismatchError,
    StoreError,
)
from walletwise.reconcile.engine import (
    ReconciliationEngine,
    TransferStatus,
    resulting_balance,
    transfer_side_for,
)
from walletwise.session import Session
from tests.conftest import MIGRATIONS_DIR


@pytest.fixture
def repo():
    r = Repository(":memory:")
    r.apply_migrations(MIGRATIONS_DIR)
    yield r
    r.close()


@pytest.fixture
def engine(repo):
    return ReconciliationEngine(repo, session=Session("user-1"))


def _wallet(repo, balance="100.00", **kw) -> Wallet:
    defaults = dict(name="MTN MoMo", type="momo",
                    initial_balance=Decimal(balance),
                    current_balance=Decimal(balance))
    defaults.update(kw)
    return repo.insert_wallet(Wallet(**defaults))


def _txn(repo, **kw) -> Transaction:
    defaults = dict(
        description="Payment to KFC for lunch",
        amount=Decimal("30.00"),
        type="debit",
        transaction_date="2026-01-15T12:00:00+00:00",
        source="MTN_MoMo",
    )
    defaults.update(kw)
    return repo.insert_transaction(Transaction(**defaults))


# ── Single-wallet assignment ───────────────────────────────


class TestAssignArithmetic:
    def test_debit_subtracts(self, engine, repo):
        w = _wallet(repo)
        t = _txn(repo)
        assert engine.assign_transaction_to_wallet(t.id, w.id) is True
        assert repo.get_wallet(w.id).current_balance == Decimal("70.00")
        assert repo.get_transaction(t.id).wallet_id == w.id

    def test_credit_adds(self, engine, repo):
        w = _wallet(repo)
        t = _txn(repo, type="credit", description="Salary")
        assert engine.assign_transaction_to_wallet(t.id, w.id) is True
        assert repo.get_wallet(w.id).current_balance == Decimal("130.00")

    @pytest.mark.parametrize("txn_type, expected", [
        ("expense", Decimal("70.00")),
        ("income", Decimal("130.00")),
    ])
    def test_expense_income_vocabulary(self, engine, repo, txn_type, expected):
        w = _wallet(repo)
        t = _txn(repo, type=txn_type)
        assert engine.assign_transaction_to_wallet(t.id, w.id) is True
        assert repo.get_wallet(w.id).current_balance == expected

    def test_not_idempotent_without_snapshot(self, engine, repo):
        w = _wallet(repo)
        t = _txn(repo)
        assert engine.assign_transaction_to_wallet(t.id, w.id) is True
        assert engine.assign_transaction_to_wallet(t.id, w.id) is True
        # the delta is applied twice
        assert repo.get_wallet(w.id).current_balance == Decimal("40.00")


class TestAssignSnapshot:
    def test_stored_snapshot_overrides_arithmetic(self, engine, repo):
        w = _wallet(repo, balance="100.00")
        t = _txn(repo, balance_snapshot=Decimal("500.00"))
        assert engine.assign_transaction_to_wallet(t.id, w.id) is True
        assert repo.get_wallet(w.id).current_balance == Decimal("500.00")

    def test_snapshot_from_description(self, engine, repo):
        w = _wallet(repo, balance="100.00")
        t = _txn(repo, description="Paid GHS 30 to KFC. Current Balance: GHS 1,234.56")
        assert engine.assign_transaction_to_wallet(t.id, w.id) is True
        assert repo.get_wallet(w.id).current_balance == Decimal("1234.56")

    def test_stored_snapshot_beats_description(self, engine, repo):
        w = _wallet(repo)
        t = _txn(repo, balance_snapshot=Decimal("12.00"),
                 description="Current Balance: GHS 99.00")
        engine.assign_transaction_to_wallet(t.id, w.id)
        assert repo.get_wallet(w.id).current_balance == Decimal("12.00")

    def test_snapshot_assignment_is_repeatable(self, engine, repo):
        w = _wallet(repo)
        t = _txn(repo, balance_snapshot=Decimal("500.00"))
        engine.assign_transaction_to_wallet(t.id, w.id)
        engine.assign_transaction_to_wallet(t.id, w.id)
        assert repo.get_wallet(w.id).current_balance == Decimal("500.00")


class TestAssignCategory:
    def test_missing_category_is_suggested(self, engine, repo):
        w = _wallet(repo)
        t = _txn(repo, description="Uber ride to work")
        engine.assign_transaction_to_wallet(t.id, w.id)
        assert repo.get_transaction(t.id).category == "transport"

    def test_existing_category_kept(self, engine, repo):
        w = _wallet(repo)
        t = _txn(repo, description="Uber ride to work", category="gifts")
        engine.assign_transaction_to_wallet(t.id, w.id)
        assert repo.get_transaction(t.id).category == "gifts"

    def test_credit_gets_income(self, engine, repo):
        w = _wallet(repo)
        t = _txn(repo, type="credit", description="Salary for March")
        engine.assign_transaction_to_wallet(t.id, w.id)
        assert repo.get_transaction(t.id).category == "income"


class TestAssignFailures:
    def test_unknown_transaction(self, engine, repo):
        w = _wallet(repo)
        assert engine.assign_transaction_to_wallet("missing", w.id) is False
        assert repo.get_wallet(w.id).current_balance == Decimal("100.00")

    def test_unknown_wallet_leaves_transaction_unmatched(self, engine, repo):
        t = _txn(repo)
        assert engine.assign_transaction_to_wallet(t.id, "missing") is False
        assert repo.get_transaction(t.id).wallet_id is None

    def test_read_error_reported_as_failure(self):
        store = MagicMock()
        store.get_transaction.side_effect = StoreError("connection reset")
        engine = ReconciliationEngine(store)
        assert engine.assign_transaction_to_wallet("t", "w") is False
        store.update_transaction.assert_not_called()

    def test_store_without_schema_reported_as_failure(self):
        bare = Repository(":memory:")
        engine = ReconciliationEngine(bare, session=Session("user-1"))
        assert engine.assign_transaction_to_wallet("t", "w") is False
        assert engine.process_transfer("t", "a", "b", 10) is False
        bare.close()

    def test_transaction_write_failure_skips_balance(self):
        store = MagicMock()
        store.get_transaction.return_value = Transaction(
            description="x", amount=Decimal("1"), type="debit", id="t")
        store.get_wallet.return_value = Wallet(name="w", id="w")
        store.update_transaction.side_effect = ConstraintViolationError("rejected")
        engine = ReconciliationEngine(store)
        assert engine.assign_transaction_to_wallet("t", "w") is False
        store.update_wallet.assert_not_called()

    def test_balance_write_failure_after_assignment(self):
        store = MagicMock()
        store.get_transaction.return_value = Transaction(
            description="x", amount=Decimal("1"), type="debit", id="t")
        store.get_wallet.return_value = Wallet(name="w", id="w")
        store.update_wallet.side_effect = StoreError("timeout")
        engine = ReconciliationEngine(store)
        assert engine.assign_transaction_to_wallet("t", "w") is False
        # the transaction was already mutated; no rollback
        store.update_transaction.assert_called_once()


class TestHelpers:
    @pytest.mark.parametrize("txn_type, side", [
        ("debit", "from"), ("expense", "from"),
        ("credit", "to"), ("income", "to"), ("bogus", "to"), (None, "to"),
    ])
    def test_transfer_side_for(self, txn_type, side):
        assert transfer_side_for(txn_type).value == side

    def test_resulting_balance_unknown_type_raises(self):
        txn = Transaction(description="", amount=Decimal("1"), type="refund")
        with pytest.raises(ValueError):
            resulting_balance(txn, Wallet(name="w"))


class TestUpdateCategory:
    def test_valid_category(self, engine, repo):
        t = _txn(repo)
        assert engine.update_transaction_category(t.id, "healthcare") is True
        assert repo.get_transaction(t.id).category == "healthcare"

    def test_unknown_category_rejected(self, engine, repo):
        t = _txn(repo, category="food")
        assert engine.update_transaction_category(t.id, "groceries") is False
        assert repo.get_transaction(t.id).category == "food"

    def test_unknown_transaction(self, engine):
        assert engine.update_transaction_category("missing", "food") is False


# ── Transfers ──────────────────────────────────────────────


@pytest.fixture
def pair(repo):
    source = _wallet(repo, balance="200", name="MTN MoMo", type="momo")
    dest = _wallet(repo, balance="50", name="GCB Bank", type="bank")
    return source, dest


class TestTransferBalances:
    def test_conservation(self, engine, repo, pair):
        source, dest = pair
        t = _txn(repo, amount=Decimal("75"), description="Transfer to account 001")
        assert engine.process_transfer(t.id, source.id, dest.id, Decimal("75")) is True

        from_bal = repo.get_wallet(source.id).current_balance
        to_bal = repo.get_wallet(dest.id).current_balance
        assert from_bal == Decimal("125")
        assert to_bal == Decimal("125")
        assert from_bal + to_bal == Decimal("250")

    def test_negative_amount_uses_magnitude(self, engine, repo, pair):
        source, dest = pair
        t = _txn(repo, amount=Decimal("75"))
        assert engine.process_transfer(t.id, source.id, dest.id, -75) is True
        assert repo.get_wallet(source.id).current_balance == Decimal("125")

    def test_snapshot_does_not_override_transfer_arithmetic(self, engine, repo, pair):
        source, dest = pair
        t = _txn(repo, amount=Decimal("75"), balance_snapshot=Decimal("999"))
        engine.process_transfer(t.id, source.id, dest.id, Decimal("75"))
        assert repo.get_wallet(source.id).current_balance == Decimal("125")


class TestTransferLegs:
    def test_debit_original_is_from_leg(self, engine, repo, pair):
        source, dest = pair
        t = _txn(repo, amount=Decimal("75"))
        outcome = engine.transfer(t.id, source.id, dest.id, Decimal("75"), "Rent")
        assert outcome.status is TransferStatus.COMPLETED

        legs = repo.get_transactions_by_transfer(outcome.transfer_id)
        assert len(legs) == 2
        assert sorted(l.transfer_side for l in legs) == ["from", "to"]
        assert all(l.is_transfer for l in legs)

        original = repo.get_transaction(t.id)
        assert original.transfer_side == "from"
        assert original.wallet_id == source.id

        shadow = next(l for l in legs if l.id != t.id)
        assert shadow.transfer_side == "to"
        assert shadow.wallet_id == dest.id
        assert shadow.type == "income"
        assert shadow.amount == Decimal("75")
        assert shadow.source == "transfer"
        assert shadow.description == "Transfer from Rent"
        assert shadow.transaction_date == t.transaction_date

    def test_credit_original_is_to_leg(self, engine, repo, pair):
        source, dest = pair
        t = _txn(repo, type="credit", amount=Decimal("75"),
                 description="INSTANT PAY: 0244 GHS 75")
        outcome = engine.transfer(t.id, source.id, dest.id, Decimal("75"))
        assert outcome.succeeded

        original = repo.get_transaction(t.id)
        assert original.transfer_side == "to"
        assert original.wallet_id == dest.id

        shadow = next(l for l in repo.get_transactions_by_transfer(outcome.transfer_id)
                      if l.id != t.id)
        assert shadow.transfer_side == "from"
        assert shadow.wallet_id == source.id
        assert shadow.type == "expense"
        assert shadow.description == "Transfer to Wallet"

    def test_transfer_record(self, engine, repo, pair):
        source, dest = pair
        t = _txn(repo, amount=Decimal("75"))
        outcome = engine.transfer(t.id, source.id, dest.id, Decimal("75"), "Savings")
        xfer = repo.get_transfer(outcome.transfer_id)
        assert xfer.from_wallet_id == source.id
        assert xfer.to_wallet_id == dest.id
        assert xfer.amount == Decimal("75")
        assert xfer.status == "completed"
        assert xfer.notes == "Savings"
        assert xfer.user_id == "user-1"
        assert xfer.completed_at is not None


class TestTransferValidation:
    def test_zero_amount(self, engine, repo, pair):
        source, dest = pair
        t = _txn(repo)
        assert engine.process_transfer(t.id, source.id, dest.id, 0) is False
        assert repo.get_transaction(t.id).transfer_id is None

    def test_non_numeric_amount(self, engine, repo, pair):
        source, dest = pair
        t = _txn(repo)
        assert engine.process_transfer(t.id, source.id, dest.id, "lots") is False

    @pytest.mark.parametrize("amount", [float("nan"), "NaN", "Infinity", "-inf"])
    def test_non_finite_amount(self, engine, repo, pair, amount):
        source, dest = pair
        t = _txn(repo)
        assert engine.process_transfer(t.id, source.id, dest.id, amount) is False
        assert repo.get_transaction(t.id).transfer_id is None
        assert repo.get_wallet(source.id).current_balance == Decimal("200")
        assert repo.get_wallet(dest.id).current_balance == Decimal("50")

    def test_same_wallet(self, engine, repo, pair):
        source, _ = pair
        t = _txn(repo)
        assert engine.process_transfer(t.id, source.id, source.id, 10) is False
        assert repo.get_wallet(source.id).current_balance == Decimal("200")


class TestTransferFailures:
    def test_no_session_user_is_rejected(self, repo, pair):
        source, dest = pair
        t = _txn(repo)
        engine = ReconciliationEngine(repo, session=Session(None))
        assert engine.process_transfer(t.id, source.id, dest.id, 10) is False
        assert repo.get_transaction(t.id).wallet_id is None
        assert repo.get_wallet(source.id).current_balance == Decimal("200")

    def test_unknown_wallet_rejected_by_store(self, engine, repo, pair):
        source, _ = pair
        t = _txn(repo)
        assert engine.process_transfer(t.id, source.id, "missing", 10) is False

    def test_missing_transaction_after_transfer_created(self, engine, repo, pair):
        source, dest = pair
        outcome = engine.transfer("missing", source.id, dest.id, 10)
        assert outcome.status is TransferStatus.FAILED
        # the transfer row exists; no compensating delete
        assert repo.get_transfer(outcome.transfer_id) is not None

    def test_schema_mismatch_retried_once_without_column(self):
        store = MagicMock()
        store.insert_transfer.side_effect = [
            SchemaMismatchError("notes", "table transfers has no column named notes"),
            None,
        ]
        store.get_transaction.return_value = Transaction(
            description="x", amount=Decimal("10"), type="debit", id="t")
        store.get_wallet.return_value = Wallet(name="w", current_balance=Decimal("10"))
        engine = ReconciliationEngine(store, session=Session("u"))

        assert engine.process_transfer("t", "a", "b", 10, "n") is True
        assert store.insert_transfer.call_count == 2
        _, kwargs = store.insert_transfer.call_args
        assert kwargs["omit"] == frozenset({"notes"})

    def test_schema_mismatch_gives_up_after_retry(self):
        store = MagicMock()
        store.insert_transfer.side_effect = SchemaMismatchError(
            "completed_at", "no column named completed_at")
        engine = ReconciliationEngine(store, session=Session("u"))
        assert engine.process_transfer("t", "a", "b", 10) is False
        assert store.insert_transfer.call_count == 2
        store.update_transaction.assert_not_called()

    def test_required_column_mismatch_not_retried(self):
        store = MagicMock()
        store.insert_transfer.side_effect = SchemaMismatchError(
            "amount", "no column named amount")
        engine = ReconciliationEngine(store, session=Session("u"))
        assert engine.process_transfer("t", "a", "b", 10) is False
        assert store.insert_transfer.call_count == 1

    def test_original_update_failure_is_fatal(self):
        store = MagicMock()
        store.get_transaction.return_value = Transaction(
            description="x", amount=Decimal("10"), type="debit", id="t")
        store.update_transaction.side_effect = StoreError("timeout")
        engine = ReconciliationEngine(store, session=Session("u"))
        outcome = engine.transfer("t", "a", "b", 10)
        assert outcome.status is TransferStatus.FAILED
        store.insert_transaction.assert_not_called()
        store.update_wallet.assert_not_called()

    def test_best_effort_failures_are_partial_but_succeed(self):
        store = MagicMock()
        store.get_transaction.return_value = Transaction(
            description="x", amount=Decimal("10"), type="debit", id="t")
        store.insert_transaction.side_effect = StoreError("shadow rejected")
        store.get_wallet.side_effect = [
            Wallet(name="a", id="a", current_balance=Decimal("100")),
            None,
        ]
        engine = ReconciliationEngine(store, session=Session("u"))

        outcome = engine.transfer("t", "a", "b", 10)
        assert outcome.status is TransferStatus.PARTIAL
        assert outcome.failed_steps == ["shadow_transaction", "to_balance"]
        store.update_wallet.assert_called_once_with("a", current_balance=Decimal("90"))

    def test_process_transfer_true_on_partial(self):
        store = MagicMock()
        store.get_transaction.return_value = Transaction(
            description="x", amount=Decimal("10"), type="debit", id="t")
        store.get_wallet.return_value = Wallet(name="w", current_balance=Decimal("5"))
        store.update_wallet.side_effect = StoreError("timeout")
        engine = ReconciliationEngine(store, session=Session("u"))
        assert engine.process_transfer("t", "a", "b", 10) is True

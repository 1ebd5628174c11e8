"""Wallet reconciliation: assigns unmatched transactions to wallets.

Two paths:
  - Single-wallet assignment: attach the transaction to one wallet and
    move that wallet's balance (or set it from a balance snapshot).
  - Transfer processing: record a Transfer, turn the original
    transaction into one leg, synthesize the opposite "shadow" leg and
    move both wallet balances.

The store offers no multi-statement atomicity.  Writes happen in sequence
and are not rolled back; balance updates are plain read-then-write with
no concurrency check.  Every public method reports success as a value and
logs the diagnostic; store exceptions never escape.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum

from walletwise.categorize.catalog import TRANSFER, CategoryCatalog
from walletwise.categorize.suggest import suggest_category
from walletwise.categorize.transfer_detect import extract_balance_snapshot
from walletwise.database.models import Direction, Transaction, TransferSide, Transfer, Wallet
from walletwise.database.repository import Repository, SchemaMismatchError, StoreError
from walletwise.session import Session

logger = logging.getLogger(__name__)

# Transfer columns that older schemas may lack; an insert naming one of
# these is retried once without it.
OPTIONAL_TRANSFER_COLUMNS = frozenset({"notes", "completed_at"})

SHADOW_SOURCE = "transfer"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TransferStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"  # transfer recorded, a best-effort step failed
    FAILED = "failed"


@dataclass
class TransferOutcome:
    status: TransferStatus
    transfer_id: str | None = None
    failed_steps: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status is not TransferStatus.FAILED


def transfer_side_for(txn_type: str | None) -> TransferSide:
    """Debits leave the source wallet; anything else arrives at the destination."""
    try:
        direction = Direction.parse(txn_type)
    except ValueError:
        return TransferSide.TO
    return TransferSide.FROM if direction is Direction.DEBIT else TransferSide.TO


def resulting_balance(txn: Transaction, wallet: Wallet) -> Decimal:
    """Wallet balance after applying txn.

    A balance snapshot (stored, or re-derived from the description)
    replaces the arithmetic result.
    """
    snapshot = txn.balance_snapshot
    if snapshot is None:
        snapshot = extract_balance_snapshot(txn.description)
    if snapshot is not None:
        return snapshot
    if txn.direction is Direction.CREDIT:
        return wallet.current_balance + txn.amount
    return wallet.current_balance - txn.amount


class ReconciliationEngine:
    def __init__(
        self,
        repo: Repository,
        catalog: CategoryCatalog | None = None,
        session: Session | None = None,
    ):
        self.repo = repo
        self.catalog = catalog or CategoryCatalog.default()
        self.session = session or Session()

    # ── Single-wallet assignment ────────────────────────────

    def assign_transaction_to_wallet(self, transaction_id: str, wallet_id: str) -> bool:
        """Attach a transaction to one wallet and update that wallet's balance.

        Not idempotent: a second call re-applies the balance delta unless
        the transaction carries a balance snapshot.
        """
        try:
            txn = self.repo.get_transaction(transaction_id)
            wallet = self.repo.get_wallet(wallet_id) if txn is not None else None
        except StoreError as e:
            logger.error("Failed to load transaction %s / wallet %s: %s",
                         transaction_id, wallet_id, e)
            return False
        if txn is None:
            logger.warning("Transaction %s not found", transaction_id)
            return False
        if wallet is None:
            logger.warning("Wallet %s not found", wallet_id)
            return False

        try:
            new_balance = resulting_balance(txn, wallet)
        except ValueError as e:
            logger.error("Cannot assign transaction %s: %s", transaction_id, e)
            return False

        category = txn.category or suggest_category(
            txn.description, txn.type, self.catalog
        ).id

        try:
            self.repo.update_transaction(txn.id, wallet_id=wallet.id, category=category)
        except StoreError as e:
            logger.error("Failed to assign transaction %s to wallet %s: %s",
                         txn.id, wallet.id, e)
            return False

        try:
            self.repo.update_wallet(wallet.id, current_balance=new_balance)
        except StoreError as e:
            logger.error(
                "Transaction %s assigned to wallet %s but balance update failed: %s",
                txn.id, wallet.id, e,
            )
            return False

        logger.info("Assigned transaction %s to wallet %s (balance %s → %s)",
                    txn.id, wallet.id, wallet.current_balance, new_balance)
        return True

    def update_transaction_category(self, transaction_id: str, category_id: str) -> bool:
        category = self.catalog.get_by_id(category_id)
        if category is None:
            logger.warning("Invalid category id: %s", category_id)
            return False
        try:
            self.repo.update_transaction(transaction_id, category=category.id)
        except StoreError as e:
            logger.error("Failed to update category of %s: %s", transaction_id, e)
            return False
        return True

    # ── Transfers ───────────────────────────────────────────

    def process_transfer(
        self,
        transaction_id: str,
        from_wallet_id: str,
        to_wallet_id: str,
        amount: Decimal | int | float | str,
        notes: str | None = None,
    ) -> bool:
        """Split a transaction into a two-wallet transfer.

        True when the transfer record and the original transaction update
        both succeeded, even if a best-effort step failed; use transfer()
        to tell those apart.
        """
        outcome = self.transfer(transaction_id, from_wallet_id, to_wallet_id, amount, notes)
        return outcome.succeeded

    def transfer(
        self,
        transaction_id: str,
        from_wallet_id: str,
        to_wallet_id: str,
        amount: Decimal | int | float | str,
        notes: str | None = None,
    ) -> TransferOutcome:
        try:
            amount = abs(Decimal(str(amount)))
        except InvalidOperation:
            logger.error("Transfer amount is not a number: %r", amount)
            return TransferOutcome(TransferStatus.FAILED)
        if not amount.is_finite() or amount <= 0:
            logger.error("Transfer amount must be a positive number: %s", amount)
            return TransferOutcome(TransferStatus.FAILED)
        if from_wallet_id == to_wallet_id:
            logger.error("Cannot transfer wallet %s to itself", from_wallet_id)
            return TransferOutcome(TransferStatus.FAILED)

        logger.info("Processing transfer: txn=%s from=%s to=%s amount=%s",
                    transaction_id, from_wallet_id, to_wallet_id, amount)

        user_id = self.session.current_user_id()
        if user_id is None:
            logger.warning("No session user; transfer %s will likely be rejected",
                           transaction_id)

        now = _now()
        xfer = Transfer(
            from_wallet_id=from_wallet_id,
            to_wallet_id=to_wallet_id,
            amount=amount,
            user_id=user_id,
            status="completed",
            notes=notes,
            completed_at=now,
        )
        if not self._insert_transfer(xfer):
            return TransferOutcome(TransferStatus.FAILED)

        # From here on the transfer record exists; run to completion.
        try:
            txn = self.repo.get_transaction(transaction_id)
        except StoreError as e:
            logger.error("Transfer %s created but transaction %s unreadable: %s",
                         xfer.id, transaction_id, e)
            return TransferOutcome(TransferStatus.FAILED, xfer.id)
        if txn is None:
            logger.error("Transfer %s created but transaction %s not found",
                         xfer.id, transaction_id)
            return TransferOutcome(TransferStatus.FAILED, xfer.id)

        side = transfer_side_for(txn.type)
        own_wallet, other_wallet = (
            (from_wallet_id, to_wallet_id) if side is TransferSide.FROM
            else (to_wallet_id, from_wallet_id)
        )
        try:
            self.repo.update_transaction(
                txn.id,
                wallet_id=own_wallet,
                transfer_id=xfer.id,
                transfer_side=side.value,
                is_transfer=True,
            )
        except StoreError as e:
            logger.error("Transfer %s created but transaction %s not updated: %s",
                         xfer.id, txn.id, e)
            return TransferOutcome(TransferStatus.FAILED, xfer.id)

        failed: list[str] = []

        shadow = self._shadow_leg(txn, xfer, side.opposite, other_wallet, notes, now)
        try:
            self.repo.insert_transaction(shadow)
        except StoreError as e:
            logger.error("Transfer %s: shadow %s leg not created: %s",
                         xfer.id, side.opposite.value, e)
            failed.append("shadow_transaction")

        if not self._adjust_balance(from_wallet_id, -amount, xfer.id):
            failed.append("from_balance")
        if not self._adjust_balance(to_wallet_id, amount, xfer.id):
            failed.append("to_balance")

        if failed:
            logger.error("Transfer %s partially applied; failed steps: %s",
                         xfer.id, ", ".join(failed))
            return TransferOutcome(TransferStatus.PARTIAL, xfer.id, failed)

        logger.info("Transfer %s completed", xfer.id)
        return TransferOutcome(TransferStatus.COMPLETED, xfer.id)

    def _insert_transfer(self, xfer: Transfer) -> bool:
        try:
            self.repo.insert_transfer(xfer)
            return True
        except SchemaMismatchError as e:
            if e.column not in OPTIONAL_TRANSFER_COLUMNS:
                logger.error("Transfer insert rejected, unknown column %s: %s", e.column, e)
                return False
            logger.warning("Transfers table lacks column %s; retrying without it", e.column)
            try:
                self.repo.insert_transfer(xfer, omit=frozenset({e.column}))
                return True
            except StoreError as retry_err:
                logger.error("Transfer insert failed on retry: %s", retry_err)
                return False
        except StoreError as e:
            logger.error("Transfer insert failed: %s", e)
            return False

    @staticmethod
    def _shadow_leg(
        original: Transaction,
        xfer: Transfer,
        side: TransferSide,
        wallet_id: str,
        notes: str | None,
        now: str,
    ) -> Transaction:
        # The shadow describes the movement from its own wallet's viewpoint
        word = "from" if side is TransferSide.TO else "to"
        return Transaction(
            description=f"Transfer {word} {notes or 'Wallet'}",
            amount=xfer.amount,
            type="income" if side is TransferSide.TO else "expense",
            category=TRANSFER,
            wallet_id=wallet_id,
            transaction_date=original.transaction_date or now,
            is_transfer=True,
            transfer_id=xfer.id,
            transfer_side=side.value,
            source=SHADOW_SOURCE,
        )

    def _adjust_balance(self, wallet_id: str, delta: Decimal, transfer_id: str) -> bool:
        """Read-then-write balance change; no protection against concurrent writers."""
        try:
            wallet = self.repo.get_wallet(wallet_id)
            if wallet is None:
                logger.error("Transfer %s: wallet %s not found for balance update",
                             transfer_id, wallet_id)
                return False
            self.repo.update_wallet(wallet_id, current_balance=wallet.current_balance + delta)
        except StoreError as e:
            logger.error("Transfer %s: balance update of wallet %s failed: %s",
                         transfer_id, wallet_id, e)
            return False
        return True

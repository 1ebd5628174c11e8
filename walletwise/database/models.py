"""Dataclass models matching the SQLite schema.

Each dataclass corresponds to one table. Fields match column names exactly.
All primary keys are TEXT (UUID strings generated via uuid4()).
Money columns are stored as TEXT and surface here as Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4


def _new_id() -> str:
    return str(uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class WalletType(str, Enum):
    BANK = "bank"
    MOMO = "momo"
    CASH = "cash"
    OTHER = "other"


class Direction(str, Enum):
    """Normalized transaction polarity.

    Stored rows use either the debit/credit or the expense/income
    vocabulary; both spellings map onto these two members.
    """
    DEBIT = "debit"
    CREDIT = "credit"

    @classmethod
    def parse(cls, value: str | None) -> Direction:
        key = (value or "").strip().lower()
        if key in ("debit", "expense"):
            return cls.DEBIT
        if key in ("credit", "income"):
            return cls.CREDIT
        raise ValueError(f"Unknown transaction type: {value!r}")

    @classmethod
    def is_credit(cls, value: str | None) -> bool:
        try:
            return cls.parse(value) is cls.CREDIT
        except ValueError:
            return False


class TransferSide(str, Enum):
    FROM = "from"
    TO = "to"

    @property
    def opposite(self) -> TransferSide:
        return TransferSide.TO if self is TransferSide.FROM else TransferSide.FROM


@dataclass
class Wallet:
    name: str
    type: str = WalletType.OTHER.value
    id: str = field(default_factory=_new_id)
    icon: str | None = None
    source_identifier: str | None = None
    initial_balance: Decimal = Decimal("0")
    current_balance: Decimal = Decimal("0")
    is_active: bool = True
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)


@dataclass
class Transaction:
    description: str
    amount: Decimal
    type: str
    id: str = field(default_factory=_new_id)
    category: str | None = None
    wallet_id: str | None = None
    transaction_date: str = field(default_factory=_now)
    is_transfer: bool = False
    transfer_id: str | None = None
    transfer_side: str | None = None
    balance_snapshot: Decimal | None = None
    source: str = "manual"
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    @property
    def direction(self) -> Direction:
        return Direction.parse(self.type)


@dataclass
class Transfer:
    from_wallet_id: str
    to_wallet_id: str
    amount: Decimal
    user_id: str | None = None
    id: str = field(default_factory=_new_id)
    status: str = "completed"
    notes: str | None = None
    created_at: str = field(default_factory=_now)
    completed_at: str | None = None

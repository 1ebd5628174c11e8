"""Transfer detection: identifies inter-wallet transfers by SMS wording.

Also extracts the post-transaction balance that mobile-money and bank
alerts embed in their text.  Output is advisory; the reconciliation
engine uses the balance snapshot to set wallet balances authoritatively.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from walletwise.database.models import WalletType

logger = logging.getLogger(__name__)

# Directional patterns, checked in this order; the first match decides
# the suggested source/destination wallet types.
_DIRECTIONAL_PATTERNS: tuple[tuple[str, re.Pattern, WalletType, WalletType], ...] = (
    # Bank inflow from mobile money ("INSTANT PAY: 0244..." / "from 0244...")
    ("bank_from_momo", re.compile(r"instant pay: (\d+)|from \d+"),
     WalletType.MOMO, WalletType.BANK),
    # Mobile-money inflow from a bank
    ("momo_from_bank", re.compile(r"payment received.*from (emergent|bank|transfer)"),
     WalletType.BANK, WalletType.MOMO),
    # Mobile-money outflow to a bank account
    ("mtn_to_bank", re.compile(r"transfer.*to (bank|acc|account)"),
     WalletType.MOMO, WalletType.BANK),
)

_TRANSFER_PHRASES = ("transfer to", "transferred to")

_BALANCE_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"current balance: ghs\s*([0-9,.]+)", re.IGNORECASE),
    re.compile(r"available balance is now ghs\s*([0-9,.]+)", re.IGNORECASE),
)


@dataclass(frozen=True)
class TransferInfo:
    """Result of scanning a description for transfer hints."""
    is_transfer_likely: bool
    suggested_source_type: WalletType | None = None
    suggested_dest_type: WalletType | None = None
    balance_snapshot: Decimal | None = None


def extract_balance_snapshot(description: str | None) -> Decimal | None:
    """Return the balance reported in the text, or None.

    The momo-style phrase is tried before the bank-style one.
    """
    if not description:
        return None
    for pattern in _BALANCE_PATTERNS:
        m = pattern.search(description)
        if m is None:
            continue
        raw = m.group(1).replace(",", "").rstrip(".")
        try:
            return Decimal(raw)
        except InvalidOperation:
            logger.debug("Unparseable balance %r in %r", m.group(1), description)
            return None
    return None


def detect_transfer_info(description: str | None) -> TransferInfo:
    desc = (description or "").lower()

    source_type: WalletType | None = None
    dest_type: WalletType | None = None
    for name, pattern, src, dst in _DIRECTIONAL_PATTERNS:
        if pattern.search(desc):
            logger.debug("Transfer pattern %s matched %r", name, description)
            source_type, dest_type = src, dst
            break

    likely = source_type is not None or any(p in desc for p in _TRANSFER_PHRASES)

    return TransferInfo(
        is_transfer_likely=likely,
        suggested_source_type=source_type,
        suggested_dest_type=dest_type,
        balance_snapshot=extract_balance_snapshot(description),
    )

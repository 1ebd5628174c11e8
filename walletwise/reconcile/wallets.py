"""Wallet creation from an SMS source identifier.

When the user links a source (e.g. MTN_MoMo) to a new wallet, every
unmatched transaction from that source is attached to it.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from walletwise.config import Config
from walletwise.database.models import Wallet, WalletType
from walletwise.database.repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_ICON = "💰"


def source_to_type(source: str) -> WalletType:
    lowered = source.lower()
    if "bank" in lowered:
        return WalletType.BANK
    if "momo" in lowered or "cash" in lowered:
        return WalletType.MOMO
    return WalletType.OTHER


def source_presentation(source: str, config: Config | None = None) -> dict:
    """Return name, icon and type for a source, with generic fallbacks."""
    known = config.source_config(source) if config is not None else None
    if known:
        return {
            "name": known.get("name") or f"{source} Wallet",
            "icon": known.get("icon") or DEFAULT_ICON,
            "type": WalletType(known.get("type") or source_to_type(source).value),
        }
    return {
        "name": f"{source} Wallet",
        "icon": DEFAULT_ICON,
        "type": source_to_type(source),
    }


def create_wallet_from_source(
    repo: Repository,
    source: str,
    balance: Decimal | int | float | str = Decimal("0"),
    config: Config | None = None,
) -> Wallet:
    """Create an active wallet for source and link its unmatched transactions.

    Store errors propagate; the wallet may exist even if linking failed.
    """
    balance = Decimal(str(balance))
    info = source_presentation(source, config)
    wallet = Wallet(
        name=info["name"],
        type=info["type"].value,
        icon=info["icon"],
        source_identifier=source,
        initial_balance=balance,
        current_balance=balance,
        is_active=True,
    )
    repo.insert_wallet(wallet)
    linked = repo.link_source_to_wallet(source, wallet.id)
    logger.info("Created wallet %s for source %s, linked %d transaction(s)",
                wallet.id, source, linked)
    return wallet

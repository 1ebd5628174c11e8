"""CLI entry point for WalletWise.

Commands:
    walletwise status                          Counts of transactions, transfers, wallets
    walletwise wallets                         List active wallets and balances
    walletwise unmatched                       List transactions with no wallet
    walletwise suggest DESCRIPTION [--type T]  Suggest a category
    walletwise detect DESCRIPTION              Show transfer hints and balance snapshot
    walletwise assign TXN WALLET               Assign a transaction to one wallet
    walletwise transfer TXN FROM TO AMOUNT     Split a transaction into a transfer
    walletwise categorize TXN CATEGORY         Set a transaction's category
    walletwise link-source SOURCE              Create a wallet for an SMS source
    walletwise analytics [WALLET] [--insights] Spending summary and insights
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on FINANCE_LOG_LEVEL env var."""
    level = os.environ.get("FINANCE_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load application config, or None if the config directory is absent."""
    from walletwise.config import Config

    config_dir = os.environ.get("FINANCE_CONFIG_DIR", "config")
    try:
        return Config(config_dir=config_dir)
    except FileNotFoundError as e:
        logger.debug("No config directory, using built-in defaults: %s", e)
        return None


def _get_catalog(config):
    from walletwise.categorize.catalog import CategoryCatalog

    if config is None:
        return CategoryCatalog.default()
    try:
        return CategoryCatalog.from_config(config)
    except FileNotFoundError:
        return CategoryCatalog.default()


def _get_migrations_dir() -> Path:
    default = Path(__file__).parent / "database" / "migrations"
    return Path(os.environ.get("FINANCE_MIGRATIONS_DIR", default))


def _get_repo():
    """Create a Repository connected to the configured database, schema applied."""
    from walletwise.database.repository import Repository

    db_path = os.environ.get("FINANCE_DB_PATH", "finance.db")
    repo = Repository(db_path=db_path)
    repo.apply_migrations(_get_migrations_dir())
    return repo


def _get_engine(repo, catalog):
    from walletwise.reconcile.engine import ReconciliationEngine
    from walletwise.session import Session

    return ReconciliationEngine(repo, catalog=catalog, session=Session.from_env())


# ── Command handlers ─────────────────────────────────────


def cmd_status(args: argparse.Namespace) -> int:
    from walletwise.database.queries import get_status_counts

    repo = _get_repo()
    try:
        counts = get_status_counts(repo.conn)
    finally:
        repo.close()

    print("WalletWise Status")
    print("=" * 40)
    print(f"  Total transactions:  {counts['total_txns']:,}")
    print(f"  Unmatched:           {counts['unmatched']:,}")
    print(f"  Transfer legs:       {counts['transfer_legs']:,}")
    print(f"  Transfers:           {counts['total_transfers']:,}")
    print(f"  Active wallets:      {counts['active_wallets']:,}")
    return 0


def cmd_wallets(args: argparse.Namespace) -> int:
    from walletwise.formatting import format_currency

    repo = _get_repo()
    try:
        wallets = repo.list_wallets()
    finally:
        repo.close()

    if not wallets:
        print("No active wallets.")
        return 0
    for w in wallets:
        print(f"  {w.id}  {w.name:<24} {w.type:<6} {format_currency(w.current_balance):>16}")
    return 0


def cmd_unmatched(args: argparse.Namespace) -> int:
    from walletwise.categorize.transfer_detect import detect_transfer_info
    from walletwise.database.queries import get_unmatched_sources
    from walletwise.formatting import format_currency

    repo = _get_repo()
    try:
        txns = repo.get_unmatched_transactions()
        sources = get_unmatched_sources(repo.conn)
    finally:
        repo.close()

    if not txns:
        print("No unmatched transactions.")
        return 0

    print(f"Unmatched transactions ({len(txns)}):")
    print("-" * 80)
    for t in txns:
        marker = "T" if detect_transfer_info(t.description).is_transfer_likely else " "
        print(
            f"  {marker} {t.id}  {t.transaction_date[:10]}  {t.type:<7}"
            f" {format_currency(t.amount):>14}  {t.description[:30]}"
        )
    print("\nBy source:")
    for source, count in sources:
        print(f"  {source:<20} {count}")
    return 0


def cmd_suggest(args: argparse.Namespace) -> int:
    from walletwise.categorize.suggest import suggest_category

    catalog = _get_catalog(_get_config())
    category = suggest_category(args.description, args.type, catalog)
    print(f"{category.id}\t{category.name}")
    return 0


def cmd_detect(args: argparse.Namespace) -> int:
    from walletwise.categorize.transfer_detect import detect_transfer_info

    info = detect_transfer_info(args.description)
    src = info.suggested_source_type.value if info.suggested_source_type else "-"
    dst = info.suggested_dest_type.value if info.suggested_dest_type else "-"
    snapshot = info.balance_snapshot if info.balance_snapshot is not None else "-"
    print(f"transfer likely: {'yes' if info.is_transfer_likely else 'no'}")
    print(f"source type:     {src}")
    print(f"dest type:       {dst}")
    print(f"balance:         {snapshot}")
    return 0


def cmd_assign(args: argparse.Namespace) -> int:
    catalog = _get_catalog(_get_config())
    repo = _get_repo()
    try:
        ok = _get_engine(repo, catalog).assign_transaction_to_wallet(
            args.transaction, args.wallet,
        )
    finally:
        repo.close()
    print("Assigned." if ok else "Error: failed to link transaction, try again.")
    return 0 if ok else 1


def cmd_transfer(args: argparse.Namespace) -> int:
    from walletwise.reconcile.engine import TransferStatus

    try:
        amount = Decimal(args.amount)
    except InvalidOperation:
        print(f"Error: invalid amount: {args.amount}")
        return 1

    catalog = _get_catalog(_get_config())
    repo = _get_repo()
    try:
        outcome = _get_engine(repo, catalog).transfer(
            args.transaction, args.from_wallet, args.to_wallet, amount, args.notes,
        )
    finally:
        repo.close()

    if outcome.status is TransferStatus.COMPLETED:
        print(f"Transfer {outcome.transfer_id} completed.")
    elif outcome.status is TransferStatus.PARTIAL:
        print(f"Transfer {outcome.transfer_id} recorded with failures: "
              f"{', '.join(outcome.failed_steps)}")
    else:
        print("Error: transfer failed, try again.")
    return 0 if outcome.succeeded else 1


def cmd_categorize(args: argparse.Namespace) -> int:
    catalog = _get_catalog(_get_config())
    repo = _get_repo()
    try:
        ok = _get_engine(repo, catalog).update_transaction_category(
            args.transaction, args.category,
        )
    finally:
        repo.close()
    print("Updated." if ok else f"Error: could not set category '{args.category}'.")
    return 0 if ok else 1


def cmd_link_source(args: argparse.Namespace) -> int:
    from walletwise.database.repository import StoreError
    from walletwise.reconcile.wallets import create_wallet_from_source

    try:
        balance = Decimal(args.balance)
    except InvalidOperation:
        print(f"Error: invalid balance: {args.balance}")
        return 1

    config = _get_config()
    repo = _get_repo()
    try:
        wallet = create_wallet_from_source(repo, args.source, balance, config=config)
    except StoreError as e:
        print(f"Error: could not create wallet: {e}")
        return 1
    finally:
        repo.close()
    print(f"Created wallet {wallet.id} ({wallet.name}).")
    return 0


def cmd_analytics(args: argparse.Namespace) -> int:
    from walletwise.database.queries import (
        get_global_analytics,
        get_insights_data,
        get_wallet_analytics,
    )
    from walletwise.formatting import format_currency
    from walletwise.insights import generate_insights

    catalog = _get_catalog(_get_config())
    repo = _get_repo()
    try:
        if args.wallet:
            data = get_wallet_analytics(repo.conn, args.wallet, catalog)
        else:
            since = date.today() - timedelta(days=args.days)
            data = get_global_analytics(repo.conn, since, catalog)
        insights_data = (
            get_insights_data(repo.conn, catalog, args.period) if args.insights else None
        )
    finally:
        repo.close()

    print(f"  Spent:   {format_currency(data['total_spent'])}")
    print(f"  Inflow:  {format_currency(data['total_inflow'])}")
    if "net_cashflow" in data:
        sign = "-" if data["net_cashflow"] < 0 else ""
        print(f"  Net:     {sign}{format_currency(data['net_cashflow'])}")
    for row in data["category_spending"]:
        print(f"    {row['category']:<22} {format_currency(row['amount']):>14}"
              f"  {row['percentage']:>6}%")

    if insights_data is not None:
        print(f"\nInsights ({insights_data['timeframe']}):")
        for insight in generate_insights(insights_data):
            print(f"  [{insight.type}] {insight.title}")
            print(f"      {insight.description}")
    return 0


# ── Main entry point ─────────────────────────────────────


_COMMANDS = {
    "status": cmd_status,
    "wallets": cmd_wallets,
    "unmatched": cmd_unmatched,
    "suggest": cmd_suggest,
    "detect": cmd_detect,
    "assign": cmd_assign,
    "transfer": cmd_transfer,
    "categorize": cmd_categorize,
    "link-source": cmd_link_source,
    "analytics": cmd_analytics,
}


def main(argv: list[str] | None = None):
    _setup_logging()

    parser = argparse.ArgumentParser(
        prog="walletwise",
        description="WalletWise wallet reconciliation",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("status", help="Show transaction, transfer and wallet counts")
    subparsers.add_parser("wallets", help="List active wallets")
    subparsers.add_parser("unmatched", help="List transactions with no wallet")

    suggest_p = subparsers.add_parser("suggest", help="Suggest a category for a description")
    suggest_p.add_argument("description", help="Transaction description")
    suggest_p.add_argument("--type", default="debit",
                           help="Transaction type (debit/expense/credit/income)")

    detect_p = subparsers.add_parser("detect", help="Detect transfer hints in a description")
    detect_p.add_argument("description", help="Transaction description")

    assign_p = subparsers.add_parser("assign", help="Assign a transaction to a wallet")
    assign_p.add_argument("transaction", help="Transaction ID")
    assign_p.add_argument("wallet", help="Wallet ID")

    transfer_p = subparsers.add_parser("transfer", help="Process a transfer between wallets")
    transfer_p.add_argument("transaction", help="Transaction ID")
    transfer_p.add_argument("from_wallet", help="Source wallet ID")
    transfer_p.add_argument("to_wallet", help="Destination wallet ID")
    transfer_p.add_argument("amount", help="Amount moved")
    transfer_p.add_argument("--notes", default=None, help="Transfer notes")

    cat_p = subparsers.add_parser("categorize", help="Set a transaction's category")
    cat_p.add_argument("transaction", help="Transaction ID")
    cat_p.add_argument("category", help="Category ID")

    link_p = subparsers.add_parser("link-source", help="Create a wallet for an SMS source")
    link_p.add_argument("source", help="Source identifier, e.g. MTN_MoMo")
    link_p.add_argument("--balance", default="0", help="Opening balance")

    analytics_p = subparsers.add_parser("analytics", help="Spending summary")
    analytics_p.add_argument("wallet", nargs="?", help="Wallet ID (all wallets if omitted)")
    analytics_p.add_argument("--days", type=int, default=30,
                             help="Look-back window for all-wallet analytics")
    analytics_p.add_argument("--insights", action="store_true",
                             help="Compare with the previous period and list insights")
    analytics_p.add_argument("--period", choices=["week", "month"], default="month",
                             help="Insights comparison period")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()

"""Complex queries that span multiple rows or tables.

These go beyond single-table CRUD and implement aggregations and
reporting queries for the dashboard and CLI.
"""

from __future__ import annotations

import calendar
import sqlite3
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from walletwise.categorize.catalog import INCOME, TRANSFER, CategoryCatalog
from walletwise.database.models import Direction

_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def get_status_counts(conn: sqlite3.Connection) -> dict:
    """Counts for the `walletwise status` command."""
    row = conn.execute(
        "SELECT"
        "  (SELECT COUNT(*) FROM transactions) AS total_txns,"
        "  (SELECT COUNT(*) FROM transactions WHERE wallet_id IS NULL) AS unmatched,"
        "  (SELECT COUNT(*) FROM transactions WHERE is_transfer = 1) AS transfer_legs,"
        "  (SELECT COUNT(*) FROM transfers) AS total_transfers,"
        "  (SELECT COUNT(*) FROM wallets WHERE is_active = 1) AS active_wallets"
    ).fetchone()
    return dict(row)


def get_unmatched_sources(conn: sqlite3.Connection) -> list[tuple[str, int]]:
    """(source, count) for unmatched transactions, most frequent first."""
    rows = conn.execute(
        "SELECT source, COUNT(*) AS cnt FROM transactions"
        " WHERE wallet_id IS NULL"
        " GROUP BY source"
        " ORDER BY cnt DESC, source"
    ).fetchall()
    return [(r["source"], r["cnt"]) for r in rows]


def _category_breakdown(
    buckets: dict[str, Decimal], total: Decimal, catalog: CategoryCatalog,
) -> list[dict]:
    # Stored values may be ids or legacy display names; merge by category
    merged: dict[str, Decimal] = {}
    for value, amount in buckets.items():
        cat = catalog.get_by_id_or_name(value)
        key = cat.id if cat else value
        merged[key] = merged.get(key, Decimal("0")) + amount

    result = []
    for key, amount in merged.items():
        cat = catalog.get_by_id(key)
        pct = (amount * _HUNDRED / total).quantize(_CENT) if total > 0 else Decimal("0")
        result.append({
            "category": cat.name if cat else key,
            "amount": amount,
            "percentage": pct,
            "color": catalog.color_for(key),
        })
    result.sort(key=lambda r: r["amount"], reverse=True)
    return result


def get_wallet_analytics(
    conn: sqlite3.Connection, wallet_id: str, catalog: CategoryCatalog,
) -> dict:
    """Spending, inflow and per-category spending for one wallet.

    Transfer legs count toward the wallet's outflow/inflow by side;
    uncategorized transfer legs are bucketed under Transfer.
    """
    rows = conn.execute(
        "SELECT amount, category, type, is_transfer, transfer_side"
        " FROM transactions WHERE wallet_id = ?",
        (wallet_id,),
    ).fetchall()

    spent = Decimal("0")
    inflow = Decimal("0")
    buckets: dict[str, Decimal] = {}
    for r in rows:
        amount = Decimal(r["amount"])
        is_xfer = bool(r["is_transfer"])
        direction = Direction.parse(r["type"])
        if direction is Direction.DEBIT or (is_xfer and r["transfer_side"] == "from"):
            spent += amount
            category = r["category"]
            if is_xfer and (not category or category == TRANSFER):
                key = TRANSFER
            else:
                key = category or "other"
            buckets[key] = buckets.get(key, Decimal("0")) + amount
        elif direction is Direction.CREDIT or (is_xfer and r["transfer_side"] == "to"):
            inflow += amount

    return {
        "total_spent": spent,
        "total_inflow": inflow,
        "category_spending": _category_breakdown(buckets, spent, catalog),
    }


def _cash_flow(row: sqlite3.Row) -> tuple[bool, bool]:
    """(is_expense, is_income) across wallets.

    Transfer legs are moves between the user's own wallets, so they only
    count when they carry a real spending/earning category.
    """
    category = row["category"]
    if row["is_transfer"]:
        side = row["transfer_side"]
        return (
            side == "from" and bool(category) and category != TRANSFER,
            side == "to" and bool(category) and category not in (TRANSFER, INCOME),
        )
    direction = Direction.parse(row["type"])
    return direction is Direction.DEBIT, direction is Direction.CREDIT


def get_global_analytics(
    conn: sqlite3.Connection,
    since: date,
    catalog: CategoryCatalog,
    until: date | None = None,
) -> dict:
    """Cross-wallet spending since a date, with a per-day history."""
    until = until or date.today()
    rows = conn.execute(
        "SELECT amount, category, type, transaction_date, is_transfer, transfer_side"
        " FROM transactions WHERE transaction_date >= ?",
        (since.isoformat(),),
    ).fetchall()

    spent = Decimal("0")
    inflow = Decimal("0")
    buckets: dict[str, Decimal] = {}
    daily: dict[str, Decimal] = {}
    for r in rows:
        amount = Decimal(r["amount"])
        category = r["category"]
        is_expense, is_income = _cash_flow(r)
        if is_expense:
            spent += amount
            key = category or "other"
            buckets[key] = buckets.get(key, Decimal("0")) + amount
            day = (r["transaction_date"] or "")[:10]
            daily[day] = daily.get(day, Decimal("0")) + amount
        elif is_income:
            inflow += amount

    history = []
    current = since
    while current <= until:
        key = current.isoformat()
        history.append({"date": key, "amount": daily.get(key, Decimal("0"))})
        current += timedelta(days=1)

    return {
        "total_spent": spent,
        "total_inflow": inflow,
        "net_cashflow": inflow - spent,
        "category_spending": _category_breakdown(buckets, spent, catalog),
        "spending_history": history,
    }


# ── Insights ───────────────────────────────────────────────

ANOMALY_THRESHOLD = Decimal("500")

def _months_before(day: date, months: int) -> date:
    """Same day-of-month `months` earlier, clamped to the month's length."""
    index = day.year * 12 + day.month - 1 - months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def period_bounds(period: str, today: date) -> tuple[date, date]:
    """(previous period start, current period start) for a week or month."""
    if period == "week":
        return today - timedelta(days=14), today - timedelta(days=7)
    if period == "month":
        return _months_before(today, 2), _months_before(today, 1)
    raise ValueError(f"Unknown period: {period!r}")


def _pct_change(current: Decimal, previous: Decimal) -> Decimal:
    return (current - previous) * _HUNDRED / previous


def _period_totals(rows: list[sqlite3.Row], catalog: CategoryCatalog) -> dict:
    spent = Decimal("0")
    inflow = Decimal("0")
    by_name: dict[str, Decimal] = {}
    expenses = []
    for r in rows:
        amount = Decimal(r["amount"])
        is_expense, is_income = _cash_flow(r)
        if is_expense:
            spent += amount
            cat = catalog.get_by_id_or_name(r["category"])
            name = cat.name if cat else catalog.get_default().name
            by_name[name] = by_name.get(name, Decimal("0")) + amount
            expenses.append(r)
        elif is_income:
            inflow += amount

    top = [
        {
            "category": name,
            "amount": amount,
            "percentage": (
                (amount * _HUNDRED / spent).quantize(_CENT) if spent > 0 else Decimal("0")
            ),
        }
        for name, amount in by_name.items()
    ]
    top.sort(key=lambda c: c["amount"], reverse=True)
    return {"spent": spent, "inflow": inflow, "top": top, "expenses": expenses}


def get_insights_data(
    conn: sqlite3.Connection,
    catalog: CategoryCatalog,
    period: str = "month",
    today: date | None = None,
) -> dict:
    """Spending for the current period compared with the one before it.

    The current period runs from one week/month ago through today; the
    previous period is the same length immediately before it.  Also
    reports recurring transactions (same description and rounded amount,
    seen at least twice) and expenses above ANOMALY_THRESHOLD.
    """
    today = today or date.today()
    prev_start, start = period_bounds(period, today)
    rows = conn.execute(
        "SELECT description, amount, category, type, transaction_date,"
        " is_transfer, transfer_side"
        " FROM transactions WHERE transaction_date >= ?"
        " ORDER BY transaction_date, rowid",
        (prev_start.isoformat(),),
    ).fetchall()

    start_key, end_key = start.isoformat(), today.isoformat()
    current_rows = []
    previous_rows = []
    for r in rows:
        day = (r["transaction_date"] or "")[:10]
        if start_key <= day <= end_key:
            current_rows.append(r)
        elif day < start_key:
            previous_rows.append(r)

    current = _period_totals(current_rows, catalog)
    previous = _period_totals(previous_rows, catalog)

    recurring: dict[tuple[str, Decimal], dict] = {}
    for r in current_rows:
        amount = Decimal(r["amount"])
        description = (r["description"] or "").lower()
        key = (description, amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        entry = recurring.setdefault(
            key, {"description": description, "amount": amount, "count": 0},
        )
        entry["count"] += 1

    anomalies = [
        {
            "description": r["description"],
            "amount": Decimal(r["amount"]),
            "date": r["transaction_date"],
        }
        for r in current["expenses"]
        if Decimal(r["amount"]) > ANOMALY_THRESHOLD
    ]

    prev_by_name = {c["category"]: c["amount"] for c in previous["top"]}
    category_changes = [
        {
            "category": c["category"],
            "change": (
                _pct_change(c["amount"], prev_by_name[c["category"]])
                if prev_by_name.get(c["category"]) else _HUNDRED
            ),
        }
        for c in current["top"]
    ]

    zero = Decimal("0")
    return {
        "timeframe": "this week" if period == "week" else "this month",
        "total_spending": current["spent"],
        "total_income": current["inflow"],
        "top_categories": current["top"],
        "recurring_transactions": [e for e in recurring.values() if e["count"] >= 2],
        "anomalies": anomalies,
        "spending_change": (
            _pct_change(current["spent"], previous["spent"])
            if previous["spent"] > 0 else zero
        ),
        "income_change": (
            _pct_change(current["inflow"], previous["inflow"])
            if previous["inflow"] > 0 else zero
        ),
        "category_changes": category_changes,
    }

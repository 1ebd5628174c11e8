"""Repository: CRUD operations against SQLite using raw SQL.

Implements the wallet, transaction and transfer store contracts used by
the reconciliation engine.  All methods take/return dataclass instances
from models.py.  sqlite3 errors are translated into the StoreError
hierarchy so callers never depend on the storage driver.
"""

from __future__ import annotations

import re
import sqlite3
from contextlib import contextmanager
from decimal import Decimal
from enum import Enum
from pathlib import Path

from .models import Transaction, Transfer, Wallet


class StoreError(Exception):
    """Base class for persistence failures."""


class NotFoundError(StoreError):
    """Raised when a referenced row does not exist."""

    def __init__(self, table: str, row_id: str):
        self.table = table
        self.row_id = row_id
        super().__init__(f"{table} row '{row_id}' not found")


class ConstraintViolationError(StoreError):
    """Raised when the store rejects a write (NOT NULL, CHECK, FK, UNIQUE)."""


class SchemaMismatchError(StoreError):
    """Raised when a write names a column the store does not have."""

    def __init__(self, column: str, message: str):
        self.column = column
        super().__init__(message)


_MISSING_COLUMN_RE = re.compile(r"has no column named (\w+)|no such column: (\w+)")


@contextmanager
def _translate_errors(conn: sqlite3.Connection):
    try:
        yield
    except sqlite3.IntegrityError as e:
        conn.rollback()
        raise ConstraintViolationError(str(e)) from e
    except sqlite3.OperationalError as e:
        conn.rollback()
        m = _MISSING_COLUMN_RE.search(str(e))
        if m:
            raise SchemaMismatchError(m.group(1) or m.group(2), str(e)) from e
        raise StoreError(str(e)) from e
    except sqlite3.DatabaseError as e:
        conn.rollback()
        raise StoreError(str(e)) from e


def _to_db(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _dec(value) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


class Repository:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Migrations ──────────────────────────────────────────

    def apply_migrations(self, migrations_dir: Path):
        """Apply all pending SQL migrations in order.

        Each migration runs in a transaction: if the SQL fails, the
        schema_version row is not inserted, allowing retry on next startup.
        """
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )
        self.conn.commit()

        row = self.conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        current = row[0] or 0

        for sql_file in sorted(migrations_dir.glob("*.sql")):
            version = int(sql_file.name.split("_")[0])
            if version > current:
                try:
                    self.conn.execute("BEGIN")
                    # executescript auto-commits, so we split statements manually
                    for statement in sql_file.read_text().split(";"):
                        statement = statement.strip()
                        if statement:
                            self.conn.execute(statement)
                    self.conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                        (version, sql_file.stem),
                    )
                    self.conn.commit()
                except Exception:
                    self.conn.rollback()
                    raise

    def _fetchone(self, sql: str, params=()) -> sqlite3.Row | None:
        with _translate_errors(self.conn):
            return self.conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params=()) -> list[sqlite3.Row]:
        with _translate_errors(self.conn):
            return self.conn.execute(sql, params).fetchall()

    def _update(self, table: str, allowed: frozenset, row_id: str, fields: dict):
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown columns for {table} update: {unknown}")
        if not fields:
            return
        sets = [f"{col} = ?" for col in fields] + ["updated_at = CURRENT_TIMESTAMP"]
        vals = [_to_db(v) for v in fields.values()] + [row_id]
        with _translate_errors(self.conn):
            cur = self.conn.execute(
                f"UPDATE {table} SET {', '.join(sets)} WHERE id = ?", vals
            )
            self.conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError(table, row_id)

    # ── Wallets ─────────────────────────────────────────────

    def insert_wallet(self, wallet: Wallet) -> Wallet:
        with _translate_errors(self.conn):
            self.conn.execute(
                "INSERT INTO wallets"
                " (id, name, type, icon, source_identifier, initial_balance,"
                "  current_balance, is_active, created_at, updated_at)"
                " VALUES (?,?,?,?,?,?,?,?,?,?)",
                (wallet.id, wallet.name, _to_db(wallet.type), wallet.icon,
                 wallet.source_identifier, _to_db(wallet.initial_balance),
                 _to_db(wallet.current_balance), int(wallet.is_active),
                 wallet.created_at, wallet.updated_at),
            )
            self.conn.commit()
        return wallet

    def get_wallet(self, wallet_id: str) -> Wallet | None:
        row = self._fetchone(
            "SELECT * FROM wallets WHERE id = ?", (wallet_id,)
        )
        return self._row_to_wallet(row) if row else None

    def list_wallets(self, active_only: bool = True) -> list[Wallet]:
        sql = "SELECT * FROM wallets"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY created_at, rowid"
        return [self._row_to_wallet(r) for r in self._fetchall(sql)]

    _WALLET_UPDATE_COLS = frozenset({
        "name", "type", "icon", "current_balance", "is_active",
    })

    def update_wallet(self, wallet_id: str, **fields):
        """Partial update.  Raises NotFoundError if no row matched."""
        if "is_active" in fields:
            fields["is_active"] = int(bool(fields["is_active"]))
        self._update("wallets", self._WALLET_UPDATE_COLS, wallet_id, fields)

    # ── Transactions ────────────────────────────────────────

    def insert_transaction(self, txn: Transaction) -> Transaction:
        with _translate_errors(self.conn):
            self.conn.execute(
                "INSERT INTO transactions"
                " (id, description, amount, type, category, wallet_id,"
                "  transaction_date, is_transfer, transfer_id, transfer_side,"
                "  balance_snapshot, source, created_at, updated_at)"
                " VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)",
                (txn.id, txn.description, _to_db(txn.amount), _to_db(txn.type),
                 txn.category, txn.wallet_id, txn.transaction_date,
                 int(txn.is_transfer), txn.transfer_id,
                 _to_db(txn.transfer_side), _to_db(txn.balance_snapshot),
                 txn.source, txn.created_at, txn.updated_at),
            )
            self.conn.commit()
        return txn

    def get_transaction(self, txn_id: str) -> Transaction | None:
        row = self._fetchone(
            "SELECT * FROM transactions WHERE id = ?", (txn_id,)
        )
        return self._row_to_transaction(row) if row else None

    def get_unmatched_transactions(self) -> list[Transaction]:
        """Transactions awaiting reconciliation (no wallet assigned)."""
        rows = self._fetchall(
            "SELECT * FROM transactions WHERE wallet_id IS NULL"
            " ORDER BY created_at DESC, rowid DESC"
        )
        return [self._row_to_transaction(r) for r in rows]

    def get_transactions_for_wallet(
        self, wallet_id: str, limit: int | None = None,
    ) -> list[Transaction]:
        sql = (
            "SELECT * FROM transactions WHERE wallet_id = ?"
            " ORDER BY transaction_date DESC, rowid DESC"
        )
        params: list = [wallet_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self._fetchall(sql, params)
        return [self._row_to_transaction(r) for r in rows]

    def get_transactions_by_transfer(self, transfer_id: str) -> list[Transaction]:
        rows = self._fetchall(
            "SELECT * FROM transactions WHERE transfer_id = ? ORDER BY rowid",
            (transfer_id,),
        )
        return [self._row_to_transaction(r) for r in rows]

    _TXN_UPDATE_COLS = frozenset({
        "description", "category", "wallet_id", "is_transfer",
        "transfer_id", "transfer_side", "balance_snapshot",
    })

    def update_transaction(self, txn_id: str, **fields):
        """Partial update.  Raises NotFoundError if no row matched."""
        if "is_transfer" in fields:
            fields["is_transfer"] = int(bool(fields["is_transfer"]))
        self._update("transactions", self._TXN_UPDATE_COLS, txn_id, fields)

    def link_source_to_wallet(self, source: str, wallet_id: str) -> int:
        """Assign every unmatched transaction from source to wallet_id."""
        with _translate_errors(self.conn):
            cur = self.conn.execute(
                "UPDATE transactions SET wallet_id = ?,"
                " updated_at = CURRENT_TIMESTAMP"
                " WHERE source = ? AND wallet_id IS NULL",
                (wallet_id, source),
            )
            self.conn.commit()
        return cur.rowcount

    # ── Transfers ───────────────────────────────────────────

    _TRANSFER_COLS = (
        "id", "user_id", "from_wallet_id", "to_wallet_id", "amount",
        "status", "notes", "created_at", "completed_at",
    )

    def insert_transfer(
        self, xfer: Transfer, omit: frozenset[str] = frozenset(),
    ) -> Transfer:
        """Insert a transfer, leaving out any columns named in omit."""
        cols = [c for c in self._TRANSFER_COLS if c not in omit]
        ph = ",".join("?" * len(cols))
        vals = [_to_db(getattr(xfer, c)) for c in cols]
        with _translate_errors(self.conn):
            self.conn.execute(
                f"INSERT INTO transfers ({', '.join(cols)}) VALUES ({ph})", vals
            )
            self.conn.commit()
        return xfer

    def get_transfer(self, transfer_id: str) -> Transfer | None:
        row = self._fetchone(
            "SELECT * FROM transfers WHERE id = ?", (transfer_id,)
        )
        return self._row_to_transfer(row) if row else None

    # ── Row Converters ──────────────────────────────────────

    @staticmethod
    def _row_to_wallet(row: sqlite3.Row) -> Wallet:
        return Wallet(
            id=row["id"], name=row["name"], type=row["type"],
            icon=row["icon"], source_identifier=row["source_identifier"],
            initial_balance=_dec(row["initial_balance"]),
            current_balance=_dec(row["current_balance"]),
            is_active=bool(row["is_active"]),
            created_at=row["created_at"], updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"], description=row["description"],
            amount=_dec(row["amount"]), type=row["type"],
            category=row["category"], wallet_id=row["wallet_id"],
            transaction_date=row["transaction_date"],
            is_transfer=bool(row["is_transfer"]),
            transfer_id=row["transfer_id"],
            transfer_side=row["transfer_side"],
            balance_snapshot=_dec(row["balance_snapshot"]),
            source=row["source"],
            created_at=row["created_at"], updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_transfer(row: sqlite3.Row) -> Transfer:
        keys = row.keys()
        return Transfer(
            id=row["id"], user_id=row["user_id"],
            from_wallet_id=row["from_wallet_id"],
            to_wallet_id=row["to_wallet_id"],
            amount=_dec(row["amount"]), status=row["status"],
            notes=row["notes"] if "notes" in keys else None,
            created_at=row["created_at"],
            completed_at=row["completed_at"] if "completed_at" in keys else None,
        )

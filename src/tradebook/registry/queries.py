from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import psycopg.errors

from tradebook.models.account import Account
from tradebook.models.transaction import Action, Transaction, normalize_instrument
from tradebook.registry.db import Database
from tradebook.registry.errors import (
    AccountInUseError,
    ConstraintViolationError,
    DuplicateAccountError,
    NotFoundError,
    StoreConflictError,
)
from tradebook.registry.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Serialization failures back off twice as long as id collisions.
SERIALIZATION_BACKOFF_SCALE = 2.0

_TXN_COLUMNS = (
    "account_id, trade_date, instrument, action, quantity, price, trade_value, "
    "brokerage, source, order_ref, remarks"
)


@dataclass(frozen=True)
class TransactionFilter:
    account_id: str | None = None
    action: Action | None = None
    instrument: str | None = None
    date_from: date | None = None
    date_to: date | None = None

    def where(self) -> tuple[str, tuple]:
        """Render a WHERE clause (possibly empty) and its parameters."""
        clauses: list[str] = []
        params: list = []
        if self.account_id:
            clauses.append("account_id = %s")
            params.append(self.account_id)
        if self.action:
            clauses.append("action = %s")
            params.append(Action(self.action).value)
        if self.instrument:
            clauses.append("instrument = %s")
            params.append(normalize_instrument(self.instrument))
        if self.date_from:
            clauses.append("trade_date >= %s")
            params.append(self.date_from)
        if self.date_to:
            clauses.append("trade_date <= %s")
            params.append(self.date_to)
        if not clauses:
            return "", ()
        return " WHERE " + " AND ".join(clauses), tuple(params)


@dataclass(frozen=True)
class Page:
    transactions: list[Transaction]
    page: int
    limit: int
    total_count: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.limit) if self.limit else 0

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total_count

    def pagination(self) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "totalCount": self.total_count,
            "totalPages": self.total_pages,
            "hasMore": self.has_more,
        }


def _is_id_collision(exc: psycopg.errors.UniqueViolation) -> bool:
    constraint = getattr(exc.diag, "constraint_name", None) or ""
    return constraint.endswith("_pkey")


class Registry:
    """Query layer bridging the ledger models and the tradebook schema."""

    def __init__(self, db: Database, retry: RetryPolicy | None = None) -> None:
        self._db = db
        self._retry = retry or RetryPolicy()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def list_accounts(self) -> list[Account]:
        rows = self._db.execute(
            "SELECT id, userid, name, active FROM tradebook.accounts ORDER BY userid"
        )
        return [self._row_to_account(r) for r in rows]

    def list_active_accounts(self) -> list[Account]:
        rows = self._db.execute(
            "SELECT id, userid, name, active FROM tradebook.accounts "
            "WHERE active = TRUE ORDER BY userid"
        )
        return [self._row_to_account(r) for r in rows]

    def get_account(self, account_id: int) -> Account | None:
        rows = self._db.execute(
            "SELECT id, userid, name, active FROM tradebook.accounts WHERE id = %s",
            (account_id,),
        )
        return self._row_to_account(rows[0]) if rows else None

    def create_account(self, account: Account) -> Account:
        """Insert an account. Raises DuplicateAccountError if the userid exists."""
        try:
            rows = self._db.execute(
                "INSERT INTO tradebook.accounts (userid, name, active) VALUES (%s, %s, %s) "
                "RETURNING id, userid, name, active",
                (account.userid, account.name, account.active),
            )
        except psycopg.errors.UniqueViolation as e:
            raise DuplicateAccountError(f"Account {account.userid} already exists") from e
        logger.info("Created account %s", account.userid)
        return self._row_to_account(rows[0])

    def update_account(self, account_id: int, name: str, active: bool | None = None) -> Account:
        rows = self._db.execute(
            "UPDATE tradebook.accounts SET name = %s, active = COALESCE(%s, active), "
            "updated_at = NOW() WHERE id = %s RETURNING id, userid, name, active",
            (name.strip(), active, account_id),
        )
        if not rows:
            raise NotFoundError(f"Account {account_id} not found")
        return self._row_to_account(rows[0])

    def delete_account(self, account_id: int) -> None:
        """Delete an account that has no transactions."""
        account = self.get_account(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        in_use = self.count_transactions_for_account(account.userid)
        if in_use:
            raise AccountInUseError(account.userid, in_use)
        self._db.execute("DELETE FROM tradebook.accounts WHERE id = %s", (account_id,))
        logger.info("Deleted account %s", account.userid)

    # ------------------------------------------------------------------
    # Transactions: reads
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id: int) -> Transaction | None:
        rows = self._db.execute(
            "SELECT * FROM tradebook.transactions WHERE id = %s", (transaction_id,)
        )
        return self._row_to_transaction(rows[0]) if rows else None

    def list_transactions(
        self, filters: TransactionFilter | None = None, page: int = 1, limit: int = 100,
    ) -> Page:
        """One page of transactions, newest first (date desc, id desc)."""
        where, params = (filters or TransactionFilter()).where()
        count_rows = self._db.execute(
            f"SELECT COUNT(*) AS cnt FROM tradebook.transactions{where}", params
        )
        total = count_rows[0]["cnt"] if count_rows else 0
        rows = self._db.execute(
            f"SELECT * FROM tradebook.transactions{where} "
            "ORDER BY trade_date DESC, id DESC LIMIT %s OFFSET %s",
            params + (limit, (page - 1) * limit),
        )
        return Page(
            transactions=[self._row_to_transaction(r) for r in rows],
            page=page,
            limit=limit,
            total_count=total,
        )

    def list_all_transactions(self, filters: TransactionFilter | None = None) -> list[Transaction]:
        """Every matching transaction, newest first."""
        where, params = (filters or TransactionFilter()).where()
        rows = self._db.execute(
            f"SELECT * FROM tradebook.transactions{where} ORDER BY trade_date DESC, id DESC",
            params,
        )
        return [self._row_to_transaction(r) for r in rows]

    def list_transactions_chronological(
        self, filters: TransactionFilter | None = None,
    ) -> list[Transaction]:
        """Matching transactions oldest first, the order every fold expects."""
        where, params = (filters or TransactionFilter()).where()
        rows = self._db.execute(
            f"SELECT * FROM tradebook.transactions{where} ORDER BY trade_date ASC, id ASC",
            params,
        )
        return [self._row_to_transaction(r) for r in rows]

    def unique_instruments(self) -> list[str]:
        rows = self._db.execute(
            "SELECT DISTINCT instrument FROM tradebook.transactions ORDER BY instrument"
        )
        return [r["instrument"] for r in rows]

    def count_transactions_for_account(self, userid: str) -> int:
        rows = self._db.execute(
            "SELECT COUNT(*) AS cnt FROM tradebook.transactions WHERE account_id = %s",
            (userid,),
        )
        return rows[0]["cnt"] if rows else 0

    # ------------------------------------------------------------------
    # Transactions: writes
    # ------------------------------------------------------------------

    def create_transaction(self, txn: Transaction) -> Transaction:
        """Insert a transaction, assigning id = MAX(id) + 1.

        Id collisions from concurrent writers are retried with backoff; once
        attempts run out the identity column assigns the id instead.
        Serialization failures are retried the same way and surface as
        StoreConflictError when attempts run out.
        """
        attempts = self._retry.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self._insert_with_next_id(txn)
            except psycopg.errors.UniqueViolation as e:
                if not _is_id_collision(e):
                    raise ConstraintViolationError(str(e)) from e
                if attempt == attempts:
                    logger.warning(
                        "Id collision persisted after %d attempts, using identity fallback",
                        attempts,
                    )
                    return self._insert_with_identity(txn)
                wait = self._retry.wait(attempt)
                logger.warning(
                    "Id collision on attempt %d/%d, retrying in %.2fs", attempt, attempts, wait,
                )
            except psycopg.errors.SerializationFailure as e:
                if attempt == attempts:
                    raise StoreConflictError(
                        f"Transaction write conflicted {attempts} times, try again later"
                    ) from e
                wait = self._retry.wait(attempt, scale=SERIALIZATION_BACKOFF_SCALE)
                logger.warning(
                    "Serialization failure on attempt %d/%d, retrying in %.2fs",
                    attempt, attempts, wait,
                )
        raise StoreConflictError("Transaction write did not complete")

    def _insert_with_next_id(self, txn: Transaction) -> Transaction:
        with self._db.transaction() as cur:
            cur.execute(
                "SELECT COALESCE(MAX(id), 0) + 1 AS next_id FROM tradebook.transactions"
            )
            next_id = cur.fetchone()["next_id"]
            cur.execute(
                f"INSERT INTO tradebook.transactions (id, {_TXN_COLUMNS}) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s) RETURNING *",
                (next_id,) + self._transaction_params(txn),
            )
            row = cur.fetchone()
        logger.debug("Inserted transaction %s", row["id"])
        return self._row_to_transaction(row)

    def _insert_with_identity(self, txn: Transaction) -> Transaction:
        with self._db.transaction(serializable=False) as cur:
            # explicit ids leave the identity sequence behind; catch it up first
            cur.execute(
                "SELECT setval(pg_get_serial_sequence('tradebook.transactions', 'id'), "
                "COALESCE((SELECT MAX(id) FROM tradebook.transactions), 0) + 1, false)"
            )
            cur.execute(
                f"INSERT INTO tradebook.transactions ({_TXN_COLUMNS}) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s) RETURNING *",
                self._transaction_params(txn),
            )
            row = cur.fetchone()
        return self._row_to_transaction(row)

    def update_transaction(self, transaction_id: int, txn: Transaction) -> Transaction:
        rows = self._db.execute(
            "UPDATE tradebook.transactions SET account_id = %s, trade_date = %s, "
            "instrument = %s, action = %s, quantity = %s, price = %s, trade_value = %s, "
            "brokerage = %s, source = %s, order_ref = %s, remarks = %s, updated_at = NOW() "
            "WHERE id = %s RETURNING *",
            self._transaction_params(txn) + (transaction_id,),
        )
        if not rows:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return self._row_to_transaction(rows[0])

    def delete_transaction(self, transaction_id: int) -> None:
        rows = self._db.execute(
            "DELETE FROM tradebook.transactions WHERE id = %s RETURNING id", (transaction_id,)
        )
        if not rows:
            raise NotFoundError(f"Transaction {transaction_id} not found")

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _transaction_params(txn: Transaction) -> tuple:
        return (
            txn.account_id, txn.date, txn.instrument, txn.action.value, txn.quantity,
            txn.price, txn.trade_value, txn.brokerage, txn.source, txn.order_ref, txn.remarks,
        )

    @staticmethod
    def _row_to_transaction(r: dict) -> Transaction:
        return Transaction(
            id=r["id"],
            account_id=r["account_id"],
            date=r["trade_date"],
            instrument=r["instrument"],
            action=Action(r["action"]),
            quantity=Decimal(str(r["quantity"])),
            price=Decimal(str(r["price"])),
            trade_value=Decimal(str(r["trade_value"])),
            brokerage=Decimal(str(r["brokerage"])) if r.get("brokerage") is not None else Decimal(0),
            source=r.get("source"),
            order_ref=r.get("order_ref"),
            remarks=r.get("remarks"),
        )

    @staticmethod
    def _row_to_account(r: dict) -> Account:
        return Account(id=r["id"], userid=r["userid"], name=r["name"], active=r["active"])

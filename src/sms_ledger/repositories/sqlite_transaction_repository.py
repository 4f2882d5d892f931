import sqlite3
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from sms_ledger.database.connection import DatabaseManager
from sms_ledger.domain.models import Category, Transaction
from sms_ledger.domain.enums import TransactionSource, TransactionType
from sms_ledger.repositories.base import TransactionRepository, TransactionNotFoundError

_SELECT = """
    SELECT t.*,
           c.name AS category_name, c.icon AS category_icon,
           c.color AS category_color, c.is_default AS category_is_default
    FROM transactions t
    LEFT JOIN categories c ON c.id = t.category_id
"""

_INSERT = """
    INSERT INTO transactions (
        amount, type, merchant, date, description, account_identifier,
        account_id, source, category_id, category_confidence, raw_data
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

class SQLiteTransactionRepository(TransactionRepository):
    """
    SQLite implementation of the TransactionRepository.

    Handles all database operations for transactions using raw SQL.
    Amounts are stored as text to keep Decimal precision; dates as ISO
    strings so they sort and compare correctly.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def save(self, transaction: Transaction) -> Transaction:
        """Save a single transaction."""
        with self.db.transaction() as conn:
            cursor = conn.execute(_INSERT, self._to_params(transaction))
            transaction.id = cursor.lastrowid

        return transaction

    def save_many(self, transactions: List[Transaction]) -> List[Transaction]:
        """Save multiple transactions in one database transaction"""
        with self.db.transaction() as conn:
            for txn in transactions:
                cursor = conn.execute(_INSERT, self._to_params(txn))
                txn.id = cursor.lastrowid

        return transactions

    def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        """Retrieve a transaction by ID, or None if it doesn't exist"""
        with self.db.reading() as conn:
            row = conn.execute(
                _SELECT + " WHERE t.id = ?",
                (transaction_id,)
            ).fetchone()

        if row is None:
            return None

        return self._row_to_transaction(row)

    def get_all(
            self,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            transaction_type: Optional[TransactionType] = None,
            category_id: Optional[int] = None,
            account_id: Optional[int] = None,
    ) -> List[Transaction]:
        """Retrieve transactions with optional filtering."""
        query = _SELECT + " WHERE 1=1"
        params = []

        if start_date:
            query += " AND t.date >= ?"
            params.append(datetime.combine(start_date, time.min).isoformat())

        if end_date:
            query += " AND t.date <= ?"
            params.append(datetime.combine(end_date, time.max).isoformat())

        if transaction_type:
            query += " AND t.type = ?"
            params.append(transaction_type.value)

        if category_id is not None:
            query += " AND t.category_id = ?"
            params.append(category_id)

        if account_id is not None:
            query += " AND t.account_id = ?"
            params.append(account_id)

        query += " ORDER BY t.date DESC"

        with self.db.reading() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_transaction(row) for row in rows]

    def update(self, transaction: Transaction) -> Transaction:
        """Update an existing transaction."""
        if transaction.id is None:
            raise ValueError("Cannot update transaction without ID")

        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE transactions
                SET amount = ?, type = ?, merchant = ?, date = ?,
                    description = ?, account_identifier = ?, account_id = ?,
                    source = ?, category_id = ?, category_confidence = ?,
                    raw_data = ?
                WHERE id = ?
                """,
                self._to_params(transaction) + (transaction.id,),
            )

            if cursor.rowcount == 0:
                raise TransactionNotFoundError(
                    f"Transaction with ID {transaction.id} not found"
                )

        return transaction

    def delete(self, transaction_id: int) -> bool:
        """Delete a transaction by ID."""
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM transactions WHERE id = ?",
                (transaction_id,)
            )
            return cursor.rowcount > 0

    def _to_params(self, transaction: Transaction) -> tuple:
        return (
            str(transaction.amount), # Store as string for precision
            transaction.type.value,
            transaction.merchant,
            transaction.date.isoformat(),
            transaction.description,
            transaction.account_identifier,
            transaction.account_id,
            transaction.source.value,
            transaction.category.id if transaction.category else None,
            transaction.category_confidence,
            transaction.raw_data,
        )

    def _row_to_transaction(self, row: sqlite3.Row) -> Transaction:
        """Convert database row to Transaction object."""
        category = None
        if row["category_id"] is not None and row["category_name"] is not None:
            category = Category(
                id=row["category_id"],
                name=row["category_name"],
                icon=row["category_icon"],
                color=row["category_color"],
                is_default=bool(row["category_is_default"]),
            )

        return Transaction(
            id=row["id"],
            amount=Decimal(row["amount"]),
            type=TransactionType(row["type"]),
            merchant=row["merchant"],
            date=datetime.fromisoformat(row["date"]),
            description=row["description"],
            account_identifier=row["account_identifier"],
            account_id=row["account_id"],
            source=TransactionSource(row["source"]),
            category=category,
            category_confidence=row["category_confidence"],
            raw_data=row["raw_data"],
        )

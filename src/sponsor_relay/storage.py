"""
TransactionLog - SQLite storage for relay attempts.

Stores one append-only row per processed raw transaction, keyed by the
signer address, and serves the history queries.
"""

import logging
from pathlib import Path
from typing import Protocol

import aiosqlite

from .errors import PersistenceError
from .models import TransactionRecord, TxStatus

logger = logging.getLogger(__name__)


class TransactionLog(Protocol):
    """Append/query interface of the persistent transaction log."""

    async def append(self, record: TransactionRecord) -> None: ...

    async def query(
        self,
        address: str,
        statuses: list[TxStatus],
        before: int,
        limit: int
    ) -> list[TransactionRecord]: ...


class SqliteTransactionLog:
    """
    SQLite storage for transaction records.

    Tables:
    - transactions: sender, raw signed transaction, status, error, created_at (epoch ms)
    """

    def __init__(self, db_path: str):
        """
        Initialize storage.

        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

        # Ensure parent directory exists
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self) -> None:
        """Initialize database connection and create tables."""
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sender TEXT NOT NULL,
                raw_sign_tx TEXT NOT NULL,
                status TEXT NOT NULL,
                error TEXT,
                created_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_transactions_sender_created
                ON transactions(sender, created_at);
        """)
        await self._db.commit()
        logger.info(f"Database initialized: {self._db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def append(self, record: TransactionRecord) -> None:
        """
        Append a transaction record.

        Args:
            record: TransactionRecord to store

        Raises:
            PersistenceError: If the database is unavailable or the write fails
        """
        if not self._db:
            raise PersistenceError("Database not initialized")

        try:
            await self._db.execute(
                """
                INSERT INTO transactions (sender, raw_sign_tx, status, error, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    record.sender.lower(),
                    record.raw_transaction,
                    record.status.value,
                    record.error,
                    record.created_at,
                ),
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to append transaction record: {e}") from e

    async def query(
        self,
        address: str,
        statuses: list[TxStatus],
        before: int,
        limit: int
    ) -> list[TransactionRecord]:
        """
        Get records for a sender, newest first.

        Args:
            address: Sender address (any case)
            statuses: Statuses to include
            before: Only records created strictly before this epoch-ms timestamp
            limit: Maximum records to return

        Returns:
            List of TransactionRecord
        """
        if not self._db:
            raise PersistenceError("Database not initialized")
        if not statuses:
            return []

        placeholders = ", ".join("?" for _ in statuses)
        try:
            cursor = await self._db.execute(
                f"""
                SELECT sender, raw_sign_tx, status, error, created_at
                FROM transactions
                WHERE sender = ? AND status IN ({placeholders}) AND created_at < ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (address.lower(), *(status.value for status in statuses), before, limit),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to query transaction records: {e}") from e

        return [
            TransactionRecord(
                sender=row["sender"],
                raw_transaction=row["raw_sign_tx"],
                status=TxStatus(row["status"]),
                error=row["error"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

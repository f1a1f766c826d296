#!/usr/bin/env python3
"""Outcome recording for processed transactions."""

import logging
import time

from .errors import PersistenceError
from .models import TransactionRecord, TxStatus
from .storage import TransactionLog

# Get logger for this module
logger = logging.getLogger(__name__)


class OutcomeRecorder:
    """Maps a terminal verdict to a TransactionRecord and appends it once."""

    def __init__(self, transaction_log: TransactionLog) -> None:
        self.transaction_log = transaction_log

    @staticmethod
    def build_record(
        sender: str,
        raw_transaction: str,
        status: TxStatus,
        error: str | None,
        created_at: int | None = None
    ) -> TransactionRecord:
        return TransactionRecord(
            sender=sender,
            raw_transaction=raw_transaction,
            status=status,
            error=error,
            created_at=created_at if created_at is not None else int(time.time() * 1000),
        )

    async def record(
        self,
        sender: str | None,
        raw_transaction: str,
        status: TxStatus,
        error: str | None
    ) -> TransactionRecord | None:
        """
        Persist the verdict for one raw transaction. No retries.

        Args:
            sender: Signer address, None when it could not be resolved
            raw_transaction: Raw signed transaction as submitted
            status: Terminal status
            error: Error text, None on success

        Returns:
            The stored record, or None when persistence was skipped

        Raises:
            PersistenceError: If the append fails
        """
        if not sender:
            logger.warning(f"Sender address unknown, not recording {status.value} outcome")
            return None

        record = self.build_record(sender, raw_transaction, status, error)
        try:
            await self.transaction_log.append(record)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to record transaction for {sender}: {e}") from e

        logger.debug(f"Recorded {status.value} for {sender}")
        return record

#!/usr/bin/env python3
"""Guarded on-chain submission of sponsored transactions.

The relayer has a single nonce on the ledger, so submissions are serialized
per relayer identity. The before/after nonce comparison stays in place as a
detection signal for anything that still slips through (another process
using the same key, a replaced transaction).
"""

import asyncio
import logging
from typing import TYPE_CHECKING, ClassVar

from .errors import SubmissionError
from .models import DecodedTransaction, SubmissionOutcome

if TYPE_CHECKING:
    from .utils.contract_utility import ContractUtility

# Get logger for this module
logger = logging.getLogger(__name__)

# Failures after signing that say nothing about whether the node accepted the transaction
AMBIGUOUS_SEND_ERRORS: tuple[type[BaseException], ...] = (
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
)


class SubmissionGuard:
    """Submits eligible transactions through the sponsor contract."""

    # One lock per relayer address, shared by every guard in the process
    _locks: ClassVar[dict[str, asyncio.Lock]] = {}

    def __init__(self, contract_util: "ContractUtility") -> None:
        """
        Initialize the SubmissionGuard.

        Args:
            contract_util: Ledger access holding the relayer signing identity
        """
        self.contract_util = contract_util
        self.relayer_address: str = contract_util.address

    @classmethod
    def lock_for(cls, address: str) -> asyncio.Lock:
        """Return the submission lock for a relayer address."""
        return cls._locks.setdefault(address.lower(), asyncio.Lock())

    async def submit(self, tx: DecodedTransaction, raw_transaction: str) -> SubmissionOutcome:
        """
        Submit the sponsor call wrapping raw_transaction and wait for one confirmation.

        Never raises; failures are reported in the outcome's error.

        Args:
            tx: The decoded, eligible transaction
            raw_transaction: The raw signed transaction to wrap

        Returns:
            SubmissionOutcome with the nonce-consistency flag
        """
        async with self.lock_for(self.relayer_address):
            return await self._submit_locked(tx, raw_transaction)

    async def _submit_locked(self, tx: DecodedTransaction, raw_transaction: str) -> SubmissionOutcome:
        logger.info(f"Submitting sponsor transaction for {tx}")

        try:
            nonce_before = await self.contract_util.pending_nonce()
        except Exception as e:
            logger.error(f"Could not read relayer nonce before {tx.hash}: {e}", exc_info=True)
            return SubmissionOutcome(
                sender=tx.sender,
                attempted=False,
                nonce_consistent=False,
                error=SubmissionError(f"Submission rejected: {type(e).__name__}: {e}")
            )

        try:
            tx_hash = await self.contract_util.send_sponsor(raw_transaction)
        except AMBIGUOUS_SEND_ERRORS as e:
            # The signed transaction may have reached the node before the failure
            logger.error(f"Sponsor submission for {tx.hash} interrupted: {e!r}", exc_info=True)
            return SubmissionOutcome(
                sender=tx.sender,
                attempted=False,
                nonce_consistent=False,
                error=SubmissionError(
                    f"Submission interrupted: {type(e).__name__}: {e}",
                    possibly_applied=True
                )
            )
        except Exception as e:
            logger.error(f"Sponsor submission for {tx.hash} rejected: {e}", exc_info=True)
            return SubmissionOutcome(
                sender=tx.sender,
                attempted=False,
                nonce_consistent=False,
                error=SubmissionError(f"Submission rejected: {type(e).__name__}: {e}")
            )

        logger.info(f"Sponsor transaction {tx_hash} submitted for {tx.hash}")

        try:
            receipt = await self.contract_util.wait_for_confirmation(tx_hash)
        except Exception as e:
            logger.error(f"Confirmation of {tx_hash} failed: {e}", exc_info=True)
            return SubmissionOutcome(
                sender=tx.sender,
                attempted=True,
                nonce_consistent=False,
                tx_hash=tx_hash,
                error=SubmissionError(
                    f"Confirmation failed: {type(e).__name__}: {e}",
                    possibly_applied=True,
                    tx_hash=tx_hash
                )
            )

        if (status := receipt.get("status", 0)) != 1:
            logger.error(f"Sponsor transaction {tx_hash} reverted with status={status}")
            return SubmissionOutcome(
                sender=tx.sender,
                attempted=True,
                nonce_consistent=False,
                tx_hash=tx_hash,
                error=SubmissionError(f"Sponsor transaction {tx_hash} reverted", tx_hash=tx_hash)
            )

        logger.info(f"Sponsor transaction {tx_hash} confirmed in block {receipt.get('blockNumber')}")

        try:
            nonce_after = await self.contract_util.pending_nonce()
        except Exception as e:
            logger.error(f"Could not read relayer nonce after {tx_hash}: {e}", exc_info=True)
            return SubmissionOutcome(
                sender=tx.sender,
                attempted=True,
                nonce_consistent=False,
                tx_hash=tx_hash
            )

        nonce_consistent = nonce_after == nonce_before + 1
        if not nonce_consistent:
            logger.warning(
                f"Relayer nonce moved from {nonce_before} to {nonce_after} "
                f"while submitting {tx_hash}"
            )

        return SubmissionOutcome(
            sender=tx.sender,
            attempted=True,
            nonce_consistent=nonce_consistent,
            tx_hash=tx_hash
        )

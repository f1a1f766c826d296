#!/usr/bin/env python3
"""Data models for the sponsor relay.

This module provides immutable data classes for decoded transactions,
eligibility verdicts, submission outcomes and persisted records.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import RelayError, SubmissionError


class TxStatus(str, Enum):
    """Terminal status stored with every transaction record."""
    SENT = "SENT"
    DISCARDED = "DISCARDED"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class DecodedTransaction:
    """Structured view of a raw signed transaction.

    Quantities are kept as 0x-prefixed hex strings, the same shape the
    schema predicates check. Fee fields that do not exist for the envelope
    type are None (gas_price for EIP-1559, the max fee fields otherwise).

    Attributes:
        tx_type: Envelope type (0 legacy, 1 EIP-2930, 2 EIP-1559)
        nonce: Signer sequence number
        gas_price: Legacy/EIP-2930 gas price
        max_fee_per_gas: EIP-1559 fee cap
        max_priority_fee_per_gas: EIP-1559 tip cap
        gas_limit: Gas limit
        to: Checksummed destination, None for contract creation
        value: Native value transferred
        data: Call data
        chain_id: Chain ID (0 for pre-EIP-155 legacy transactions)
        v: Signature recovery value (y-parity for typed envelopes)
        r: Signature r
        s: Signature s
        sender: Address recovered from the signature
        hash: Keccak hash of the raw transaction
    """

    tx_type: int
    nonce: int
    gas_price: str | None
    max_fee_per_gas: str | None
    max_priority_fee_per_gas: str | None
    gas_limit: str
    to: str | None
    value: str
    data: str
    chain_id: int
    v: int
    r: str
    s: str
    sender: str | None
    hash: str

    def __str__(self) -> str:
        """Human-readable string representation."""
        return (
            f"DecodedTransaction(type={self.tx_type}, "
            f"from={self.sender}, to={self.to}, "
            f"nonce={self.nonce}, hash={self.hash[:10]}...)"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the public JSON view, with quantities as decimal strings."""
        def _decimal(value: str | None) -> str | None:
            return None if value is None else str(int(value, 16))

        return {
            "type": self.tx_type,
            "nonce": self.nonce,
            "gasPrice": _decimal(self.gas_price),
            "maxFeePerGas": _decimal(self.max_fee_per_gas),
            "maxPriorityFeePerGas": _decimal(self.max_priority_fee_per_gas),
            "gasLimit": _decimal(self.gas_limit),
            "to": self.to,
            "value": _decimal(self.value),
            "data": self.data,
            "chainId": self.chain_id,
            "v": self.v,
            "r": self.r,
            "s": self.s,
            "from": self.sender,
            "hash": self.hash,
        }


@dataclass(frozen=True, slots=True)
class Eligible:
    """The sponsor contract accepts the transaction."""


@dataclass(frozen=True, slots=True)
class Ineligible:
    """The sponsor contract declined the transaction."""
    reason: str


@dataclass(frozen=True, slots=True)
class InfrastructureError:
    """The dry run could not be evaluated (node or network failure)."""
    detail: str


EligibilityVerdict = Eligible | Ineligible | InfrastructureError


@dataclass(frozen=True, slots=True)
class SubmissionOutcome:
    """Result of a guarded on-chain submission.

    Attributes:
        sender: Signer of the wrapped transaction
        attempted: Whether the node accepted the relayer transaction
        nonce_consistent: Relayer pending nonce advanced by exactly one
        tx_hash: Relayer transaction hash, if one was obtained
        error: Failure detail, None when confirmed
    """
    sender: str | None
    attempted: bool
    nonce_consistent: bool
    tx_hash: str | None = None
    error: SubmissionError | None = None

    @property
    def confirmed(self) -> bool:
        return self.attempted and self.error is None


@dataclass(frozen=True, slots=True)
class RelayOutcome:
    """Terminal answer of one pipeline run."""
    sender: str | None
    schema_valid: bool
    sponsored: bool
    status: TxStatus
    error: RelayError | None = None
    nonce_consistent: bool = False
    tx_hash: str | None = None

    def as_tuple(self) -> tuple[bool, bool]:
        return (self.schema_valid, self.sponsored)


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """Append-only log entry for one processed raw transaction.

    Attributes:
        sender: Signer address (lookup key)
        raw_transaction: Raw signed transaction as submitted
        status: Terminal status
        error: Error text, None on success
        created_at: Creation time in epoch milliseconds
    """
    sender: str
    raw_transaction: str
    status: TxStatus
    error: str | None
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "sender": self.sender,
            "raw_transaction": self.raw_transaction,
            "status": self.status.value,
            "error": self.error,
            "created_at": self.created_at,
        }

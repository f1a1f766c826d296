#!/usr/bin/env python3
"""Raw transaction decoding and schema validation.

Decodes legacy (EIP-155), EIP-2930 and EIP-1559 signed transactions and
checks every field against a predicate before the transaction is allowed
anywhere near the simulator.
"""

import logging
import re
from collections.abc import Callable
from typing import Any

import rlp
from eth_account import Account
from eth_utils import big_endian_to_int
from hexbytes import HexBytes
from web3 import Web3

from .errors import SchemaError
from .models import DecodedTransaction

# Get logger for this module
logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")

LEGACY_TX_TYPE = 0
ACCESS_LIST_TX_TYPE = 1
DYNAMIC_FEE_TX_TYPE = 2


def is_hex_string(value: Any) -> bool:
    return isinstance(value, str) and _HEX_RE.fullmatch(value) is not None


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_quantity(value: Any) -> bool:
    return is_hex_string(value) and len(value) > 2


def _is_address(value: Any) -> bool:
    return isinstance(value, str) and Web3.is_address(value)


# Field name -> predicate, in the order errors are reported
TX_SCHEMA: dict[str, Callable[[DecodedTransaction], bool]] = {
    "nonce": lambda tx: is_integer(tx.nonce) and tx.nonce >= 0,
    "gasPrice": lambda tx: tx.gas_price is None or _is_quantity(tx.gas_price),
    "gasLimit": lambda tx: _is_quantity(tx.gas_limit),
    "to": lambda tx: _is_address(tx.to),
    "value": lambda tx: _is_quantity(tx.value),
    "data": lambda tx: is_hex_string(tx.data) and len(tx.data) % 2 == 0,
    "chainId": lambda tx: is_integer(tx.chain_id),
    "v": lambda tx: is_integer(tx.v),
    "r": lambda tx: _is_quantity(tx.r),
    "s": lambda tx: _is_quantity(tx.s),
    "from": lambda tx: _is_address(tx.sender),
    "hash": lambda tx: is_hex_string(tx.hash),
}


def validate(tx: DecodedTransaction) -> list[str]:
    """Return the names of every field that fails its schema predicate."""
    return [name for name, predicate in TX_SCHEMA.items() if not predicate(tx)]


class TransactionDecoder:
    """Decodes raw signed transactions into validated DecodedTransaction objects."""

    def decode(self, raw_transaction: str) -> DecodedTransaction:
        """
        Decode and validate a raw signed transaction.

        Args:
            raw_transaction: 0x-prefixed hex encoding of the signed transaction

        Returns:
            The decoded transaction

        Raises:
            SchemaError: If the blob cannot be decoded or any field is malformed
        """
        logger.debug(f"rawSignedTx: {raw_transaction}")

        tx = self.parse(raw_transaction)
        if errors := validate(tx):
            sender = tx.sender if "from" not in errors else None
            logger.info(f"Transaction {tx.hash} failed validation: {', '.join(errors)}")
            raise SchemaError(errors, sender=sender)

        logger.debug(f"Tx: {tx.to_dict()}")
        return tx

    def parse(self, raw_transaction: str) -> DecodedTransaction:
        """
        Decode the envelope without running the schema predicates.

        Raises:
            SchemaError: With field 'rawTransaction' if the envelope is unreadable
        """
        if not is_hex_string(raw_transaction) or len(raw_transaction) <= 2:
            raise SchemaError(["rawTransaction"])

        raw_bytes = HexBytes(raw_transaction)
        try:
            match raw_bytes[0]:
                case first if first >= 0xc0:
                    fields = self._decode_legacy(raw_bytes)
                case 0x01:
                    fields = self._decode_access_list(raw_bytes)
                case 0x02:
                    fields = self._decode_dynamic_fee(raw_bytes)
                case _:
                    raise ValueError(f"Unsupported transaction type {raw_bytes[0]:#04x}")
        except (rlp.DecodingError, ValueError, TypeError) as e:
            logger.info(f"Unreadable transaction envelope: {e}")
            raise SchemaError(["rawTransaction"]) from e

        return DecodedTransaction(
            sender=self._recover_sender(raw_bytes),
            hash=Web3.to_hex(Web3.keccak(raw_bytes)),
            **fields
        )

    @staticmethod
    def _recover_sender(raw_bytes: bytes) -> str | None:
        try:
            return Account.recover_transaction(raw_bytes)
        except Exception as e:
            logger.info(f"Could not recover sender: {e}")
            return None

    @staticmethod
    def _items(payload: bytes, expected: int) -> list[Any]:
        items = rlp.decode(payload)
        if not isinstance(items, list) or len(items) != expected:
            raise ValueError(f"Expected {expected} RLP items")
        return items

    @staticmethod
    def _address(value: bytes) -> str | None:
        if not value:
            return None
        if len(value) == 20:
            return Web3.to_checksum_address(value)
        return Web3.to_hex(value)

    @staticmethod
    def _quantity(value: bytes) -> str:
        return hex(big_endian_to_int(value))

    def _common(
        self,
        nonce: bytes,
        gas: bytes,
        to: bytes,
        value: bytes,
        data: bytes,
        r: bytes,
        s: bytes
    ) -> dict[str, Any]:
        return {
            "nonce": big_endian_to_int(nonce),
            "gas_limit": self._quantity(gas),
            "to": self._address(to),
            "value": self._quantity(value),
            "data": Web3.to_hex(data),
            "r": self._quantity(r),
            "s": self._quantity(s),
        }

    def _decode_legacy(self, raw_bytes: bytes) -> dict[str, Any]:
        nonce, gas_price, gas, to, value, data, v, r, s = self._items(raw_bytes, 9)
        v_int = big_endian_to_int(v)
        return {
            "tx_type": LEGACY_TX_TYPE,
            "gas_price": self._quantity(gas_price),
            "max_fee_per_gas": None,
            "max_priority_fee_per_gas": None,
            # Pre-EIP-155 signatures (v of 27/28) carry no chain ID
            "chain_id": (v_int - 35) // 2 if v_int >= 35 else 0,
            "v": v_int,
            **self._common(nonce, gas, to, value, data, r, s),
        }

    def _decode_access_list(self, raw_bytes: bytes) -> dict[str, Any]:
        (chain_id, nonce, gas_price, gas, to, value, data,
         _access_list, y_parity, r, s) = self._items(raw_bytes[1:], 11)
        return {
            "tx_type": ACCESS_LIST_TX_TYPE,
            "gas_price": self._quantity(gas_price),
            "max_fee_per_gas": None,
            "max_priority_fee_per_gas": None,
            "chain_id": big_endian_to_int(chain_id),
            "v": big_endian_to_int(y_parity),
            **self._common(nonce, gas, to, value, data, r, s),
        }

    def _decode_dynamic_fee(self, raw_bytes: bytes) -> dict[str, Any]:
        (chain_id, nonce, max_priority_fee, max_fee, gas, to, value, data,
         _access_list, y_parity, r, s) = self._items(raw_bytes[1:], 12)
        return {
            "tx_type": DYNAMIC_FEE_TX_TYPE,
            "gas_price": None,
            "max_fee_per_gas": self._quantity(max_fee),
            "max_priority_fee_per_gas": self._quantity(max_priority_fee),
            "chain_id": big_endian_to_int(chain_id),
            "v": big_endian_to_int(y_parity),
            **self._common(nonce, gas, to, value, data, r, s),
        }

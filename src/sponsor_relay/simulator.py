#!/usr/bin/env python3
"""Eligibility simulation against the sponsor contract.

The sponsor entry point reverts when it declines a transaction, with a JSON
reason of the form {"err": ..., "logs": [...]}. The logs in that payload are
what the dry run would have emitted; a positive Transfer of the designated
asset in those logs still qualifies.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractLogicError

from .models import EligibilityVerdict, Eligible, Ineligible, InfrastructureError

if TYPE_CHECKING:
    from .utils.contract_utility import ContractUtility

# Get logger for this module
logger = logging.getLogger(__name__)

# Warms the state the sponsor precompile reads during the dry run
CALL_LOGS_ACCESS_LIST: list[dict[str, Any]] = [{
    "address": "0x5555555555555555555555555555555555555555",
    "storageKeys": ["0x" + "55" * 32],
}]

TRANSFER_TOPIC = Web3.to_hex(Web3.keccak(text="Transfer(address,address,uint256)"))

_REVERT_PREFIX = "execution reverted"


def _to_hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return str(value)


def revert_reason(error: ContractLogicError) -> str:
    """Extract the revert reason string from a ContractLogicError."""
    message = getattr(error, "message", None) or str(error)
    if message.startswith(_REVERT_PREFIX):
        message = message[len(_REVERT_PREFIX):].lstrip(":").strip()
    return message


def parse_transfer_amount(log: Mapping[str, Any]) -> int | None:
    """Decode the amount of an ERC-20 Transfer log.

    Transfer(address indexed from, address indexed to, uint256 value) keeps
    the amount in the first 32 bytes of data.

    Returns:
        The transferred amount, or None if the log is not a Transfer
    """
    topics = log.get("topics") or []
    if len(topics) != 3 or _to_hex(topics[0]).lower() != TRANSFER_TOPIC:
        return None

    data = HexBytes(log.get("data") or b"")
    if len(data) < 32:
        return None
    return int.from_bytes(data[:32], "big")


class EligibilitySimulator:
    """Dry-runs raw transactions through the sponsor contract and classifies them."""

    def __init__(self, contract_util: "ContractUtility", asset_contract_address: str) -> None:
        """
        Initialize the EligibilitySimulator.

        Args:
            contract_util: Ledger access used for the dry run
            asset_contract_address: ERC-20 whose positive transfers qualify
        """
        self.contract_util = contract_util
        self.asset_contract_address = Web3.to_checksum_address(asset_contract_address)

    def has_qualifying_transfer(self, logs: Iterable[Mapping[str, Any]]) -> bool:
        """
        Check for a positive Transfer emitted by the asset contract.

        Logs from any other address are ignored, as are logs that cannot be
        decoded.

        Args:
            logs: Logs from the revert payload

        Returns:
            True if at least one qualifying Transfer is present
        """
        for log in logs:
            if not isinstance(log, Mapping):
                continue
            if str(log.get("address", "")).lower() != self.asset_contract_address.lower():
                continue

            try:
                amount = parse_transfer_amount(log)
            except (TypeError, ValueError) as e:
                logger.debug(f"Skipping undecodable asset log: {e}")
                continue

            if amount is not None and amount > 0:
                return True
        return False

    def classify_revert(self, reason: str) -> EligibilityVerdict:
        """
        Classify a revert reason from the sponsor contract.

        Args:
            reason: Revert reason string

        Returns:
            Ineligible or Eligible for a structured payload, InfrastructureError
            when the payload is not a JSON object
        """
        try:
            payload = json.loads(reason)
        except (TypeError, ValueError, RecursionError):
            return InfrastructureError(detail=reason)

        if not isinstance(payload, dict):
            return InfrastructureError(detail=reason)

        logs = payload.get("logs")
        if payload.get("err") or not logs or not isinstance(logs, list):
            return Ineligible(reason=reason)
        if not self.has_qualifying_transfer(logs):
            return Ineligible(reason=reason)
        return Eligible()

    async def simulate(self, raw_transaction: str) -> EligibilityVerdict:
        """
        Dry-run the raw transaction through the sponsor entry point.

        A clean return is Eligible; the sponsor contract reverts when it
        declines. Never raises.

        Args:
            raw_transaction: Raw signed transaction that passed schema validation

        Returns:
            Eligible, Ineligible or InfrastructureError
        """
        try:
            await self.contract_util.simulate_sponsor(raw_transaction, CALL_LOGS_ACCESS_LIST)
        except ContractLogicError as e:
            reason = revert_reason(e)
            verdict = self.classify_revert(reason)
            match verdict:
                case Ineligible():
                    logger.info(f"Sponsor declined transaction: {reason}")
                case InfrastructureError():
                    logger.error(f"Unparseable sponsor revert: {reason}", exc_info=True)
                case Eligible():
                    logger.info("Sponsor revert payload carries a qualifying transfer")
            return verdict
        except Exception as e:
            logger.error(f"Sponsor simulation failed: {e}", exc_info=True)
            return InfrastructureError(detail=f"{type(e).__name__}: {e}")

        return Eligible()

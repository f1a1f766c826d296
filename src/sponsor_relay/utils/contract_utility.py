import asyncio
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder
from web3.types import TxReceipt


class ContractUtility:
    """
    Ledger access for the relayer: sponsor contract calls, nonces and balances.

    Every call is bounded by a timeout. Can be used in two modes:
    1. Full mode: Initialize with a secret to sign and send sponsor transactions
    2. Read-only mode: No secret, only simulation and balance queries
    """

    def __init__(
        self,
        rpc_url: str,
        sponsor_address: str,
        secret: str = "",
        request_timeout: float = 30,
        confirmation_timeout: float = 120
    ) -> None:
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: RPC URL for the network (required)
            sponsor_address: Address of the contract exposing sponsor(bytes)
            secret: Relayer private key (optional - if not provided, read-only mode)
            request_timeout: Seconds allowed for a single RPC round trip
            confirmation_timeout: Seconds allowed for a receipt to appear
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")

        self.rpc_url = rpc_url
        self.request_timeout = request_timeout
        self.confirmation_timeout = confirmation_timeout
        self.account: LocalAccount | None = None

        self.w3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url))

        # Add signing middleware only if secret is provided
        if secret:
            self._add_signing_middleware(secret)

        self.sponsor = self.w3.eth.contract(
            address=Web3.to_checksum_address(sponsor_address),
            abi=self.get_contract_abi("Sponsor")
        )

    def _add_signing_middleware(self, secret: str) -> None:
        """
        Add signing middleware to the existing Web3 instance.

        Args:
            secret: Private key for signing transactions
        """
        if not secret:
            raise ValueError("Private key is required for signing transactions")

        account: LocalAccount = Account.from_key(secret)
        self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
        self.w3.eth.default_account = account.address
        self.account = account

    @property
    def address(self) -> str:
        """Relayer address."""
        if self.account is None:
            raise ValueError("No relayer account configured (read-only mode)")
        return self.account.address

    async def _bounded(self, awaitable: Any, timeout: float | None = None) -> Any:
        return await asyncio.wait_for(awaitable, timeout=timeout or self.request_timeout)

    async def simulate_sponsor(self, raw_transaction: str, access_list: list[dict[str, Any]]) -> Any:
        """Dry-run sponsor(rawTransaction) with the given access list.

        Raises whatever the node raises; a revert surfaces as ContractLogicError.
        """
        call = self.sponsor.functions.sponsor(HexBytes(raw_transaction))
        return await self._bounded(call.call({"accessList": access_list}))

    async def send_sponsor(self, raw_transaction: str) -> str:
        """Sign and broadcast sponsor(rawTransaction) from the relayer account.

        Returns:
            Transaction hash (0x-prefixed)
        """
        call = self.sponsor.functions.sponsor(HexBytes(raw_transaction))
        tx_hash = await self._bounded(call.transact({"from": self.address}))
        return Web3.to_hex(tx_hash)

    async def wait_for_confirmation(self, tx_hash: str) -> TxReceipt:
        """Wait for the receipt of a relayer transaction (one confirmation)."""
        return await self._bounded(
            self.w3.eth.wait_for_transaction_receipt(
                HexBytes(tx_hash),
                timeout=self.confirmation_timeout
            ),
            timeout=self.confirmation_timeout
        )

    async def pending_nonce(self) -> int:
        """Relayer nonce including pending transactions."""
        return await self._bounded(
            self.w3.eth.get_transaction_count(self.address, "pending")
        )

    async def native_balance(self, address: str) -> Decimal:
        """Native balance of an address, in ether."""
        balance = await self._bounded(
            self.w3.eth.get_balance(Web3.to_checksum_address(address))
        )
        return Decimal(Web3.from_wei(balance, "ether"))

    def get_contract_abi(self, contract_name: str) -> list[dict[str, Any]]:
        """Fetches ABI of the given contract from the contracts folder.

        Args:
            contract_name: Name of the contract (without .json extension)

        Returns:
            List of ABI dictionaries for the contract

        Raises:
            FileNotFoundError: If the contract file doesn't exist
            json.JSONDecodeError: If the contract file is invalid JSON
        """
        contract_path: Path = (
            Path(__file__).parent.parent
            / "contracts"
            / f"{contract_name}.json"
        ).resolve()

        with contract_path.open() as file:
            contract_data: dict[str, Any] = json.load(file)

        return contract_data["abi"]

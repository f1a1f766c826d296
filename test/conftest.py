"""Shared fixtures: signed transactions and ledger doubles."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from web3 import Web3

from sponsor_relay.submission_guard import SubmissionGuard

USER_KEY = "0x" + "2" * 64
RELAYER_KEY = "0x" + "1" * 64
ASSET_ADDRESS = Web3.to_checksum_address("0x742d35cc6634c0532925a3b844bc9e7595f0beb7")
SPONSOR_ADDRESS = Web3.to_checksum_address("0x85bfe05492afc3d04ff3b2ca6771acf6f853d90d")
CHAIN_ID = 43114


def sign(tx: dict, key: str = USER_KEY) -> str:
    """Sign a transaction dict and return the raw transaction as 0x-hex."""
    signed = Account.sign_transaction(tx, key)
    return Web3.to_hex(signed.raw_transaction)


@pytest.fixture(autouse=True)
def reset_submission_locks():
    """Locks bind to the running loop; start every test with a fresh registry."""
    SubmissionGuard._locks.clear()
    yield
    SubmissionGuard._locks.clear()


@pytest.fixture
def user_address():
    return Account.from_key(USER_KEY).address


@pytest.fixture
def relayer_address():
    return Account.from_key(RELAYER_KEY).address


@pytest.fixture
def legacy_raw_tx():
    """EIP-155 legacy transfer of the asset token."""
    return sign({
        "nonce": 7,
        "gasPrice": 25_000_000_000,
        "gas": 60_000,
        "to": ASSET_ADDRESS,
        "value": 0,
        "data": "0xa9059cbb" + "00" * 12 + "11" * 20 + "00" * 31 + "64",
        "chainId": CHAIN_ID,
    })


@pytest.fixture
def dynamic_fee_raw_tx():
    """EIP-1559 transaction with a native value."""
    return sign({
        "type": 2,
        "nonce": 3,
        "maxFeePerGas": 30_000_000_000,
        "maxPriorityFeePerGas": 1_500_000_000,
        "gas": 21_000,
        "to": SPONSOR_ADDRESS,
        "value": 10**18,
        "data": "0x",
        "chainId": CHAIN_ID,
    })


@pytest.fixture
def contract_creation_raw_tx():
    """Legacy transaction without a destination."""
    return sign({
        "nonce": 0,
        "gasPrice": 25_000_000_000,
        "gas": 500_000,
        "to": "",
        "value": 0,
        "data": "0x6080604052",
        "chainId": CHAIN_ID,
    })


@pytest.fixture
def mock_contract_util(relayer_address):
    """ContractUtility double with a relayer nonce that advances by one per send."""
    mock = MagicMock()
    mock.address = relayer_address
    mock.simulate_sponsor = AsyncMock(return_value=[])
    mock.pending_nonce = AsyncMock(side_effect=[5, 6])
    mock.send_sponsor = AsyncMock(return_value="0x" + "ab" * 32)
    mock.wait_for_confirmation = AsyncMock(return_value={"status": 1, "blockNumber": 100})
    mock.native_balance = AsyncMock(return_value=Decimal("10"))
    return mock

#!/usr/bin/env python3
"""Configuration management for the sponsor relay.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with sensible defaults
where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import ClassVar
from urllib.parse import urlparse

from web3 import Web3

# Get logger for this module
logger = logging.getLogger(__name__)


def _checksum(value: str, label: str, env_name: str) -> str:
    """Validate an address and return its checksummed form."""
    if not value:
        raise ValueError(f"{label} is required ({env_name})")
    if not Web3.is_address(value):
        raise ValueError(f"Invalid {label.lower()}: {value}")
    return Web3.to_checksum_address(value)


@dataclass(frozen=True, slots=True)
class LedgerConfig:
    """Configuration for the ledger node and the relayer identity.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint
        sponsor_contract_address: Contract exposing the sponsor(bytes) entry point
        asset_contract_address: ERC-20 whose Transfer events qualify for sponsorship
        private_key: Relayer signing key
        request_timeout: Upper bound for a single RPC round trip, in seconds
        confirmation_timeout: Upper bound for the confirmation wait, in seconds
    """

    rpc_url: str
    sponsor_contract_address: str
    asset_contract_address: str
    private_key: str = field(repr=False)
    request_timeout: int = 30
    confirmation_timeout: int = 120

    def __post_init__(self) -> None:
        """Validate ledger configuration."""
        if not self.rpc_url:
            raise ValueError("RPC URL is required (RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http or https"
            )

        # Use object.__setattr__ since dataclass is frozen
        object.__setattr__(
            self,
            'sponsor_contract_address',
            _checksum(self.sponsor_contract_address, "Sponsor contract address", "SPONSOR_CONTRACT_ADDRESS")
        )
        object.__setattr__(
            self,
            'asset_contract_address',
            _checksum(self.asset_contract_address, "Asset contract address", "ASSET_CONTRACT_ADDRESS")
        )

        if not self.private_key:
            raise ValueError("Relayer private key is required (PRIVATE_KEY)")

        key = self.private_key.removeprefix('0x')
        if len(key) != 64:
            raise ValueError(
                f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
            )
        try:
            int(key, 16)
        except ValueError:
            raise ValueError(
                "Invalid private key format. Must be hexadecimal"
            ) from None

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")

        if self.confirmation_timeout <= 0:
            raise ValueError(
                f"Confirmation timeout must be positive, got {self.confirmation_timeout}"
            )
        if self.confirmation_timeout > 600:
            raise ValueError(
                f"Confirmation timeout too long (max 600s), got {self.confirmation_timeout}"
            )


@dataclass(frozen=True, slots=True)
class AlertConfig:
    """Configuration for relayer balance alerts.

    Attributes:
        minimum_fee_alert: Balance (in ether) at or below which an alert fires
        fetch_balance_tx_times: Sampling interval, in processed transactions per signer
        telegram_bot_token: Bot token for the Telegram channel (optional)
        telegram_chat_id: Chat receiving the alerts (optional)
    """

    minimum_fee_alert: Decimal = Decimal("1")
    fetch_balance_tx_times: int = 100
    telegram_bot_token: str | None = field(default=None, repr=False)
    telegram_chat_id: str | None = None

    def __post_init__(self) -> None:
        """Validate alert configuration."""
        if self.minimum_fee_alert < 0:
            raise ValueError(
                f"Minimum fee alert must be non-negative, got {self.minimum_fee_alert}"
            )
        if self.fetch_balance_tx_times <= 0:
            raise ValueError(
                f"Balance sampling interval must be positive, got {self.fetch_balance_tx_times}"
            )
        if bool(self.telegram_bot_token) != bool(self.telegram_chat_id):
            raise ValueError(
                "TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set together"
            )

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Configuration for the transaction log and the counter store."""

    database_path: str = "data/sponsor_relay.db"
    redis_url: str | None = None
    side_channel_timeout: int = 5

    def __post_init__(self) -> None:
        """Validate storage configuration."""
        if not self.database_path:
            raise ValueError("Database path is required (DATABASE_PATH)")
        if self.redis_url:
            scheme = urlparse(self.redis_url).scheme
            if scheme not in ('redis', 'rediss', 'unix'):
                raise ValueError(
                    f"Invalid Redis URL scheme: {scheme}. Expected redis, rediss, or unix"
                )
        if self.side_channel_timeout <= 0:
            raise ValueError(
                f"Side channel timeout must be positive, got {self.side_channel_timeout}"
            )
        if self.side_channel_timeout > 60:
            raise ValueError(
                f"Side channel timeout too long (max 60s), got {self.side_channel_timeout}"
            )


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Configuration for the HTTP server."""

    host: str = "0.0.0.0"
    port: int = 8080

    def __post_init__(self) -> None:
        """Validate server configuration."""
        if not 0 < self.port < 65536:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")


@dataclass(frozen=True, slots=True)
class RelayConfig:
    """Main configuration for the sponsor relay.

    Attributes:
        ledger: Node, contracts and relayer identity
        alerts: Balance alert policy and channel
        storage: Transaction log and counter store locations
        server: HTTP bind address
    """

    ledger: LedgerConfig
    alerts: AlertConfig = field(default_factory=AlertConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    DEFAULT_RPC_URL: ClassVar[str] = "http://localhost:9650/ext/bc/C/rpc"

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Load configuration from environment variables.

        Returns:
            RelayConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        sponsor_contract = os.environ.get("SPONSOR_CONTRACT_ADDRESS", "")
        if not sponsor_contract:
            raise ValueError(
                "SPONSOR_CONTRACT_ADDRESS environment variable is required. "
                "This should be the contract exposing sponsor(bytes)."
            )

        asset_contract = os.environ.get("ASSET_CONTRACT_ADDRESS", "")
        if not asset_contract:
            raise ValueError(
                "ASSET_CONTRACT_ADDRESS environment variable is required. "
                "This should be the ERC-20 contract whose transfers are sponsored."
            )

        private_key = os.environ.get("PRIVATE_KEY", "")
        if not private_key:
            raise ValueError(
                "PRIVATE_KEY environment variable is required. "
                "This is the funded relayer key that pays the fees."
            )

        ledger_config = LedgerConfig(
            rpc_url=os.environ.get("RPC_URL", cls.DEFAULT_RPC_URL),
            sponsor_contract_address=sponsor_contract,
            asset_contract_address=asset_contract,
            private_key=private_key,
            request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30")),
            confirmation_timeout=int(os.environ.get("CONFIRMATION_TIMEOUT", "120"))
        )

        try:
            minimum_fee_alert = Decimal(os.environ.get("MINIMUM_FEE_ALERT", "1"))
        except InvalidOperation:
            raise ValueError(
                f"Invalid MINIMUM_FEE_ALERT: {os.environ.get('MINIMUM_FEE_ALERT')}"
            ) from None

        alert_config = AlertConfig(
            minimum_fee_alert=minimum_fee_alert,
            fetch_balance_tx_times=int(os.environ.get("FETCH_BALANCE_TX_TIMES", "100")),
            telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN") or None,
            telegram_chat_id=os.environ.get("TELEGRAM_CHAT_ID") or None
        )

        storage_config = StorageConfig(
            database_path=os.environ.get("DATABASE_PATH", "data/sponsor_relay.db"),
            redis_url=os.environ.get("REDIS_URL") or None,
            side_channel_timeout=int(os.environ.get("SIDE_CHANNEL_TIMEOUT", "5"))
        )

        server_config = ServerConfig(
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "8080"))
        )

        return cls(
            ledger=ledger_config,
            alerts=alert_config,
            storage=storage_config,
            server=server_config
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Sponsor Relay Configuration")
        logger.info("=" * 60)

        logger.info("Ledger:")
        logger.info(f"  RPC URL: {self.ledger.rpc_url}")
        logger.info(f"  Sponsor Contract: {self.ledger.sponsor_contract_address}")
        logger.info(f"  Asset Contract: {self.ledger.asset_contract_address}")
        logger.info("  Relayer Key: [CONFIGURED]")
        logger.info(f"  Request Timeout: {self.ledger.request_timeout} seconds")
        logger.info(f"  Confirmation Timeout: {self.ledger.confirmation_timeout} seconds")

        logger.info("Alerts:")
        logger.info(f"  Minimum Fee Alert: {self.alerts.minimum_fee_alert}")
        logger.info(f"  Balance Sampling Interval: {self.alerts.fetch_balance_tx_times} txs")
        logger.info(f"  Telegram: {'[CONFIGURED]' if self.alerts.telegram_enabled else '[NOT SET]'}")

        logger.info("Storage:")
        logger.info(f"  Database: {self.storage.database_path}")
        logger.info(f"  Counters: {'Redis' if self.storage.redis_url else 'in-memory'}")
        logger.info(f"  Side Channel Timeout: {self.storage.side_channel_timeout} seconds")

        logger.info("Server:")
        logger.info(f"  Listen: {self.server.host}:{self.server.port}")

        logger.info("=" * 60)

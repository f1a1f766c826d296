import asyncio
import logging
import time
from typing import Any

from web3 import Web3

from .alerts import BalanceAlertThrottler, InMemoryCounterStore, RedisCounterStore
from .config import RelayConfig
from .decoder import TransactionDecoder
from .errors import (
    IneligibleError,
    RelayError,
    SchemaError,
    SimulationInfrastructureError,
)
from .models import (
    DecodedTransaction,
    Eligible,
    Ineligible,
    InfrastructureError,
    RelayOutcome,
    TxStatus,
)
from .recorder import OutcomeRecorder
from .simulator import EligibilitySimulator
from .storage import SqliteTransactionLog, TransactionLog
from .submission_guard import SubmissionGuard
from .utils.contract_utility import ContractUtility
from .utils.telegram_utility import LogNotifier, TelegramUtility

# Get logger for this module
logger = logging.getLogger(__name__)

ALL_STATUSES = ",".join(status.value for status in TxStatus)


def parse_statuses(status: str) -> list[TxStatus]:
    """Parse a comma-separated status filter.

    Raises:
        ValueError: If any entry is not a known status
    """
    statuses: list[TxStatus] = []
    for part in status.split(","):
        if not (name := part.strip().upper()):
            continue
        try:
            statuses.append(TxStatus(name))
        except ValueError:
            raise ValueError(f"Invalid status: {part.strip()}") from None
    return statuses


class SponsorRelay:
    """
    Transaction sponsorship relay.

    Decodes a raw signed transaction, dry-runs it through the sponsor
    contract, submits eligible ones from the relayer account and records
    exactly one terminal status per processed transaction.
    """

    def __init__(
        self,
        decoder: TransactionDecoder,
        simulator: EligibilitySimulator,
        guard: SubmissionGuard,
        recorder: OutcomeRecorder | None = None,
        throttler: BalanceAlertThrottler | None = None,
        contract_util: ContractUtility | None = None,
        transaction_log: TransactionLog | None = None,
        side_channel_timeout: float = 5
    ) -> None:
        """
        Initialize the SponsorRelay.

        :param decoder: Raw transaction decoder
        :param simulator: Sponsor eligibility simulator
        :param guard: Serialized on-chain submitter
        :param recorder: Outcome recorder (no persistence when None)
        :param throttler: Balance alert throttler (no alerts when None)
        :param contract_util: Ledger access for balance queries
        :param transaction_log: Transaction log for history queries
        :param side_channel_timeout: Seconds allowed for each persistence or alert step
        """
        self.decoder = decoder
        self.simulator = simulator
        self.guard = guard
        self.recorder = recorder
        self.throttler = throttler
        self.contract_util = contract_util
        self.transaction_log = transaction_log
        self.side_channel_timeout = side_channel_timeout

    @classmethod
    def from_config(cls, config: RelayConfig) -> "SponsorRelay":
        """
        Wire every component from configuration.

        The SQLite log still needs start() before use.

        :param config: Relay configuration
        :return: SponsorRelay instance
        """
        config.log_config()

        contract_util = ContractUtility(
            rpc_url=config.ledger.rpc_url,
            sponsor_address=config.ledger.sponsor_contract_address,
            secret=config.ledger.private_key,
            request_timeout=config.ledger.request_timeout,
            confirmation_timeout=config.ledger.confirmation_timeout
        )

        transaction_log = SqliteTransactionLog(config.storage.database_path)

        if config.storage.redis_url:
            counters: RedisCounterStore | InMemoryCounterStore = RedisCounterStore(
                config.storage.redis_url, timeout=config.storage.side_channel_timeout
            )
        else:
            logger.warning("REDIS_URL not set, balance sampling counters are process-local")
            counters = InMemoryCounterStore()

        if config.alerts.telegram_enabled:
            notifier: TelegramUtility | LogNotifier = TelegramUtility(
                bot_token=config.alerts.telegram_bot_token,
                chat_id=config.alerts.telegram_chat_id
            )
        else:
            notifier = LogNotifier()

        relay = cls(
            decoder=TransactionDecoder(),
            simulator=EligibilitySimulator(contract_util, config.ledger.asset_contract_address),
            guard=SubmissionGuard(contract_util),
            recorder=OutcomeRecorder(transaction_log),
            throttler=BalanceAlertThrottler(
                counters=counters,
                contract_util=contract_util,
                notifier=notifier,
                relayer_address=contract_util.address,
                sampling_interval=config.alerts.fetch_balance_tx_times,
                minimum_balance=config.alerts.minimum_fee_alert
            ),
            contract_util=contract_util,
            transaction_log=transaction_log,
            side_channel_timeout=config.storage.side_channel_timeout
        )
        logger.info(f"SponsorRelay initialized (relayer: {contract_util.address})")
        return relay

    @property
    def relayer_address(self) -> str | None:
        return self.guard.relayer_address

    async def start(self) -> None:
        """Open the transaction log."""
        if isinstance(self.transaction_log, SqliteTransactionLog):
            await self.transaction_log.initialize()

    async def close(self) -> None:
        """Release the transaction log and counter store connections."""
        resources: list[Any] = [self.transaction_log]
        if self.throttler is not None:
            resources.append(self.throttler.counters)

        for resource in resources:
            if not hasattr(resource, "close"):
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Error closing {type(resource).__name__}: {e}")

    async def relay(self, raw_transaction: str) -> tuple[bool, bool]:
        """
        Process one raw signed transaction.

        :param raw_transaction: 0x-prefixed raw signed transaction
        :return: (schema_valid, sponsored)
        """
        outcome = await self.process(raw_transaction)
        return outcome.as_tuple()

    async def process(self, raw_transaction: str) -> RelayOutcome:
        """
        Run the full pipeline for one raw transaction. Never raises.

        :param raw_transaction: 0x-prefixed raw signed transaction
        :return: RelayOutcome with the terminal status
        """
        start = time.monotonic()

        try:
            tx = self.decoder.decode(raw_transaction)
        except SchemaError as e:
            outcome = RelayOutcome(
                sender=e.sender,
                schema_valid=False,
                sponsored=False,
                status=TxStatus.ERROR,
                error=e
            )
            await self._record(outcome, raw_transaction)
            logger.info(f"Rejected malformed transaction: {e}")
            return outcome

        outcome = await self._evaluate(tx, raw_transaction)

        await self._record(outcome, raw_transaction)
        await self._observe(tx.sender)

        logger.info(
            f"Processed {tx.hash} from {tx.sender}: {outcome.status.value} "
            f"in {time.monotonic() - start:.2f}s"
        )
        return outcome

    async def _evaluate(self, tx: DecodedTransaction, raw_transaction: str) -> RelayOutcome:
        verdict = await self.simulator.simulate(raw_transaction)

        match verdict:
            case Ineligible(reason=reason):
                return RelayOutcome(
                    sender=tx.sender,
                    schema_valid=True,
                    sponsored=False,
                    status=TxStatus.DISCARDED,
                    error=IneligibleError(reason)
                )
            case InfrastructureError(detail=detail):
                return RelayOutcome(
                    sender=tx.sender,
                    schema_valid=True,
                    sponsored=False,
                    status=TxStatus.ERROR,
                    error=SimulationInfrastructureError(detail)
                )
            case Eligible():
                pass

        submission = await self.guard.submit(tx, raw_transaction)
        if not submission.confirmed:
            return RelayOutcome(
                sender=tx.sender,
                schema_valid=True,
                sponsored=False,
                status=TxStatus.ERROR,
                error=submission.error,
                tx_hash=submission.tx_hash
            )

        return RelayOutcome(
            sender=tx.sender,
            schema_valid=True,
            sponsored=True,
            status=TxStatus.SENT,
            nonce_consistent=submission.nonce_consistent,
            tx_hash=submission.tx_hash
        )

    async def _record(self, outcome: RelayOutcome, raw_transaction: str) -> None:
        if self.recorder is None:
            return
        error = str(outcome.error) if outcome.error is not None else None
        try:
            await asyncio.wait_for(
                self.recorder.record(outcome.sender, raw_transaction, outcome.status, error),
                timeout=self.side_channel_timeout
            )
        except Exception as e:
            logger.error(f"Failed to record outcome for {outcome.sender}: {e!r}", exc_info=True)

    async def _observe(self, sender: str | None) -> None:
        if self.throttler is None or not sender:
            return
        try:
            await asyncio.wait_for(self.throttler.observe(sender), timeout=self.side_channel_timeout)
        except Exception as e:
            logger.error(f"Balance alert check failed: {e!r}", exc_info=True)

    async def balance_of(self, address: str) -> str:
        """
        Native balance of an address, in ether.

        :param address: Account address
        :return: Balance as a decimal string
        :raises ValueError: If the address is invalid
        """
        if not Web3.is_address(address):
            raise ValueError(f"Invalid address: {address}")
        if self.contract_util is None:
            raise RelayError("Ledger access not configured")

        balance = await self.contract_util.native_balance(address)
        return str(balance)

    async def history(
        self,
        address: str,
        status: str = ALL_STATUSES,
        before: int = 0,
        limit: int = 20
    ) -> list[dict[str, Any]]:
        """
        Recorded relay attempts for a sender, newest first.

        :param address: Sender address
        :param status: Comma-separated status filter
        :param before: Only records strictly older than this epoch-ms time (0 means now)
        :param limit: Maximum number of records
        :return: List of {"tx", "status", "error", "created_at"} dicts
        :raises ValueError: If the address or a status is invalid
        """
        if not Web3.is_address(address):
            raise ValueError(f"Invalid address: {address}")
        if self.transaction_log is None:
            raise RelayError("Transaction log not configured")

        statuses = parse_statuses(status)
        if before <= 0:
            before = int(time.time() * 1000) + 1

        records = await self.transaction_log.query(address, statuses, before, limit)

        results: list[dict[str, Any]] = []
        for record in records:
            try:
                tx: dict[str, Any] | None = self.decoder.parse(record.raw_transaction).to_dict()
            except SchemaError:
                tx = None
            entry = record.to_dict()
            results.append({
                "tx": tx,
                "status": entry["status"],
                "error": entry["error"],
                "created_at": entry["created_at"],
            })
        return results

#!/usr/bin/env python3
"""Tests for the SQLite transaction log and the outcome recorder."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from sponsor_relay.errors import PersistenceError
from sponsor_relay.models import TransactionRecord, TxStatus
from sponsor_relay.recorder import OutcomeRecorder
from sponsor_relay.storage import SqliteTransactionLog

SENDER = "0x" + "Ab" * 20


def record(created_at: int, status: TxStatus = TxStatus.SENT, sender: str = SENDER) -> TransactionRecord:
    return TransactionRecord(
        sender=sender,
        raw_transaction=f"0x{created_at:04x}",
        status=status,
        error=None if status is TxStatus.SENT else "boom",
        created_at=created_at,
    )


@pytest_asyncio.fixture
async def log(tmp_path):
    storage = SqliteTransactionLog(str(tmp_path / "data" / "relay.db"))
    await storage.initialize()
    yield storage
    await storage.close()


class TestSqliteTransactionLog:
    """Tests for SqliteTransactionLog."""

    def test_creates_parent_directory(self, tmp_path):
        SqliteTransactionLog(str(tmp_path / "nested" / "dir" / "relay.db"))
        assert (tmp_path / "nested" / "dir").is_dir()

    @pytest.mark.asyncio
    async def test_append_and_query(self, log):
        await log.append(record(1000, TxStatus.ERROR))

        records = await log.query(SENDER, [TxStatus.ERROR], before=2000, limit=10)

        assert len(records) == 1
        assert records[0].sender == SENDER.lower()
        assert records[0].status is TxStatus.ERROR
        assert records[0].error == "boom"
        assert records[0].raw_transaction == "0x03e8"
        assert records[0].to_dict() == {
            "sender": SENDER.lower(),
            "raw_transaction": "0x03e8",
            "status": "ERROR",
            "error": "boom",
            "created_at": 1000,
        }

    @pytest.mark.asyncio
    async def test_newest_first_with_limit(self, log):
        for created_at in (100, 300, 200, 400):
            await log.append(record(created_at))

        records = await log.query(SENDER, [TxStatus.SENT], before=1000, limit=3)

        assert [r.created_at for r in records] == [400, 300, 200]

    @pytest.mark.asyncio
    async def test_before_is_exclusive(self, log):
        for created_at in (100, 200, 300):
            await log.append(record(created_at))

        records = await log.query(SENDER, [TxStatus.SENT], before=300, limit=10)

        assert [r.created_at for r in records] == [200, 100]

    @pytest.mark.asyncio
    async def test_status_filter(self, log):
        await log.append(record(100, TxStatus.SENT))
        await log.append(record(200, TxStatus.DISCARDED))
        await log.append(record(300, TxStatus.ERROR))

        records = await log.query(SENDER, [TxStatus.SENT, TxStatus.ERROR], before=1000, limit=10)

        assert [r.status for r in records] == [TxStatus.ERROR, TxStatus.SENT]
        assert await log.query(SENDER, [], before=1000, limit=10) == []

    @pytest.mark.asyncio
    async def test_query_is_case_insensitive_and_per_sender(self, log):
        await log.append(record(100))
        await log.append(record(200, sender="0x" + "11" * 20))

        records = await log.query(SENDER.upper().replace("0X", "0x"), [TxStatus.SENT], before=1000, limit=10)

        assert [r.created_at for r in records] == [100]

    @pytest.mark.asyncio
    async def test_uninitialized_log_raises(self, tmp_path):
        storage = SqliteTransactionLog(str(tmp_path / "relay.db"))

        with pytest.raises(PersistenceError, match="Database not initialized"):
            await storage.append(record(100))


class TestOutcomeRecorder:
    """Tests for OutcomeRecorder."""

    @pytest.mark.asyncio
    async def test_records_once(self, log):
        recorder = OutcomeRecorder(log)

        stored = await recorder.record(SENDER, "0xf86b", TxStatus.DISCARDED, '{"err": true}')

        assert stored.status is TxStatus.DISCARDED
        assert stored.created_at > 0
        records = await log.query(SENDER, list(TxStatus), before=stored.created_at + 1, limit=10)
        assert len(records) == 1
        assert records[0].error == '{"err": true}'

    @pytest.mark.asyncio
    async def test_skips_unknown_sender(self):
        transaction_log = MagicMock()
        transaction_log.append = AsyncMock()
        recorder = OutcomeRecorder(transaction_log)

        assert await recorder.record(None, "0x00", TxStatus.ERROR, "rawTransaction is invalid.") is None
        transaction_log.append.assert_not_called()

    @pytest.mark.asyncio
    async def test_wraps_append_failures(self):
        transaction_log = MagicMock()
        transaction_log.append = AsyncMock(side_effect=OSError("disk full"))
        recorder = OutcomeRecorder(transaction_log)

        with pytest.raises(PersistenceError, match="disk full"):
            await recorder.record(SENDER, "0x00", TxStatus.SENT, None)

    def test_build_record_defaults_timestamp(self):
        built = OutcomeRecorder.build_record(SENDER, "0x00", TxStatus.SENT, None)

        assert built.to_dict()["status"] == "SENT"
        assert built.created_at > 1_600_000_000_000

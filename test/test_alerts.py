#!/usr/bin/env python3
"""Tests for balance alert throttling and alert channels."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from sponsor_relay.alerts import BalanceAlertThrottler, InMemoryCounterStore, RedisCounterStore
from sponsor_relay.errors import NotificationError
from sponsor_relay.utils.telegram_utility import LogNotifier, TelegramUtility, format_alert

SIGNER = "0x" + "AB" * 20
OTHER_SIGNER = "0x" + "CD" * 20
INTERVAL = 4


@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.send = AsyncMock()
    return mock


def make_throttler(contract_util, notifier, minimum="1", interval=INTERVAL):
    return BalanceAlertThrottler(
        counters=InMemoryCounterStore(),
        contract_util=contract_util,
        notifier=notifier,
        relayer_address=contract_util.address,
        sampling_interval=interval,
        minimum_balance=Decimal(minimum)
    )


class TestBalanceAlertThrottler:
    """Tests for BalanceAlertThrottler."""

    @pytest.mark.asyncio
    async def test_burst_below_threshold(self, mock_contract_util, notifier):
        """5N attempts with a low balance alert exactly five times."""
        mock_contract_util.native_balance.return_value = Decimal("0.5")
        throttler = make_throttler(mock_contract_util, notifier)

        results = [await throttler.observe(SIGNER) for _ in range(5 * INTERVAL)]

        assert sum(results) == 5
        assert notifier.send.await_count == 5
        assert mock_contract_util.native_balance.await_count == 5
        notifier.send.assert_awaited_with(mock_contract_util.address, Decimal("0.5"))

    @pytest.mark.asyncio
    async def test_burst_above_threshold(self, mock_contract_util, notifier):
        """Balances above the minimum are sampled but never alerted."""
        throttler = make_throttler(mock_contract_util, notifier)

        results = [await throttler.observe(SIGNER) for _ in range(5 * INTERVAL)]

        assert not any(results)
        assert mock_contract_util.native_balance.await_count == 5
        notifier.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_balance_equal_to_minimum_alerts(self, mock_contract_util, notifier):
        mock_contract_util.native_balance.return_value = Decimal("1")
        throttler = make_throttler(mock_contract_util, notifier, interval=1)

        assert await throttler.observe(SIGNER) is True

    @pytest.mark.asyncio
    async def test_counters_are_per_signer(self, mock_contract_util, notifier):
        throttler = make_throttler(mock_contract_util, notifier)

        for _ in range(INTERVAL - 1):
            await throttler.observe(SIGNER)
            await throttler.observe(OTHER_SIGNER)

        mock_contract_util.native_balance.assert_not_called()
        assert await throttler.counters.get(throttler.counter_key(SIGNER)) == INTERVAL - 1

    def test_counter_key_is_lowercased(self):
        assert BalanceAlertThrottler.counter_key(SIGNER) == f"sponsor-relay:tx-count:{SIGNER.lower()}"

    def test_rejects_non_positive_interval(self, mock_contract_util, notifier):
        with pytest.raises(ValueError, match="Sampling interval must be positive"):
            make_throttler(mock_contract_util, notifier, interval=0)

    @pytest.mark.asyncio
    async def test_balance_failure_propagates(self, mock_contract_util, notifier):
        mock_contract_util.native_balance.side_effect = ConnectionError("node down")
        throttler = make_throttler(mock_contract_util, notifier, interval=1)

        with pytest.raises(ConnectionError):
            await throttler.observe(SIGNER)
        notifier.send.assert_not_called()


class TestCounterStores:

    @pytest.mark.asyncio
    async def test_in_memory_increment(self):
        store = InMemoryCounterStore()

        assert await store.get("k") == 0
        assert await store.increment("k") == 1
        assert await store.increment("k") == 2
        assert await store.get("k") == 2

    @pytest.mark.asyncio
    async def test_redis_store(self):
        client = MagicMock()
        client.incr = AsyncMock(return_value=3)
        client.get = AsyncMock(return_value=None)
        client.aclose = AsyncMock()

        with patch("sponsor_relay.alerts.redis.from_url", return_value=client) as mock_from_url:
            store = RedisCounterStore("redis://localhost:6379/0", timeout=2)

        mock_from_url.assert_called_once_with(
            "redis://localhost:6379/0",
            decode_responses=True,
            socket_timeout=2,
            socket_connect_timeout=2
        )
        assert await store.increment("k") == 3
        assert await store.get("k") == 0
        await store.close()
        client.aclose.assert_awaited_once()


class TestTelegramUtility:
    """Tests for the Telegram alert channel."""

    def test_requires_token_and_chat(self):
        with pytest.raises(ValueError, match="Telegram bot token and chat id are required"):
            TelegramUtility(bot_token="", chat_id="42")

    @pytest.mark.asyncio
    async def test_send_posts_message(self):
        telegram = TelegramUtility(bot_token="123:abc", chat_id="42")

        with patch.object(TelegramUtility, "_api_post", AsyncMock(return_value={"ok": True})) as mock_post:
            await telegram.send(SIGNER, Decimal("0.25"))

        mock_post.assert_awaited_once_with(
            "sendMessage",
            {"chat_id": "42", "text": format_alert(SIGNER, Decimal("0.25"))}
        )

    @pytest.mark.asyncio
    async def test_http_failure_raises_notification_error(self):
        telegram = TelegramUtility(bot_token="123:abc", chat_id="42")
        failure = httpx.ConnectError("connection refused")

        with patch.object(TelegramUtility, "_api_post", AsyncMock(side_effect=failure)):
            with pytest.raises(NotificationError, match="connection refused"):
                await telegram.send(SIGNER, Decimal("0.25"))

    @pytest.mark.asyncio
    async def test_rejected_message(self):
        telegram = TelegramUtility(bot_token="123:abc", chat_id="42")
        response = {"ok": False, "description": "chat not found"}

        with patch.object(TelegramUtility, "_api_post", AsyncMock(return_value=response)):
            with pytest.raises(NotificationError, match="chat not found"):
                await telegram.send(SIGNER, Decimal("0.25"))

    @pytest.mark.asyncio
    async def test_api_post_uses_bot_url(self):
        telegram = TelegramUtility(bot_token="123:abc", chat_id="42", url="http://telegram.test")
        request = httpx.Request("POST", "http://telegram.test/bot123:abc/sendMessage")
        response = httpx.Response(200, json={"ok": True}, request=request)

        with patch("httpx.AsyncClient.post", AsyncMock(return_value=response)) as mock_post:
            result = await telegram._api_post("sendMessage", {"chat_id": "42"})

        assert result == {"ok": True}
        assert mock_post.await_args.args[0] == "http://telegram.test/bot123:abc/sendMessage"

    @pytest.mark.asyncio
    async def test_log_notifier(self, caplog):
        with caplog.at_level("WARNING"):
            await LogNotifier().send(SIGNER, Decimal("0.1"))

        assert "Low relayer balance" in caplog.text
        assert SIGNER in caplog.text

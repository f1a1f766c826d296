import logging
from decimal import Decimal
from typing import Any, Protocol

import httpx

from ..errors import NotificationError

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Fire-and-forget low-balance alert channel."""

    async def send(self, address: str, balance: Decimal) -> None: ...


def format_alert(address: str, balance: Decimal) -> str:
    return (
        f"Low relayer balance\n"
        f"Address: {address}\n"
        f"Balance: {balance}"
    )


class TelegramUtility:
    """Utility for delivering alerts through the Telegram Bot API.

    Provides a single send method that posts a message to the configured chat.
    """

    API_URL: str = "https://api.telegram.org"

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        url: str = '',
        timeout: float = 10.0
    ) -> None:
        """Initialize Telegram utility.

        Args:
            bot_token: Bot API token
            chat_id: Chat receiving the alerts
            url: Optional API base URL (defaults to the public Bot API)
            timeout: Request timeout in seconds
        """
        if not bot_token or not chat_id:
            raise ValueError("Telegram bot token and chat id are required")

        self.bot_token: str = bot_token
        self.chat_id: str = chat_id
        self.url: str = url or self.API_URL
        self.timeout: float = timeout

    async def _api_post(self, method: str, payload: Any) -> Any:
        """Post request to the Bot API.

        Args:
            method: Bot API method name
            payload: JSON payload to send

        Returns:
            JSON response from the API

        Raises:
            httpx.HTTPError: If the request fails
        """
        async with httpx.AsyncClient() as client:
            full_url: str = f"{self.url}/bot{self.bot_token}/{method}"
            logger.debug(f"Posting to {self.url}/bot<token>/{method}")
            response: httpx.Response = await client.post(full_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()

    async def send(self, address: str, balance: Decimal) -> None:
        """Send a low-balance alert.

        Args:
            address: Relayer address whose balance is low
            balance: Current balance in ether

        Raises:
            NotificationError: If the message could not be delivered
        """
        payload: dict[str, str] = {
            "chat_id": self.chat_id,
            "text": format_alert(address, balance),
        }

        try:
            response: dict[str, Any] = await self._api_post("sendMessage", payload)
        except httpx.HTTPError as e:
            raise NotificationError(f"Telegram alert failed: {e}") from e

        if not response.get("ok", False):
            raise NotificationError(
                f"Telegram alert rejected: {response.get('description', 'unknown error')}"
            )

        logger.info(f"Low-balance alert sent for {address}")


class LogNotifier:
    """Alert channel that only writes to the log, used when Telegram is not configured."""

    async def send(self, address: str, balance: Decimal) -> None:
        logger.warning(format_alert(address, balance).replace("\n", " | "))

"""Telegram alert delivery."""
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig
from ..models import Alert
from .formatting import format_alert

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Post alerts to a Telegram chat through the Bot API."""

    def __init__(self, config: TelegramConfig) -> None:
        self.bot_token = config.bot_token
        self.chat_id = config.chat_id

    async def send_alert(self, alert: Alert) -> bool:
        if not self.bot_token or not self.chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": format_alert(alert),
            "disable_notification": False,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(url, json=payload) as response:
                if response.status != 200:
                    logger.error("Failed to send Telegram alert: %s", response.status)
                    return False

        logger.info("Telegram alert sent (%s)", alert.type.value)
        return True

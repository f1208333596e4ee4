"""
Operator notices for payout outcomes.

Notices are fire-and-forget: a delivery failure is logged and dropped, it
never reaches the payout worker.

sinks:
    TelegramNotifier: Bot API sendMessage to one chat
    LogNotifier: log only (no bot token configured)
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from app.core.config import Settings

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class NotificationSink(ABC):
    @abstractmethod
    def notify(self, message: str) -> None: ...


class LogNotifier(NotificationSink):
    def notify(self, message: str) -> None:
        logger.info("[notice] %s", message)


class TelegramNotifier(NotificationSink):
    def __init__(self, bot_token: str, chat_id: str, http: Optional[requests.Session] = None, timeout: float = 5.0):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.http = http or requests.Session()
        self.timeout = timeout

    def notify(self, message: str) -> None:
        url = f"{TELEGRAM_API}/bot{self.bot_token}/sendMessage"
        body = {
            "chat_id": self.chat_id,
            "text": message,
            "disable_web_page_preview": True,
        }
        try:
            response = self.http.post(url, json=body, timeout=self.timeout)
            if response.status_code != 200:
                logger.warning("[notice] telegram rejected message: %s %s", response.status_code, response.text)
        except requests.RequestException as e:
            logger.warning("[notice] telegram delivery failed: %s", e)


def create_notifier(settings: Settings) -> NotificationSink:
    if settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_CHAT_ID:
        return TelegramNotifier(settings.TELEGRAM_BOT_TOKEN, settings.TELEGRAM_CHAT_ID)
    return LogNotifier()

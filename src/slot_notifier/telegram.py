"""
Telegram delivery for slot notifications.

Messages go straight to the Bot API sendMessage method. Subscribers are read
from storage; managing them is done through the CLI.
"""

import logging
from typing import Optional, Protocol

import requests


TELEGRAM_API_URL = "https://api.telegram.org"
DEFAULT_TIMEOUT = 10.0


class NotificationError(Exception):
    """Delivery to a single recipient failed."""

    def __init__(self, message: str, chat_id: Optional[int] = None):
        self.chat_id = chat_id
        super().__init__(message)


class SubscriberSource(Protocol):
    def list_subscribers(self) -> list[int]: ...


class TelegramSink:
    """Sends notifications to every subscribed Telegram chat."""

    def __init__(
        self,
        token: str,
        subscribers: SubscriberSource,
        api_url: str = TELEGRAM_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.token = token
        self.subscribers = subscribers
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._log = logger or logging.getLogger(__name__)

    def _method_url(self, method: str) -> str:
        return f"{self.api_url}/bot{self.token}/{method}"

    def _call(self, method: str, payload: Optional[dict] = None, chat_id: Optional[int] = None) -> dict:
        try:
            response = self.session.post(self._method_url(method), json=payload or {}, timeout=self.timeout)
        except requests.RequestException as e:
            raise NotificationError(f"Telegram {method} request failed: {e}", chat_id=chat_id) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code != 200 or not body.get("ok"):
            description = body.get("description") or response.text[:200]
            raise NotificationError(
                f"Telegram {method} error {response.status_code}: {description}",
                chat_id=chat_id,
            )
        return body

    def bot_username(self) -> str:
        """Return the bot's username (getMe); used as a startup check."""
        result = self._call("getMe").get("result", {})
        return result.get("username", "")

    def list_subscribers(self) -> list[int]:
        return self.subscribers.list_subscribers()

    def send(self, chat_id: int, text: str) -> None:
        """
        Send a plain-text message to one chat.

        Raises:
            NotificationError: If Telegram rejects the message or is unreachable
        """
        self._call(
            "sendMessage",
            {"chat_id": chat_id, "text": text, "disable_web_page_preview": True},
            chat_id=chat_id,
        )
        self._log.debug(f"Telegram message sent chat_id={chat_id}")

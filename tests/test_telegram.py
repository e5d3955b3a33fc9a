from unittest.mock import MagicMock

import pytest
import requests

from slot_notifier.telegram import NotificationError, TelegramSink


def _sink(session, subscribers=None):
    return TelegramSink("123:abc", subscribers or MagicMock(), session=session)


class TestTelegramSink:
    def test_send_posts_send_message(self, make_response):
        session = MagicMock()
        session.post.return_value = make_response(200, {"ok": True, "result": {}})

        _sink(session).send(111, "hello")

        session.post.assert_called_once_with(
            "https://api.telegram.org/bot123:abc/sendMessage",
            json={"chat_id": 111, "text": "hello", "disable_web_page_preview": True},
            timeout=10.0,
        )

    def test_rejected_message_raises_with_chat_id(self, make_response):
        session = MagicMock()
        session.post.return_value = make_response(403, {"ok": False, "description": "bot was blocked by the user"})

        with pytest.raises(NotificationError, match="blocked") as excinfo:
            _sink(session).send(111, "hello")

        assert excinfo.value.chat_id == 111

    def test_network_failure_raises(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(NotificationError):
            _sink(session).send(111, "hello")

    def test_non_json_reply_raises(self, make_response):
        session = MagicMock()
        session.post.return_value = make_response(502, text="Bad Gateway")

        with pytest.raises(NotificationError, match="Bad Gateway"):
            _sink(session).send(111, "hello")

    def test_bot_username(self, make_response):
        session = MagicMock()
        session.post.return_value = make_response(200, {"ok": True, "result": {"username": "slots_bot"}})

        assert _sink(session).bot_username() == "slots_bot"
        assert session.post.call_args.args[0].endswith("/getMe")

    def test_subscribers_come_from_storage(self):
        subscribers = MagicMock()
        subscribers.list_subscribers.return_value = [1, 2]

        assert _sink(MagicMock(), subscribers).list_subscribers() == [1, 2]

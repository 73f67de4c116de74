from __future__ import annotations

import io
import json
import unittest
from unittest import mock
from urllib import error

from tgbot.bot_client import TelegramApiError, TelegramBotClient


class _FakeResponse:
    def __init__(self, payload: dict) -> None:
        self._raw = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._raw

    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, *exc: object) -> None:
        return None


class TelegramBotClientTest(unittest.TestCase):
    def test_send_message_posts_json(self) -> None:
        client = TelegramBotClient(bot_token="123:abc", api_base_url="https://api.example.test/")
        with mock.patch("tgbot.bot_client.request.urlopen") as urlopen:
            urlopen.return_value = _FakeResponse({"ok": True, "result": {"message_id": 5}})
            result = client.send_message(42, "hello")

        self.assertEqual(result, {"message_id": 5})
        req = urlopen.call_args.args[0]
        self.assertEqual(req.full_url, "https://api.example.test/bot123:abc/sendMessage")
        self.assertEqual(json.loads(req.data.decode("utf-8")), {"chat_id": 42, "text": "hello"})

    def test_long_message_is_truncated(self) -> None:
        client = TelegramBotClient(bot_token="123:abc")
        with mock.patch("tgbot.bot_client.request.urlopen") as urlopen:
            urlopen.return_value = _FakeResponse({"ok": True, "result": {}})
            client.send_message(1, "x" * 5000)
        sent = json.loads(urlopen.call_args.args[0].data.decode("utf-8"))
        self.assertEqual(len(sent["text"]), 4096)

    def test_api_error_raises(self) -> None:
        client = TelegramBotClient(bot_token="123:abc")
        with mock.patch("tgbot.bot_client.request.urlopen") as urlopen:
            urlopen.return_value = _FakeResponse({"ok": False, "description": "Bad Request: chat not found"})
            with self.assertRaises(TelegramApiError) as ctx:
                client.send_message(1, "hello")
        self.assertIn("chat not found", str(ctx.exception))

    def test_http_error_raises(self) -> None:
        client = TelegramBotClient(bot_token="123:abc")
        http_error = error.HTTPError(
            url="https://api.telegram.org",
            code=403,
            msg="Forbidden",
            hdrs=None,  # type: ignore[arg-type]
            fp=io.BytesIO(b'{"ok":false,"description":"bot was blocked by the user"}'),
        )
        with mock.patch("tgbot.bot_client.request.urlopen", side_effect=http_error):
            with self.assertRaises(TelegramApiError) as ctx:
                client.send_message(1, "hello")
        self.assertIn("status=403", str(ctx.exception))

    def test_missing_token(self) -> None:
        with self.assertRaises(TelegramApiError):
            TelegramBotClient(bot_token="").get_me()

    def test_set_webhook_payload(self) -> None:
        client = TelegramBotClient(bot_token="123:abc")
        with mock.patch("tgbot.bot_client.request.urlopen") as urlopen:
            urlopen.return_value = _FakeResponse({"ok": True, "result": True})
            self.assertTrue(client.set_webhook("https://bot.example.test/webhook/telegram", secret_token="s"))
        sent = json.loads(urlopen.call_args.args[0].data.decode("utf-8"))
        self.assertEqual(sent["secret_token"], "s")
        self.assertEqual(sent["allowed_updates"], ["message"])


if __name__ == "__main__":
    unittest.main()

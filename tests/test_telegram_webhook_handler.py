from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from typing import Any
from unittest import mock

from ledger.repository import LedgerRepository
from tgbot.bot_client import TelegramApiError
from tgbot.webhook_handler import TelegramWebhookHandler, parse_inbound_event

SECRET = "webhook-secret"


class _DummyBotClient:
    def __init__(self, fail_for: set[int] | None = None) -> None:
        self.calls: list[tuple[int, str]] = []
        self.fail_for = fail_for or set()

    def send_message(self, chat_id: int, text: str) -> dict[str, Any]:
        if chat_id in self.fail_for:
            raise TelegramApiError("chat not found")
        self.calls.append((chat_id, text))
        return {"message_id": len(self.calls)}


def _update(update_id: int, text: str | None, user_id: int = 1) -> dict[str, Any]:
    message: dict[str, Any] = {
        "message_id": update_id,
        "from": {"id": user_id, "is_bot": False, "first_name": "Ann", "username": "ann"},
        "chat": {"id": user_id, "type": "private"},
        "date": 1700000000,
    }
    if text is not None:
        message["text"] = text
    return {"update_id": update_id, "message": message}


def _body(update: dict[str, Any]) -> bytes:
    return json.dumps(update, ensure_ascii=False).encode("utf-8")


def _build_config(tmp_dir: str, **telegram: Any) -> dict[str, Any]:
    telegram_conf = {
        "enabled": True,
        "bot_token": "123:abc",
        "secret_token": SECRET,
        "timeout_sec": 1,
        "allowed_user_ids": [],
    }
    telegram_conf.update(telegram)
    return {
        "telegram": telegram_conf,
        "ledger": {"backend": "sqlite", "sqlite_path": str(Path(tmp_dir) / "ledger.db")},
        "conversation": {"session_idle_minutes": 30, "sweep_interval_sec": 300},
        "payments": {"currency": "RUB", "payment_method": "telegram_stars", "notify_counterparty": True},
    }


class TelegramWebhookHandlerTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.config = _build_config(self._tmp.name)
        self.bot_client = _DummyBotClient()
        self.repository = LedgerRepository(self.config["ledger"]["sqlite_path"])

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _handler(self, config: dict[str, Any] | None = None) -> TelegramWebhookHandler:
        return TelegramWebhookHandler(
            config=config or self.config,
            bot_client=self.bot_client,  # type: ignore[arg-type]
            repository=self.repository,
        )

    def test_disabled_returns_503(self) -> None:
        handler = self._handler(_build_config(self._tmp.name, enabled=False))
        status, payload = handler.handle(_body(_update(1, "/help")), SECRET)
        self.assertEqual(status, 503)
        self.assertFalse(payload["ok"])

    def test_invalid_secret_token(self) -> None:
        handler = self._handler()
        status, _ = handler.handle(_body(_update(1, "/help")), "wrong")
        self.assertEqual(status, 401)
        status, _ = handler.handle(_body(_update(1, "/help")), None)
        self.assertEqual(status, 401)
        self.assertEqual(self.bot_client.calls, [])

    def test_invalid_json(self) -> None:
        status, payload = self._handler().handle(b"{not json", SECRET)
        self.assertEqual(status, 400)
        self.assertFalse(payload["ok"])

    def test_help_command_replies(self) -> None:
        status, payload = self._handler().handle(_body(_update(1, "/help")), SECRET)
        self.assertEqual(status, 200)
        self.assertEqual(payload["handled"], 1)
        self.assertEqual(len(self.bot_client.calls), 1)
        chat_id, text = self.bot_client.calls[0]
        self.assertEqual(chat_id, 1)
        self.assertIn("Available commands", text)

    def test_duplicate_update_is_skipped(self) -> None:
        handler = self._handler()
        handler.handle(_body(_update(5, "/newfundraiser")), SECRET)
        status, payload = handler.handle(_body(_update(5, "/newfundraiser")), SECRET)
        self.assertEqual(status, 200)
        self.assertEqual(payload["skipped"], 1)
        self.assertEqual(len(self.bot_client.calls), 1)

    def test_update_without_message_is_skipped(self) -> None:
        status, payload = self._handler().handle(_body({"update_id": 9, "edited_message": {}}), SECRET)
        self.assertEqual(status, 200)
        self.assertEqual(payload["skipped"], 1)

    def test_allowlist_blocks_other_users(self) -> None:
        handler = self._handler(_build_config(self._tmp.name, allowed_user_ids=[2]))
        handler.handle(_body(_update(1, "/newfundraiser", user_id=1)), SECRET)
        self.assertIn("cannot use the bot", self.bot_client.calls[0][1])
        self.assertEqual(len(handler.session_store), 0)

    def test_secret_optional_when_not_configured(self) -> None:
        handler = self._handler(_build_config(self._tmp.name, secret_token=""))
        status, _ = handler.handle(_body(_update(1, "/start")), None)
        self.assertEqual(status, 200)

    def test_send_failure_is_logged_and_not_retried(self) -> None:
        handler = self._handler()
        fundraiser = self.repository.create_fundraiser("Gift", "d", 1000, creator_id=7, creator_username=None)
        self.bot_client.fail_for = {7}
        with self.assertLogs("tgbot.webhook_handler", level="WARNING") as logs:
            status, payload = handler.handle(_body(_update(1, f"/paid {fundraiser.id} 100")), SECRET)
        self.assertEqual(status, 200)
        self.assertTrue(payload["ok"])
        self.assertEqual([chat_id for chat_id, _ in self.bot_client.calls], [1])
        self.assertTrue(any("telegram-send-failed" in line for line in logs.output))
        self.assertEqual(len(self.repository.list_transactions(donor_id=1)), 1)

    def test_datastore_failure_replies_with_generic_message(self) -> None:
        handler = self._handler()
        with mock.patch.object(self.repository, "touch_user", side_effect=RuntimeError("disk I/O error")):
            status, payload = handler.handle(_body(_update(3, "/start")), SECRET)
        self.assertEqual(status, 200)
        self.assertFalse(payload["ok"])
        self.assertEqual(payload["errors"], ["disk I/O error"])
        self.assertIn("Something went wrong", self.bot_client.calls[0][1])

    def test_parse_inbound_event(self) -> None:
        event = parse_inbound_event(_update(1, None))
        assert event is not None
        self.assertIsNone(event.text)
        self.assertEqual(event.username, "ann")
        bot_update = _update(2, "hi")
        bot_update["message"]["from"]["is_bot"] = True
        self.assertIsNone(parse_inbound_event(bot_update))
        self.assertIsNone(parse_inbound_event({"update_id": 3}))


if __name__ == "__main__":
    unittest.main()

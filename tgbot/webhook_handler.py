from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any

from conversation.session_store import SessionStore, SessionSweeper
from conversation.wizard_service import FundraiserWizard
from core.models import InboundEvent, OutboundMessage
from ledger.repository_factory import create_ledger_repository
from ledger.repository_interface import LedgerRepositoryProtocol
from payments.fundraiser_service import FundraiserService
from payments.payment_service import PaymentService
from tgbot import message_templates
from tgbot.bot_client import TelegramBotClient
from tgbot.event_ids import build_update_event_id
from tgbot.router import CommandRouter
from tgbot.secret_token import verify_secret_token

logger = logging.getLogger(__name__)


class TelegramWebhookHandler:
    def __init__(
        self,
        config: dict[str, Any],
        bot_client: TelegramBotClient | None = None,
        repository: LedgerRepositoryProtocol | None = None,
        session_store: SessionStore | None = None,
    ) -> None:
        self.config = config
        self.telegram_conf = config.get("telegram", {})
        self.conversation_conf = config.get("conversation", {})
        self.payments_conf = config.get("payments", {})
        self.enabled = bool(self.telegram_conf.get("enabled", False))
        self.secret_token = str(self.telegram_conf.get("secret_token", "") or "").strip()
        allowed = self.telegram_conf.get("allowed_user_ids", [])
        self.allowed_user_ids = {
            int(user_id)
            for user_id in (allowed if isinstance(allowed, list) else [])
            if str(user_id).strip().lstrip("-").isdigit()
        }

        self.repository = repository or create_ledger_repository(config)
        self.session_store = session_store or SessionStore()
        self.sweeper = SessionSweeper(
            store=self.session_store,
            max_idle=timedelta(minutes=float(self.conversation_conf.get("session_idle_minutes", 30))),
            interval_sec=float(self.conversation_conf.get("sweep_interval_sec", 300)),
        )
        self.payment_service = PaymentService(
            repository=self.repository,
            currency=str(self.payments_conf.get("currency", "RUB")),
            payment_method=str(self.payments_conf.get("payment_method", "telegram_stars")),
        )
        self.router = CommandRouter(
            repository=self.repository,
            wizard=FundraiserWizard(self.repository, self.session_store),
            payments=self.payment_service,
            fundraisers=FundraiserService(self.repository),
            notify_counterparty=bool(self.payments_conf.get("notify_counterparty", True)),
        )
        self.bot_client = bot_client or TelegramBotClient(
            bot_token=str(self.telegram_conf.get("bot_token", "") or ""),
            api_base_url=str(self.telegram_conf.get("api_base_url", "https://api.telegram.org")),
            timeout_sec=float(self.telegram_conf.get("timeout_sec", 10)),
        )
        if self.enabled and not self.secret_token:
            logger.warning("telegram-secret-token-missing webhook requests are not authenticated")

    def handle(self, body: bytes, secret_token: str | None) -> tuple[int, dict[str, Any]]:
        if not self.enabled:
            return 503, {"ok": False, "error": "telegram.enabled is false"}
        if self.secret_token and not verify_secret_token(self.secret_token, secret_token):
            return 401, {"ok": False, "error": "invalid secret token"}

        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return 400, {"ok": False, "error": "invalid json payload"}
        updates = payload if isinstance(payload, list) else [payload]

        handled = 0
        skipped = 0
        errors: list[str] = []
        for update in updates:
            if not isinstance(update, dict):
                skipped += 1
                continue
            event_id = build_update_event_id(update)
            if event_id and not self.repository.mark_event_processed(event_id):
                skipped += 1
                continue
            try:
                if self.handle_update(update):
                    handled += 1
                else:
                    skipped += 1
            except Exception as exc:  # noqa: BLE001
                logger.exception("telegram-update-failed event_id=%s", event_id)
                errors.append(str(exc))
        return 200, {"ok": len(errors) == 0, "handled": handled, "skipped": skipped, "errors": errors}

    def handle_update(self, update: dict[str, Any]) -> bool:
        event = parse_inbound_event(update)
        if event is None:
            return False

        if self.allowed_user_ids and event.sender_id not in self.allowed_user_ids:
            self._send([OutboundMessage(event.chat_id, message_templates.build_not_allowed_message())])
            return True

        try:
            messages = self.router.dispatch(event)
        except Exception:
            self._send([OutboundMessage(event.chat_id, message_templates.build_generic_failure_message())])
            raise
        self._send(messages)
        return True

    def _send(self, messages: list[OutboundMessage]) -> None:
        for message in messages:
            try:
                self.bot_client.send_message(chat_id=message.chat_id, text=message.text)
            except Exception as exc:  # noqa: BLE001
                logger.warning("telegram-send-failed chat_id=%s error=%s", message.chat_id, exc)


def parse_inbound_event(update: dict[str, Any]) -> InboundEvent | None:
    message = update.get("message")
    if not isinstance(message, dict):
        return None
    sender = message.get("from") or {}
    chat = message.get("chat") or {}
    if sender.get("is_bot"):
        return None
    sender_id = sender.get("id")
    chat_id = chat.get("id")
    if sender_id is None or chat_id is None:
        return None
    text = message.get("text")
    return InboundEvent(
        sender_id=int(sender_id),
        chat_id=int(chat_id),
        text=str(text) if text is not None else None,
        username=_optional_str(sender.get("username")),
        first_name=_optional_str(sender.get("first_name")),
        last_name=_optional_str(sender.get("last_name")),
    )


def _optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None

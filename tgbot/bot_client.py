from __future__ import annotations

import json
from typing import Any
from urllib import error, request

from tgbot.message_templates import truncate


class TelegramApiError(RuntimeError):
    pass


class TelegramBotClient:
    def __init__(
        self,
        bot_token: str,
        api_base_url: str = "https://api.telegram.org",
        timeout_sec: float = 10.0,
    ) -> None:
        self.bot_token = (bot_token or "").strip()
        self.api_base_url = (api_base_url or "https://api.telegram.org").rstrip("/")
        self.timeout_sec = float(timeout_sec)

    def send_message(self, chat_id: int, text: str) -> dict[str, Any]:
        body = (text or "").strip()
        if not body:
            raise TelegramApiError("message text is empty")
        return self._call("sendMessage", {"chat_id": int(chat_id), "text": truncate(body)})

    def set_webhook(
        self,
        url: str,
        secret_token: str | None = None,
        allowed_updates: list[str] | None = None,
        drop_pending_updates: bool = False,
    ) -> bool:
        target = (url or "").strip()
        if not target:
            raise TelegramApiError("webhook url is empty")
        payload: dict[str, Any] = {
            "url": target,
            "allowed_updates": allowed_updates if allowed_updates is not None else ["message"],
            "drop_pending_updates": bool(drop_pending_updates),
        }
        if secret_token:
            payload["secret_token"] = secret_token
        return bool(self._call("setWebhook", payload))

    def delete_webhook(self, drop_pending_updates: bool = False) -> bool:
        return bool(self._call("deleteWebhook", {"drop_pending_updates": bool(drop_pending_updates)}))

    def get_me(self) -> dict[str, Any]:
        return self._call("getMe", {})

    def _call(self, method: str, payload: dict[str, Any]) -> Any:
        if not self.bot_token:
            raise TelegramApiError("telegram.bot_token is required")
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        url = f"{self.api_base_url}/bot{self.bot_token}/{method}"
        req = request.Request(url=url, data=data, method="POST")
        req.add_header("Content-Type", "application/json; charset=utf-8")
        try:
            with request.urlopen(req, timeout=self.timeout_sec) as resp:
                raw = resp.read()
        except error.HTTPError as exc:
            body = ""
            try:
                body = exc.read().decode("utf-8", errors="ignore")
            except OSError:
                pass
            raise TelegramApiError(f"telegram api error: method={method} status={exc.code} body={body}") from exc
        except error.URLError as exc:
            raise TelegramApiError(f"telegram api connection error: method={method} {exc}") from exc

        try:
            result = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TelegramApiError(f"telegram api returned invalid json: method={method}") from exc
        if not isinstance(result, dict) or not result.get("ok"):
            description = result.get("description") if isinstance(result, dict) else None
            raise TelegramApiError(f"telegram api error: method={method} description={description}")
        return result.get("result")

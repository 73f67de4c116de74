from __future__ import annotations

from typing import Any


def build_update_event_id(update: dict[str, Any]) -> str:
    update_id = str(update.get("update_id", "") or "").strip()
    if update_id:
        return f"update:{update_id}"
    message = update.get("message") or {}
    chat_id = str((message.get("chat") or {}).get("id", "") or "").strip()
    message_id = str(message.get("message_id", "") or "").strip()
    if chat_id and message_id:
        return f"message:{chat_id}:{message_id}"
    return ""

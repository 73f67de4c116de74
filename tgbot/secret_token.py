from __future__ import annotations

import hmac


def verify_secret_token(expected: str, received: str | None) -> bool:
    """Compare the X-Telegram-Bot-Api-Secret-Token header with the configured secret."""
    secret = (expected or "").strip()
    header = (received or "").strip()
    if not secret or not header:
        return False
    return hmac.compare_digest(secret.encode("utf-8"), header.encode("utf-8"))

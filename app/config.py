from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "telegram": {
        "enabled": False,
        "bot_token": None,
        "secret_token": None,
        "webhook_path": "/webhook/telegram",
        "webhook_base_url": None,
        "api_base_url": "https://api.telegram.org",
        "timeout_sec": 10,
        "allowed_user_ids": [],
    },
    "ledger": {
        "backend": "sqlite",
        "sqlite_path": "data/ledger/fundraisers.db",
        "dynamodb": {
            "region": None,
            "table_prefix": "fundraiser-bot",
            "event_ttl_days": 7,
            "tables": {
                "update_dedupe": None,
                "users": None,
                "fundraisers": None,
                "transactions": None,
                "counters": None,
            },
        },
    },
    "conversation": {
        "session_idle_minutes": 30,
        "sweep_interval_sec": 300,
    },
    "payments": {
        "currency": "RUB",
        "payment_method": "telegram_stars",
        "notify_counterparty": True,
    },
    "logging": {
        "level": "INFO",
    },
}

ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "TELEGRAM_BOT_TOKEN": ("telegram", "bot_token"),
    "TELEGRAM_SECRET_TOKEN": ("telegram", "secret_token"),
    "TELEGRAM_WEBHOOK_BASE_URL": ("telegram", "webhook_base_url"),
    "LEDGER_SQLITE_PATH": ("ledger", "sqlite_path"),
    "LOG_LEVEL": ("logging", "level"),
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def apply_env_overrides(config: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    result = deepcopy(config)
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = str(env.get(env_name, "") or "").strip()
        if not value:
            continue
        result.setdefault(section, {})[key] = value
    return result


def load_config(config_path: str | None = None, environ: dict[str, str] | None = None) -> dict[str, Any]:
    data: dict[str, Any] = {}
    path = Path(config_path) if config_path else None
    if path is not None and path.exists():
        text = path.read_text(encoding="utf-8")
        if text.strip():
            if path.suffix.lower() == ".json":
                loaded = json.loads(text)
            else:
                loaded = yaml.safe_load(text)
            data = loaded if isinstance(loaded, dict) else {}

    return apply_env_overrides(deep_merge(DEFAULT_CONFIG, data), environ)

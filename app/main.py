from __future__ import annotations

import argparse
import json
from typing import Any

from app.config import load_config
from app.logging_setup import configure_logging
from ledger.repository_factory import create_ledger_repository
from tgbot.bot_client import TelegramApiError, TelegramBotClient


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fundraiser collection bot")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create the ledger storage")
    init_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")

    set_parser = subparsers.add_parser("set-webhook", help="Register the webhook URL with Telegram")
    set_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")
    set_parser.add_argument("--url", default=None, help="Full webhook URL (default: base url + webhook path)")
    set_parser.add_argument("--drop-pending", action="store_true")

    delete_parser = subparsers.add_parser("delete-webhook", help="Remove the Telegram webhook")
    delete_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")
    delete_parser.add_argument("--drop-pending", action="store_true")

    info_parser = subparsers.add_parser("bot-info", help="Show the bot account returned by getMe")
    info_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")

    return parser


def _create_bot_client(config: dict[str, Any]) -> TelegramBotClient:
    telegram_conf = config.get("telegram", {})
    return TelegramBotClient(
        bot_token=str(telegram_conf.get("bot_token", "") or ""),
        api_base_url=str(telegram_conf.get("api_base_url", "https://api.telegram.org")),
        timeout_sec=float(telegram_conf.get("timeout_sec", 10)),
    )


def resolve_webhook_url(config: dict[str, Any], explicit_url: str | None = None) -> str:
    if explicit_url:
        return explicit_url.strip()
    telegram_conf = config.get("telegram", {})
    base_url = str(telegram_conf.get("webhook_base_url", "") or "").strip().rstrip("/")
    if not base_url:
        return ""
    path = str(telegram_conf.get("webhook_path", "/webhook/telegram") or "")
    return f"{base_url}/{path.lstrip('/')}"


def cmd_init_db(args: argparse.Namespace, config: dict[str, Any]) -> int:
    repository = create_ledger_repository(config)
    print(f"ledger-ready: {type(repository).__name__}")
    return 0


def cmd_set_webhook(args: argparse.Namespace, config: dict[str, Any]) -> int:
    url = resolve_webhook_url(config, args.url)
    if not url:
        print("webhook url is empty: pass --url or set telegram.webhook_base_url")
        return 1
    secret_token = str(config.get("telegram", {}).get("secret_token", "") or "").strip() or None
    try:
        _create_bot_client(config).set_webhook(url, secret_token=secret_token, drop_pending_updates=args.drop_pending)
    except TelegramApiError as exc:
        print(f"set-webhook-failed: {exc}")
        return 1
    print(f"webhook-set: {url}")
    return 0


def cmd_delete_webhook(args: argparse.Namespace, config: dict[str, Any]) -> int:
    try:
        _create_bot_client(config).delete_webhook(drop_pending_updates=args.drop_pending)
    except TelegramApiError as exc:
        print(f"delete-webhook-failed: {exc}")
        return 1
    print("webhook-deleted")
    return 0


def cmd_bot_info(args: argparse.Namespace, config: dict[str, Any]) -> int:
    try:
        info = _create_bot_client(config).get_me()
    except TelegramApiError as exc:
        print(f"bot-info-failed: {exc}")
        return 1
    print(json.dumps(info, ensure_ascii=False, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config)
    configure_logging(config)

    if args.command == "init-db":
        return cmd_init_db(args, config)
    if args.command == "set-webhook":
        return cmd_set_webhook(args, config)
    if args.command == "delete-webhook":
        return cmd_delete_webhook(args, config)
    if args.command == "bot-info":
        return cmd_bot_info(args, config)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())

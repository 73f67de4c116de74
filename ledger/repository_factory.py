from __future__ import annotations

from typing import Any

from ledger.dynamo_repository import DynamoLedgerRepository
from ledger.repository import LedgerRepository
from ledger.repository_interface import LedgerRepositoryProtocol


def create_ledger_repository(config: dict[str, Any]) -> LedgerRepositoryProtocol:
    ledger_conf = config.get("ledger", {})
    backend = str(ledger_conf.get("backend", "sqlite") or "sqlite").strip().lower()

    if backend == "dynamodb":
        ddb_conf = ledger_conf.get("dynamodb", {}) if isinstance(ledger_conf, dict) else {}
        tables = ddb_conf.get("tables", {}) if isinstance(ddb_conf, dict) else {}
        return DynamoLedgerRepository(
            region_name=_as_optional_str(ddb_conf.get("region")),
            table_prefix=str(ddb_conf.get("table_prefix", "fundraiser-bot")),
            event_table_name=_as_optional_str(tables.get("update_dedupe")),
            users_table_name=_as_optional_str(tables.get("users")),
            fundraisers_table_name=_as_optional_str(tables.get("fundraisers")),
            transactions_table_name=_as_optional_str(tables.get("transactions")),
            counters_table_name=_as_optional_str(tables.get("counters")),
            event_ttl_days=int(ddb_conf.get("event_ttl_days", 7)),
        )

    sqlite_path = str(ledger_conf.get("sqlite_path", "data/ledger/fundraisers.db"))
    return LedgerRepository(sqlite_path=sqlite_path)


def _as_optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None

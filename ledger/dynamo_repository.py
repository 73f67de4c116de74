from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from core.enums import FundraiserStatus, PaymentMethod, TransactionStatus
from core.errors import NotFound
from core.models import Fundraiser, Transaction, User
from ledger.repository_interface import LedgerRepositoryProtocol


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DynamoLedgerRepository(LedgerRepositoryProtocol):
    FUNDRAISER_CREATOR_INDEX = "creator_id_created_at_index"
    TRANSACTION_DONOR_INDEX = "donor_id_created_at_index"
    TRANSACTION_FUNDRAISER_INDEX = "fundraiser_id_created_at_index"

    def __init__(
        self,
        *,
        region_name: str | None = None,
        table_prefix: str = "fundraiser-bot",
        event_table_name: str | None = None,
        users_table_name: str | None = None,
        fundraisers_table_name: str | None = None,
        transactions_table_name: str | None = None,
        counters_table_name: str | None = None,
        event_ttl_days: int = 7,
        dynamodb_resource: Any | None = None,
    ) -> None:
        normalized_prefix = (table_prefix or "fundraiser-bot").strip()
        self.event_ttl_days = max(1, int(event_ttl_days))
        self._ddb = dynamodb_resource or boto3.resource("dynamodb", region_name=region_name)
        self._event_table = self._ddb.Table(event_table_name or f"{normalized_prefix}-update-dedupe")
        self._users_table = self._ddb.Table(users_table_name or f"{normalized_prefix}-users")
        self._fundraisers_table = self._ddb.Table(fundraisers_table_name or f"{normalized_prefix}-fundraisers")
        self._transactions_table = self._ddb.Table(transactions_table_name or f"{normalized_prefix}-transactions")
        self._counters_table = self._ddb.Table(counters_table_name or f"{normalized_prefix}-counters")

    def mark_event_processed(self, event_id: str) -> bool:
        key = (event_id or "").strip()
        if not key:
            return False
        now = datetime.now(timezone.utc)
        expires = int((now + timedelta(days=self.event_ttl_days)).timestamp())
        try:
            self._event_table.put_item(
                Item={
                    "event_id": key,
                    "received_at": now.isoformat(),
                    "expires_at_epoch": expires,
                },
                ConditionExpression="attribute_not_exists(event_id)",
            )
            return True
        except ClientError as exc:
            if _error_code(exc) == "ConditionalCheckFailedException":
                return False
            raise

    def touch_user(
        self,
        telegram_id: int,
        username: str | None,
        first_name: str | None,
        last_name: str | None,
    ) -> User:
        now = _utc_now()
        response = self._users_table.update_item(
            Key={"telegram_id": int(telegram_id)},
            UpdateExpression=(
                "SET username = :username, first_name = :first_name, last_name = :last_name, "
                "last_active = :now, created_at = if_not_exists(created_at, :now), "
                "is_admin = if_not_exists(is_admin, :false), is_banned = if_not_exists(is_banned, :false)"
            ),
            ExpressionAttributeValues={
                ":username": username,
                ":first_name": first_name,
                ":last_name": last_name,
                ":now": now,
                ":false": False,
            },
            ReturnValues="ALL_NEW",
        )
        return _item_to_user(response.get("Attributes", {}))

    def get_user(self, telegram_id: int) -> User | None:
        item = self._users_table.get_item(Key={"telegram_id": int(telegram_id)}).get("Item")
        return _item_to_user(item) if item else None

    def set_user_flags(self, telegram_id: int, *, is_admin: bool | None = None, is_banned: bool | None = None) -> None:
        assignments: list[str] = []
        values: dict[str, Any] = {}
        if is_admin is not None:
            assignments.append("is_admin = :is_admin")
            values[":is_admin"] = bool(is_admin)
        if is_banned is not None:
            assignments.append("is_banned = :is_banned")
            values[":is_banned"] = bool(is_banned)
        if not assignments:
            return
        self._users_table.update_item(
            Key={"telegram_id": int(telegram_id)},
            UpdateExpression="SET " + ", ".join(assignments),
            ExpressionAttributeValues=values,
        )

    def create_fundraiser(
        self,
        title: str,
        description: str,
        goal: int,
        creator_id: int,
        creator_username: str | None,
        deadline: str | None = None,
    ) -> Fundraiser:
        now = _utc_now()
        item = {
            "id": self._next_id("fundraisers"),
            "title": title,
            "description": description,
            "goal": int(goal),
            "raised": 0,
            "creator_id": int(creator_id),
            "creator_username": creator_username,
            "status": FundraiserStatus.ACTIVE.value,
            "deadline": deadline,
            "created_at": now,
            "updated_at": now,
            "completed_at": None,
        }
        self._fundraisers_table.put_item(Item=item, ConditionExpression="attribute_not_exists(id)")
        return _item_to_fundraiser(item)

    def get_fundraiser(self, fundraiser_id: int) -> Fundraiser | None:
        item = self._fundraisers_table.get_item(Key={"id": int(fundraiser_id)}).get("Item")
        return _item_to_fundraiser(item) if item else None

    def list_fundraisers(
        self,
        creator_id: int | None = None,
        status: FundraiserStatus | None = None,
    ) -> list[Fundraiser]:
        if creator_id is not None:
            items = _query_all(
                self._fundraisers_table,
                IndexName=self.FUNDRAISER_CREATOR_INDEX,
                KeyConditionExpression=Key("creator_id").eq(int(creator_id)),
                ScanIndexForward=False,
            )
        else:
            items = _scan_all(self._fundraisers_table)
        fundraisers = [_item_to_fundraiser(item) for item in items]
        if status is not None:
            wanted = FundraiserStatus(status)
            fundraisers = [f for f in fundraisers if f.status == wanted]
        return sorted(fundraisers, key=lambda f: (f.created_at, f.id), reverse=True)

    def transition_fundraiser(
        self,
        fundraiser_id: int,
        from_status: FundraiserStatus,
        to_status: FundraiserStatus,
    ) -> bool:
        now = _utc_now()
        update_expression = "SET #status = :to_status, updated_at = :now"
        values: dict[str, Any] = {
            ":to_status": FundraiserStatus(to_status).value,
            ":from_status": FundraiserStatus(from_status).value,
            ":now": now,
        }
        if to_status == FundraiserStatus.COMPLETED:
            update_expression += ", completed_at = :now"
        try:
            self._fundraisers_table.update_item(
                Key={"id": int(fundraiser_id)},
                UpdateExpression=update_expression,
                ConditionExpression="attribute_exists(id) AND #status = :from_status",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues=values,
            )
            return True
        except ClientError as exc:
            if _error_code(exc) == "ConditionalCheckFailedException":
                return False
            raise

    def create_transaction(
        self,
        fundraiser_id: int,
        donor_id: int,
        donor_username: str | None,
        amount: int,
        currency: str,
        payment_method: str,
        notes: str | None,
    ) -> Transaction | None:
        item = {
            "id": self._next_id("transactions"),
            "fundraiser_id": int(fundraiser_id),
            "donor_id": int(donor_id),
            "donor_username": donor_username,
            "amount": int(amount),
            "currency": currency,
            "status": TransactionStatus.PENDING.value,
            "payment_method": payment_method,
            "notes": notes,
            "rejection_reason": None,
            "created_at": _utc_now(),
            "confirmed_at": None,
            "rejected_at": None,
        }
        transact_items = [
            {
                "ConditionCheck": {
                    "TableName": self._fundraisers_table.name,
                    "Key": {"id": int(fundraiser_id)},
                    "ConditionExpression": "#status = :active",
                    "ExpressionAttributeNames": {"#status": "status"},
                    "ExpressionAttributeValues": {":active": FundraiserStatus.ACTIVE.value},
                }
            },
            {
                "Put": {
                    "TableName": self._transactions_table.name,
                    "Item": item,
                    "ConditionExpression": "attribute_not_exists(id)",
                }
            },
        ]
        if not self._transact_write(transact_items):
            return None
        return _item_to_transaction(item)

    def get_transaction(self, transaction_id: int) -> Transaction | None:
        item = self._transactions_table.get_item(Key={"id": int(transaction_id)}).get("Item")
        return _item_to_transaction(item) if item else None

    def list_transactions(
        self,
        *,
        donor_id: int | None = None,
        fundraiser_id: int | None = None,
        status: TransactionStatus | None = None,
    ) -> list[Transaction]:
        if donor_id is not None:
            items = _query_all(
                self._transactions_table,
                IndexName=self.TRANSACTION_DONOR_INDEX,
                KeyConditionExpression=Key("donor_id").eq(int(donor_id)),
                ScanIndexForward=False,
            )
        elif fundraiser_id is not None:
            items = _query_all(
                self._transactions_table,
                IndexName=self.TRANSACTION_FUNDRAISER_INDEX,
                KeyConditionExpression=Key("fundraiser_id").eq(int(fundraiser_id)),
                ScanIndexForward=False,
            )
        else:
            items = _scan_all(self._transactions_table)
        transactions = [_item_to_transaction(item) for item in items]
        if fundraiser_id is not None:
            transactions = [tx for tx in transactions if tx.fundraiser_id == int(fundraiser_id)]
        if status is not None:
            wanted = TransactionStatus(status)
            transactions = [tx for tx in transactions if tx.status == wanted]
        return sorted(transactions, key=lambda tx: (tx.created_at, tx.id), reverse=True)

    def confirm_transaction(self, transaction_id: int) -> bool:
        current = self.get_transaction(transaction_id)
        if current is None or current.status != TransactionStatus.PENDING:
            return False
        now = _utc_now()
        transact_items = [
            {
                "Update": {
                    "TableName": self._transactions_table.name,
                    "Key": {"id": int(transaction_id)},
                    "UpdateExpression": "SET #status = :confirmed, confirmed_at = :now",
                    "ConditionExpression": "#status = :pending",
                    "ExpressionAttributeNames": {"#status": "status"},
                    "ExpressionAttributeValues": {
                        ":confirmed": TransactionStatus.CONFIRMED.value,
                        ":pending": TransactionStatus.PENDING.value,
                        ":now": now,
                    },
                }
            },
            {
                "Update": {
                    "TableName": self._fundraisers_table.name,
                    "Key": {"id": current.fundraiser_id},
                    "UpdateExpression": "ADD raised :amount SET updated_at = :now",
                    "ConditionExpression": "attribute_exists(id)",
                    "ExpressionAttributeValues": {
                        ":amount": int(current.amount),
                        ":now": now,
                    },
                }
            },
        ]
        client = self._ddb.meta.client
        try:
            client.transact_write_items(TransactItems=transact_items)
        except ClientError as exc:
            if _error_code(exc) != "TransactionCanceledException":
                raise
            reasons = _cancellation_codes(exc)
            if len(reasons) > 1 and reasons[1] == "ConditionalCheckFailed":
                raise NotFound(f"Fundraiser #{current.fundraiser_id} does not exist.") from exc
            return False
        return True

    def reject_transaction(self, transaction_id: int, reason: str | None) -> bool:
        try:
            self._transactions_table.update_item(
                Key={"id": int(transaction_id)},
                UpdateExpression="SET #status = :rejected, rejected_at = :now, rejection_reason = :reason",
                ConditionExpression="#status = :pending",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={
                    ":rejected": TransactionStatus.REJECTED.value,
                    ":pending": TransactionStatus.PENDING.value,
                    ":now": _utc_now(),
                    ":reason": reason,
                },
            )
            return True
        except ClientError as exc:
            if _error_code(exc) == "ConditionalCheckFailedException":
                return False
            raise

    def sum_confirmed_amount(self, fundraiser_id: int) -> int:
        transactions = self.list_transactions(fundraiser_id=fundraiser_id, status=TransactionStatus.CONFIRMED)
        return sum(tx.amount for tx in transactions)

    def _next_id(self, counter_name: str) -> int:
        response = self._counters_table.update_item(
            Key={"counter_name": counter_name},
            UpdateExpression="ADD next_id :incr",
            ExpressionAttributeValues={":incr": 1},
            ReturnValues="UPDATED_NEW",
        )
        return _to_int(response.get("Attributes", {}).get("next_id")) or 1

    def _transact_write(self, transact_items: list[dict[str, Any]]) -> bool:
        client = self._ddb.meta.client
        try:
            client.transact_write_items(TransactItems=transact_items)
            return True
        except ClientError as exc:
            if _error_code(exc) == "TransactionCanceledException":
                return False
            raise


def _error_code(exc: Exception) -> str:
    response = getattr(exc, "response", {})
    if not isinstance(response, dict):
        return ""
    return str(response.get("Error", {}).get("Code", ""))


def _cancellation_codes(exc: Exception) -> list[str]:
    """Per-item reason codes of a cancelled TransactWriteItems call, in request order."""
    response = getattr(exc, "response", {})
    if not isinstance(response, dict):
        return []
    return [str(reason.get("Code", "")) for reason in response.get("CancellationReasons") or []]


def _query_all(table: Any, **kwargs: Any) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    while True:
        response = table.query(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def _scan_all(table: Any) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    kwargs: dict[str, Any] = {}
    while True:
        response = table.scan(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def _to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(Decimal(text))
    except Exception:
        return None


def _item_to_user(item: dict[str, Any]) -> User:
    return User(
        telegram_id=int(item["telegram_id"]),
        username=item.get("username"),
        first_name=item.get("first_name"),
        last_name=item.get("last_name"),
        is_admin=bool(item.get("is_admin", False)),
        is_banned=bool(item.get("is_banned", False)),
        created_at=str(item.get("created_at", "")),
        last_active=item.get("last_active"),
    )


def _item_to_fundraiser(item: dict[str, Any]) -> Fundraiser:
    return Fundraiser(
        id=int(item["id"]),
        title=str(item.get("title", "")),
        description=str(item.get("description", "")),
        goal=_to_int(item.get("goal")) or 0,
        raised=_to_int(item.get("raised")) or 0,
        creator_id=int(item["creator_id"]),
        creator_username=item.get("creator_username"),
        status=FundraiserStatus(str(item.get("status", FundraiserStatus.ACTIVE.value))),
        deadline=item.get("deadline"),
        created_at=str(item.get("created_at", "")),
        updated_at=str(item.get("updated_at", "")),
        completed_at=item.get("completed_at"),
    )


def _item_to_transaction(item: dict[str, Any]) -> Transaction:
    return Transaction(
        id=int(item["id"]),
        fundraiser_id=int(item["fundraiser_id"]),
        donor_id=int(item["donor_id"]),
        donor_username=item.get("donor_username"),
        amount=_to_int(item.get("amount")) or 0,
        currency=str(item.get("currency", "")),
        status=TransactionStatus(str(item.get("status", TransactionStatus.PENDING.value))),
        payment_method=PaymentMethod(str(item.get("payment_method", PaymentMethod.TELEGRAM_STARS.value))),
        notes=item.get("notes"),
        rejection_reason=item.get("rejection_reason"),
        created_at=str(item.get("created_at", "")),
        confirmed_at=item.get("confirmed_at"),
        rejected_at=item.get("rejected_at"),
    )

from __future__ import annotations

from typing import Protocol

from core.enums import FundraiserStatus, TransactionStatus
from core.models import Fundraiser, Transaction, User


class LedgerRepositoryProtocol(Protocol):
    def mark_event_processed(self, event_id: str) -> bool: ...

    def touch_user(
        self,
        telegram_id: int,
        username: str | None,
        first_name: str | None,
        last_name: str | None,
    ) -> User: ...

    def get_user(self, telegram_id: int) -> User | None: ...

    def create_fundraiser(
        self,
        title: str,
        description: str,
        goal: int,
        creator_id: int,
        creator_username: str | None,
        deadline: str | None = None,
    ) -> Fundraiser: ...

    def get_fundraiser(self, fundraiser_id: int) -> Fundraiser | None: ...

    def list_fundraisers(
        self,
        creator_id: int | None = None,
        status: FundraiserStatus | None = None,
    ) -> list[Fundraiser]: ...

    def transition_fundraiser(
        self,
        fundraiser_id: int,
        from_status: FundraiserStatus,
        to_status: FundraiserStatus,
    ) -> bool: ...

    def create_transaction(
        self,
        fundraiser_id: int,
        donor_id: int,
        donor_username: str | None,
        amount: int,
        currency: str,
        payment_method: str,
        notes: str | None,
    ) -> Transaction | None: ...

    def get_transaction(self, transaction_id: int) -> Transaction | None: ...

    def list_transactions(
        self,
        *,
        donor_id: int | None = None,
        fundraiser_id: int | None = None,
        status: TransactionStatus | None = None,
    ) -> list[Transaction]: ...

    def confirm_transaction(self, transaction_id: int) -> bool:
        """False when the payment is no longer pending; NotFound when its fundraiser row is gone."""
        ...

    def reject_transaction(self, transaction_id: int, reason: str | None) -> bool: ...

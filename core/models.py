from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from core.enums import FundraiserStatus, PaymentMethod, TransactionStatus

# Amounts are stored as signed 64-bit integers.
MAX_AMOUNT = 2**63 - 1


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class InboundEvent:
    """One chat message as delivered by the messaging gateway."""

    sender_id: int
    chat_id: int
    text: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.username or self.first_name or str(self.sender_id)


@dataclass(slots=True)
class OutboundMessage:
    chat_id: int
    text: str


@dataclass(slots=True)
class User:
    telegram_id: int
    username: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    is_admin: bool = False
    is_banned: bool = False
    created_at: str = field(default_factory=utc_now_iso)
    last_active: Optional[str] = None


@dataclass(slots=True)
class Fundraiser:
    id: int
    title: str
    description: str
    goal: int
    raised: int
    creator_id: int
    creator_username: Optional[str]
    status: FundraiserStatus
    deadline: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    completed_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == FundraiserStatus.ACTIVE

    @property
    def percent_raised(self) -> int:
        if self.goal <= 0:
            return 0
        return round(self.raised * 100 / self.goal)


@dataclass(slots=True)
class Transaction:
    id: int
    fundraiser_id: int
    donor_id: int
    donor_username: Optional[str]
    amount: int
    currency: str
    status: TransactionStatus
    payment_method: PaymentMethod = PaymentMethod.TELEGRAM_STARS
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    confirmed_at: Optional[str] = None
    rejected_at: Optional[str] = None


@dataclass(slots=True)
class FundraiserDraft:
    title: Optional[str] = None
    goal: Optional[int] = None
    description: Optional[str] = None
    deadline: Optional[str] = None


@dataclass(slots=True)
class PaymentStatusReport:
    donor_id: int
    transactions: list[Transaction]
    confirmed_total: int

    @property
    def pending_count(self) -> int:
        return sum(1 for tx in self.transactions if tx.status == TransactionStatus.PENDING)

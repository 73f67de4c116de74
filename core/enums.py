from __future__ import annotations

from enum import Enum


class FundraiserStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"

    @property
    def is_final(self) -> bool:
        return self is not TransactionStatus.PENDING


class PaymentMethod(str, Enum):
    TELEGRAM_STARS = "telegram_stars"


class WizardStep(str, Enum):
    TITLE = "TITLE"
    GOAL_AMOUNT = "GOAL_AMOUNT"
    DESCRIPTION = "DESCRIPTION"
    DEADLINE = "DEADLINE"
    CONFIRMATION = "CONFIRMATION"


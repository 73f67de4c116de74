from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import NamedTuple

from core.enums import WizardStep
from core.models import FundraiserDraft


class SessionKey(NamedTuple):
    user_id: int
    chat_id: int


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ConversationSession:
    key: SessionKey
    step: WizardStep
    draft: FundraiserDraft = field(default_factory=FundraiserDraft)
    username: str | None = None
    touched_at: datetime = field(default_factory=_utc_now)

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum

from core.enums import WizardStep
from core.models import MAX_AMOUNT, FundraiserDraft
from tgbot import message_templates

AFFIRMATIVE_REPLIES = frozenset({"yes", "y", "да"})

_NON_DIGIT_RE = re.compile(r"\D+")
_DATE_SEPARATOR_RE = re.compile(r"[./-]")

STEP_ORDER = (
    WizardStep.TITLE,
    WizardStep.GOAL_AMOUNT,
    WizardStep.DESCRIPTION,
    WizardStep.DEADLINE,
    WizardStep.CONFIRMATION,
)


class Effect(str, Enum):
    NONE = "none"
    CREATE_FUNDRAISER = "create_fundraiser"
    DISCARD = "discard"


@dataclass(frozen=True, slots=True)
class Transition:
    step: WizardStep | None
    draft: FundraiserDraft
    reply: str | None
    effect: Effect = Effect.NONE

    @property
    def is_terminal(self) -> bool:
        return self.step is None


def can_transition(current: WizardStep, target: WizardStep) -> bool:
    if current == target:
        return True
    index = STEP_ORDER.index(current)
    return index + 1 < len(STEP_ORDER) and STEP_ORDER[index + 1] == target


def parse_goal_amount(text: str) -> int | None:
    digits = _NON_DIGIT_RE.sub("", text or "")
    if not digits:
        return None
    amount = int(digits)
    return amount if 0 < amount <= MAX_AMOUNT else None


def is_deadline_like(text: str) -> bool:
    # Syntax only: "31.13.2023" passes on purpose.
    parts = _DATE_SEPARATOR_RE.split((text or "").strip())
    return len(parts) == 3 and all(part.strip() for part in parts)


def is_affirmative(text: str) -> bool:
    return (text or "").strip().lower() in AFFIRMATIVE_REPLIES


def advance(step: WizardStep, draft: FundraiserDraft, text: str | None) -> Transition:
    raw = text or ""

    if step == WizardStep.TITLE:
        if not raw.strip():
            return Transition(step, draft, message_templates.build_ask_title_message())
        return Transition(
            WizardStep.GOAL_AMOUNT,
            replace(draft, title=raw),
            message_templates.build_ask_goal_message(),
        )

    if step == WizardStep.GOAL_AMOUNT:
        amount = parse_goal_amount(raw)
        if amount is None:
            return Transition(step, draft, message_templates.build_invalid_goal_message())
        return Transition(
            WizardStep.DESCRIPTION,
            replace(draft, goal=amount),
            message_templates.build_ask_description_message(),
        )

    if step == WizardStep.DESCRIPTION:
        if not raw.strip():
            return Transition(step, draft, message_templates.build_ask_description_message())
        return Transition(
            WizardStep.DEADLINE,
            replace(draft, description=raw),
            message_templates.build_ask_deadline_message(),
        )

    if step == WizardStep.DEADLINE:
        if not is_deadline_like(raw):
            return Transition(step, draft, message_templates.build_invalid_deadline_message())
        updated = replace(draft, deadline=raw.strip())
        return Transition(
            WizardStep.CONFIRMATION,
            updated,
            message_templates.build_draft_summary_message(updated),
        )

    if step == WizardStep.CONFIRMATION:
        if is_affirmative(raw):
            return Transition(None, draft, None, Effect.CREATE_FUNDRAISER)
        return Transition(None, draft, message_templates.build_creation_cancelled_message(), Effect.DISCARD)

    raise ValueError(f"unknown wizard step: {step}")

from __future__ import annotations

import unittest

from conversation.state_machine import (
    Effect,
    advance,
    can_transition,
    is_affirmative,
    is_deadline_like,
    parse_goal_amount,
)
from core.enums import WizardStep
from core.models import MAX_AMOUNT, FundraiserDraft


class StateMachineTest(unittest.TestCase):
    def test_allows_only_same_or_next_step(self) -> None:
        self.assertTrue(can_transition(WizardStep.TITLE, WizardStep.TITLE))
        self.assertTrue(can_transition(WizardStep.TITLE, WizardStep.GOAL_AMOUNT))
        self.assertTrue(can_transition(WizardStep.DEADLINE, WizardStep.CONFIRMATION))
        self.assertFalse(can_transition(WizardStep.TITLE, WizardStep.DESCRIPTION))
        self.assertFalse(can_transition(WizardStep.CONFIRMATION, WizardStep.TITLE))
        self.assertFalse(can_transition(WizardStep.GOAL_AMOUNT, WizardStep.TITLE))

    def test_parse_goal_amount_strips_non_digits(self) -> None:
        self.assertEqual(parse_goal_amount("5000"), 5000)
        self.assertEqual(parse_goal_amount("5 000 RUB"), 5000)
        self.assertIsNone(parse_goal_amount("abc"))
        self.assertIsNone(parse_goal_amount("0"))
        self.assertIsNone(parse_goal_amount(""))
        self.assertEqual(parse_goal_amount(str(MAX_AMOUNT)), MAX_AMOUNT)
        self.assertIsNone(parse_goal_amount("99999999999999999999"))

    def test_deadline_requires_three_parts(self) -> None:
        self.assertTrue(is_deadline_like("31.12.2023"))
        self.assertTrue(is_deadline_like("2023-12-31"))
        self.assertTrue(is_deadline_like("31/12/2023"))
        self.assertTrue(is_deadline_like("31.13.2023"))
        self.assertFalse(is_deadline_like("31.12"))
        self.assertFalse(is_deadline_like("tomorrow"))
        self.assertFalse(is_deadline_like("31..2023"))

    def test_affirmative_replies(self) -> None:
        for text in ("yes", "YES", " y ", "да", "Да"):
            self.assertTrue(is_affirmative(text), text)
        for text in ("no", "maybe", "", "yes please"):
            self.assertFalse(is_affirmative(text), text)

    def test_title_step_moves_to_goal(self) -> None:
        transition = advance(WizardStep.TITLE, FundraiserDraft(), "Birthday Fund")
        self.assertEqual(transition.step, WizardStep.GOAL_AMOUNT)
        self.assertEqual(transition.draft.title, "Birthday Fund")
        self.assertIn("amount", transition.reply or "")

    def test_invalid_goal_keeps_step_and_draft(self) -> None:
        draft = FundraiserDraft(title="Birthday Fund")
        transition = advance(WizardStep.GOAL_AMOUNT, draft, "abc")
        self.assertEqual(transition.step, WizardStep.GOAL_AMOUNT)
        self.assertEqual(transition.draft, draft)
        self.assertIn("valid amount", transition.reply or "")
        self.assertEqual(transition.effect, Effect.NONE)

    def test_invalid_deadline_keeps_step(self) -> None:
        draft = FundraiserDraft(title="t", goal=10, description="d")
        transition = advance(WizardStep.DEADLINE, draft, "next week")
        self.assertEqual(transition.step, WizardStep.DEADLINE)
        self.assertIsNone(transition.draft.deadline)

    def test_deadline_step_shows_summary(self) -> None:
        draft = FundraiserDraft(title="Birthday Fund", goal=5000, description="gift money")
        transition = advance(WizardStep.DEADLINE, draft, "31.12.2023")
        self.assertEqual(transition.step, WizardStep.CONFIRMATION)
        self.assertEqual(transition.draft.deadline, "31.12.2023")
        self.assertIn("Birthday Fund", transition.reply or "")
        self.assertIn("5,000", transition.reply or "")

    def test_confirmation_yes_creates(self) -> None:
        draft = FundraiserDraft(title="t", goal=10, description="d", deadline="1.1.2030")
        transition = advance(WizardStep.CONFIRMATION, draft, "yes")
        self.assertTrue(transition.is_terminal)
        self.assertEqual(transition.effect, Effect.CREATE_FUNDRAISER)
        self.assertIsNone(transition.reply)

    def test_confirmation_other_text_discards(self) -> None:
        draft = FundraiserDraft(title="t", goal=10, description="d", deadline="1.1.2030")
        transition = advance(WizardStep.CONFIRMATION, draft, "maybe")
        self.assertTrue(transition.is_terminal)
        self.assertEqual(transition.effect, Effect.DISCARD)
        self.assertIn("cancelled", transition.reply or "")


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import sqlite3
import tempfile
import unittest
from pathlib import Path

from core.enums import FundraiserStatus, TransactionStatus
from core.errors import NotFound
from ledger.repository import LedgerRepository


class LedgerRepositoryTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.repository = LedgerRepository(str(Path(self._tmp.name) / "nested" / "ledger.db"))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _fundraiser(self, creator_id: int = 1):
        return self.repository.create_fundraiser(
            title="Birthday Fund",
            description="gift money",
            goal=5000,
            creator_id=creator_id,
            creator_username="organizer",
            deadline="31.12.2023",
        )

    def test_mark_event_processed_once(self) -> None:
        self.assertTrue(self.repository.mark_event_processed("update:1"))
        self.assertFalse(self.repository.mark_event_processed("update:1"))
        self.assertFalse(self.repository.mark_event_processed(""))

    def test_touch_user_upserts_and_keeps_flags(self) -> None:
        created = self.repository.touch_user(42, "alice", "Alice", None)
        self.assertFalse(created.is_banned)
        self.repository.set_user_flags(42, is_banned=True)
        updated = self.repository.touch_user(42, "alice_new", "Alice", "Smith")
        self.assertTrue(updated.is_banned)
        self.assertEqual(updated.username, "alice_new")
        self.assertEqual(updated.created_at, created.created_at)
        self.assertIsNone(self.repository.get_user(43))

    def test_create_fundraiser_defaults(self) -> None:
        fundraiser = self._fundraiser()
        self.assertEqual(fundraiser.raised, 0)
        self.assertEqual(fundraiser.status, FundraiserStatus.ACTIVE)
        self.assertEqual(self.repository.get_fundraiser(fundraiser.id), fundraiser)

    def test_schema_rejects_non_positive_goal(self) -> None:
        with self.assertRaises(sqlite3.IntegrityError):
            self.repository.create_fundraiser("t", "d", 0, creator_id=1, creator_username=None)

    def test_list_fundraisers_filters(self) -> None:
        first = self._fundraiser(creator_id=1)
        second = self._fundraiser(creator_id=1)
        self._fundraiser(creator_id=2)
        self.repository.transition_fundraiser(first.id, FundraiserStatus.ACTIVE, FundraiserStatus.COMPLETED)

        mine = self.repository.list_fundraisers(creator_id=1)
        self.assertEqual([f.id for f in mine], [second.id, first.id])
        active = self.repository.list_fundraisers(creator_id=1, status=FundraiserStatus.ACTIVE)
        self.assertEqual([f.id for f in active], [second.id])

    def test_transition_is_conditional(self) -> None:
        fundraiser = self._fundraiser()
        self.assertTrue(
            self.repository.transition_fundraiser(fundraiser.id, FundraiserStatus.ACTIVE, FundraiserStatus.BLOCKED)
        )
        self.assertFalse(
            self.repository.transition_fundraiser(fundraiser.id, FundraiserStatus.ACTIVE, FundraiserStatus.COMPLETED)
        )

    def test_create_transaction_requires_active_fundraiser(self) -> None:
        fundraiser = self._fundraiser()
        tx = self.repository.create_transaction(fundraiser.id, 2, "donor", 100, "RUB", "telegram_stars", None)
        assert tx is not None
        self.assertEqual(tx.status, TransactionStatus.PENDING)

        self.repository.transition_fundraiser(fundraiser.id, FundraiserStatus.ACTIVE, FundraiserStatus.BLOCKED)
        self.assertIsNone(
            self.repository.create_transaction(fundraiser.id, 2, "donor", 100, "RUB", "telegram_stars", None)
        )
        self.assertIsNone(self.repository.create_transaction(999, 2, "donor", 100, "RUB", "telegram_stars", None))

    def test_confirm_and_reject_are_single_shot(self) -> None:
        fundraiser = self._fundraiser()
        first = self.repository.create_transaction(fundraiser.id, 2, None, 100, "RUB", "telegram_stars", None)
        second = self.repository.create_transaction(fundraiser.id, 3, None, 50, "RUB", "telegram_stars", "note")
        assert first is not None and second is not None

        self.assertTrue(self.repository.confirm_transaction(first.id))
        self.assertFalse(self.repository.confirm_transaction(first.id))
        self.assertFalse(self.repository.reject_transaction(first.id, "late"))
        self.assertTrue(self.repository.reject_transaction(second.id, "duplicate"))
        self.assertFalse(self.repository.confirm_transaction(second.id))

        refreshed = self.repository.get_fundraiser(fundraiser.id)
        assert refreshed is not None
        self.assertEqual(refreshed.raised, 100)
        self.assertEqual(self.repository.sum_confirmed_amount(fundraiser.id), 100)

    def test_confirm_with_missing_fundraiser_row_rolls_back(self) -> None:
        fundraiser = self._fundraiser()
        tx = self.repository.create_transaction(fundraiser.id, 2, None, 100, "RUB", "telegram_stars", None)
        assert tx is not None
        with sqlite3.connect(self.repository.sqlite_path) as conn:
            conn.execute("DELETE FROM fundraisers WHERE id = ?", (fundraiser.id,))
        conn.close()

        with self.assertRaises(NotFound):
            self.repository.confirm_transaction(tx.id)
        stored = self.repository.get_transaction(tx.id)
        assert stored is not None
        self.assertEqual(stored.status, TransactionStatus.PENDING)

    def test_list_transactions_filters(self) -> None:
        fundraiser = self._fundraiser()
        first = self.repository.create_transaction(fundraiser.id, 2, None, 100, "RUB", "telegram_stars", None)
        second = self.repository.create_transaction(fundraiser.id, 3, None, 50, "RUB", "telegram_stars", None)
        assert first is not None and second is not None
        self.repository.confirm_transaction(first.id)

        self.assertEqual([tx.id for tx in self.repository.list_transactions(donor_id=2)], [first.id])
        pending = self.repository.list_transactions(fundraiser_id=fundraiser.id, status=TransactionStatus.PENDING)
        self.assertEqual([tx.id for tx in pending], [second.id])


if __name__ == "__main__":
    unittest.main()

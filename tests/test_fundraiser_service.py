from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from core.enums import FundraiserStatus
from core.errors import Forbidden, InvalidState, NotFound
from ledger.repository import LedgerRepository
from payments.fundraiser_service import FundraiserService
from payments.payment_service import PaymentService


class FundraiserServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.repository = LedgerRepository(str(Path(self._tmp.name) / "ledger.db"))
        self.service = FundraiserService(self.repository)
        self.fundraiser = self.repository.create_fundraiser(
            title="Team gift",
            description="for the coach",
            goal=1000,
            creator_id=1,
            creator_username="organizer",
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_list_for_creator(self) -> None:
        self.repository.create_fundraiser("Other", "d", 10, creator_id=2, creator_username=None)
        listed = self.service.list_for_creator(1)
        self.assertEqual([f.id for f in listed], [self.fundraiser.id])

    def test_start_collection_requires_creator_and_active(self) -> None:
        self.assertEqual(self.service.start_collection(self.fundraiser.id, 1).id, self.fundraiser.id)
        with self.assertRaises(Forbidden):
            self.service.start_collection(self.fundraiser.id, 2)
        with self.assertRaises(NotFound):
            self.service.start_collection(999, 1)
        with self.assertRaises(NotFound):
            self.service.finish(999, 1)
        with self.assertRaises(NotFound):
            self.service.cancel(999, 1)

    def test_finish_sets_completed(self) -> None:
        finished = self.service.finish(self.fundraiser.id, 1)
        self.assertEqual(finished.status, FundraiserStatus.COMPLETED)
        self.assertIsNotNone(finished.completed_at)
        with self.assertRaises(InvalidState):
            self.service.finish(self.fundraiser.id, 1)
        with self.assertRaises(InvalidState):
            self.service.start_collection(self.fundraiser.id, 1)

    def test_cancel_blocks_new_payments(self) -> None:
        cancelled = self.service.cancel(self.fundraiser.id, 1)
        self.assertEqual(cancelled.status, FundraiserStatus.BLOCKED)
        self.assertIsNone(cancelled.completed_at)
        with self.assertRaises(InvalidState):
            PaymentService(self.repository).create_payment(self.fundraiser.id, 2, 100)

    def test_cancel_by_other_user_is_forbidden(self) -> None:
        with self.assertRaises(Forbidden):
            self.service.cancel(self.fundraiser.id, 2)
        fundraiser = self.repository.get_fundraiser(self.fundraiser.id)
        assert fundraiser is not None
        self.assertEqual(fundraiser.status, FundraiserStatus.ACTIVE)


if __name__ == "__main__":
    unittest.main()

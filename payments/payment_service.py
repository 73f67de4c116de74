from __future__ import annotations

import logging

from core.enums import PaymentMethod, TransactionStatus
from core.errors import AlreadyFinalized, Forbidden, InvalidArgument, InvalidState, NotFound
from core.models import MAX_AMOUNT, Fundraiser, PaymentStatusReport, Transaction
from ledger.repository_interface import LedgerRepositoryProtocol

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "RUB"


class PaymentService:
    """Pending payment creation and organizer confirm/reject transitions.

    ``Fundraiser.raised`` is changed only through ``confirm_payment``; the
    repository applies the status change and the increment as one write.
    """

    def __init__(
        self,
        repository: LedgerRepositoryProtocol,
        currency: str = DEFAULT_CURRENCY,
        payment_method: PaymentMethod | str = PaymentMethod.TELEGRAM_STARS,
    ) -> None:
        self.repository = repository
        self.currency = (currency or DEFAULT_CURRENCY).strip().upper()
        self.payment_method = PaymentMethod(payment_method)

    def create_payment(
        self,
        fundraiser_id: int,
        donor_id: int,
        amount: int,
        note: str | None = None,
        donor_username: str | None = None,
    ) -> Transaction:
        fundraiser = self.repository.get_fundraiser(fundraiser_id)
        if fundraiser is None:
            raise NotFound(f"Fundraiser #{fundraiser_id} does not exist.")
        if not fundraiser.is_active:
            raise InvalidState(f"Fundraiser #{fundraiser_id} is {fundraiser.status.value} and does not accept payments.")
        if int(donor_id) == fundraiser.creator_id:
            raise Forbidden("You cannot pay into your own fundraiser.")
        if int(amount) <= 0:
            raise InvalidArgument("The amount must be greater than zero.")
        if int(amount) > MAX_AMOUNT:
            raise InvalidArgument("The amount is too large.")

        note_text = (note or "").strip() or None
        transaction = self.repository.create_transaction(
            fundraiser_id=fundraiser.id,
            donor_id=int(donor_id),
            donor_username=donor_username,
            amount=int(amount),
            currency=self.currency,
            payment_method=self.payment_method.value,
            notes=note_text,
        )
        if transaction is None:
            # Fundraiser left ACTIVE between the read and the insert.
            raise InvalidState(f"Fundraiser #{fundraiser_id} no longer accepts payments.")
        logger.info(
            "payment-created id=%s fundraiser_id=%s donor_id=%s amount=%s",
            transaction.id,
            transaction.fundraiser_id,
            transaction.donor_id,
            transaction.amount,
        )
        return transaction

    def confirm_payment(self, transaction_id: int, acting_user_id: int) -> Transaction:
        transaction, _ = self._load_for_organizer(transaction_id, acting_user_id)
        if not self.repository.confirm_transaction(transaction.id):
            raise AlreadyFinalized(f"Payment #{transaction.id} has already been processed.")
        logger.info("payment-confirmed id=%s by=%s amount=%s", transaction.id, acting_user_id, transaction.amount)
        return self._reload(transaction.id)

    def reject_payment(self, transaction_id: int, acting_user_id: int, reason: str | None = None) -> Transaction:
        transaction, _ = self._load_for_organizer(transaction_id, acting_user_id)
        reason_text = (reason or "").strip() or None
        if not self.repository.reject_transaction(transaction.id, reason_text):
            raise AlreadyFinalized(f"Payment #{transaction.id} has already been processed.")
        logger.info("payment-rejected id=%s by=%s", transaction.id, acting_user_id)
        return self._reload(transaction.id)

    def get_payment_status(self, user_id: int) -> PaymentStatusReport:
        transactions = self.repository.list_transactions(donor_id=int(user_id))
        confirmed_total = sum(tx.amount for tx in transactions if tx.status == TransactionStatus.CONFIRMED)
        return PaymentStatusReport(donor_id=int(user_id), transactions=transactions, confirmed_total=confirmed_total)

    def get_transaction_for_viewer(self, transaction_id: int, viewer_id: int) -> tuple[Transaction, Fundraiser]:
        transaction = self.repository.get_transaction(transaction_id)
        if transaction is None:
            raise NotFound(f"Payment #{transaction_id} does not exist.")
        fundraiser = self.repository.get_fundraiser(transaction.fundraiser_id)
        if fundraiser is None:
            raise NotFound(f"Fundraiser #{transaction.fundraiser_id} does not exist.")
        if int(viewer_id) not in (transaction.donor_id, fundraiser.creator_id):
            raise Forbidden("Only the donor or the organizer can view this payment.")
        return transaction, fundraiser

    def list_pending_for_organizer(self, organizer_id: int) -> list[tuple[Transaction, Fundraiser]]:
        pending: list[tuple[Transaction, Fundraiser]] = []
        for fundraiser in self.repository.list_fundraisers(creator_id=int(organizer_id)):
            for transaction in self.repository.list_transactions(
                fundraiser_id=fundraiser.id,
                status=TransactionStatus.PENDING,
            ):
                pending.append((transaction, fundraiser))
        pending.sort(key=lambda pair: (pair[0].created_at, pair[0].id))
        return pending

    def _load_for_organizer(self, transaction_id: int, acting_user_id: int) -> tuple[Transaction, Fundraiser]:
        transaction = self.repository.get_transaction(transaction_id)
        if transaction is None:
            raise NotFound(f"Payment #{transaction_id} does not exist.")
        fundraiser = self.repository.get_fundraiser(transaction.fundraiser_id)
        if fundraiser is None:
            raise NotFound(f"Fundraiser #{transaction.fundraiser_id} does not exist.")
        if int(acting_user_id) != fundraiser.creator_id:
            raise Forbidden("Only the organizer of the fundraiser can confirm or reject this payment.")
        if transaction.status.is_final:
            raise AlreadyFinalized(f"Payment #{transaction.id} is already {transaction.status.value}.")
        return transaction, fundraiser

    def _reload(self, transaction_id: int) -> Transaction:
        transaction = self.repository.get_transaction(transaction_id)
        if transaction is None:
            raise NotFound(f"Payment #{transaction_id} does not exist.")
        return transaction

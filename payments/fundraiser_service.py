from __future__ import annotations

import logging

from core.enums import FundraiserStatus
from core.errors import Forbidden, InvalidState, NotFound
from core.models import Fundraiser
from ledger.repository_interface import LedgerRepositoryProtocol

logger = logging.getLogger(__name__)


class FundraiserService:
    def __init__(self, repository: LedgerRepositoryProtocol) -> None:
        self.repository = repository

    def list_for_creator(self, creator_id: int) -> list[Fundraiser]:
        return self.repository.list_fundraisers(creator_id=int(creator_id))

    def start_collection(self, fundraiser_id: int, acting_user_id: int) -> Fundraiser:
        return self._load_active_owned(fundraiser_id, acting_user_id)

    def finish(self, fundraiser_id: int, acting_user_id: int) -> Fundraiser:
        return self._close(fundraiser_id, acting_user_id, FundraiserStatus.COMPLETED)

    def cancel(self, fundraiser_id: int, acting_user_id: int) -> Fundraiser:
        return self._close(fundraiser_id, acting_user_id, FundraiserStatus.BLOCKED)

    def _close(self, fundraiser_id: int, acting_user_id: int, target: FundraiserStatus) -> Fundraiser:
        fundraiser = self._load_active_owned(fundraiser_id, acting_user_id)
        if not self.repository.transition_fundraiser(fundraiser.id, FundraiserStatus.ACTIVE, target):
            raise InvalidState(f"Fundraiser #{fundraiser.id} is no longer active.")
        logger.info("fundraiser-%s id=%s by=%s", target.value, fundraiser.id, acting_user_id)
        updated = self.repository.get_fundraiser(fundraiser.id)
        if updated is None:
            raise NotFound(f"Fundraiser #{fundraiser.id} does not exist.")
        return updated

    def _load_active_owned(self, fundraiser_id: int, acting_user_id: int) -> Fundraiser:
        fundraiser = self.repository.get_fundraiser(fundraiser_id)
        if fundraiser is None:
            raise NotFound(f"Fundraiser #{fundraiser_id} does not exist.")
        if int(acting_user_id) != fundraiser.creator_id:
            raise Forbidden("Only the organizer can manage this fundraiser.")
        if not fundraiser.is_active:
            raise InvalidState(f"Fundraiser #{fundraiser.id} is already {fundraiser.status.value}.")
        return fundraiser

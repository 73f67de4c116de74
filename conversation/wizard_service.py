from __future__ import annotations

import logging

from conversation.models import ConversationSession, SessionKey
from conversation.session_store import SessionStore
from conversation.state_machine import Effect, advance, can_transition
from core.enums import WizardStep
from core.models import InboundEvent
from ledger.repository_interface import LedgerRepositoryProtocol
from tgbot import message_templates

logger = logging.getLogger(__name__)


class FundraiserWizard:
    """Drives the fundraiser creation dialog for one (user, chat) at a time."""

    def __init__(self, repository: LedgerRepositoryProtocol, store: SessionStore) -> None:
        self.repository = repository
        self.store = store

    def start(self, event: InboundEvent) -> str:
        key = SessionKey(event.sender_id, event.chat_id)
        with self.store.lock(key):
            replaced = self.store.get(key) is not None
            self.store.upsert(
                key,
                ConversationSession(key=key, step=WizardStep.TITLE, username=event.display_name),
            )
        if replaced:
            logger.info("wizard-restarted user_id=%s chat_id=%s", key.user_id, key.chat_id)
        return message_templates.build_wizard_start_message()

    def has_session(self, event: InboundEvent) -> bool:
        return self.store.get(SessionKey(event.sender_id, event.chat_id)) is not None

    def cancel(self, event: InboundEvent) -> str | None:
        key = SessionKey(event.sender_id, event.chat_id)
        with self.store.lock(key):
            if not self.store.delete(key):
                return None
        return message_templates.build_creation_cancelled_message()

    def handle_text(self, event: InboundEvent) -> str | None:
        """Apply one free-text message. Returns None when no session is active."""
        key = SessionKey(event.sender_id, event.chat_id)
        with self.store.lock(key):
            session = self.store.get(key)
            if session is None:
                return None

            transition = advance(session.step, session.draft, event.text)

            if transition.effect == Effect.CREATE_FUNDRAISER:
                draft = transition.draft
                # The dialog ends here even if the write fails.
                self.store.delete(key)
                fundraiser = self.repository.create_fundraiser(
                    title=str(draft.title),
                    description=str(draft.description),
                    goal=int(draft.goal or 0),
                    creator_id=event.sender_id,
                    creator_username=session.username or event.display_name,
                    deadline=draft.deadline,
                )
                logger.info("fundraiser-created id=%s creator_id=%s", fundraiser.id, fundraiser.creator_id)
                return message_templates.build_fundraiser_created_message(fundraiser)

            if transition.effect == Effect.DISCARD or transition.step is None:
                self.store.delete(key)
                return transition.reply

            if not can_transition(session.step, transition.step):
                raise RuntimeError(f"illegal wizard transition {session.step} -> {transition.step}")
            session.step = transition.step
            session.draft = transition.draft
            self.store.upsert(key, session)
            return transition.reply

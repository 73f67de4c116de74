from __future__ import annotations

import logging
from typing import Callable

from conversation.wizard_service import FundraiserWizard
from core.errors import LedgerError, NotFound
from core.models import Fundraiser, InboundEvent, OutboundMessage
from ledger.repository_interface import LedgerRepositoryProtocol
from payments.fundraiser_service import FundraiserService
from payments.payment_service import PaymentService
from tgbot import message_templates
from tgbot.commands import USAGES, Command, ParsedCommand, parse_amount, parse_command, parse_positive_id

logger = logging.getLogger(__name__)

Handler = Callable[[InboundEvent, ParsedCommand], list[OutboundMessage]]


class CommandRouter:
    """Turns one inbound event into the replies (and notifications) to send."""

    def __init__(
        self,
        repository: LedgerRepositoryProtocol,
        wizard: FundraiserWizard,
        payments: PaymentService,
        fundraisers: FundraiserService,
        notify_counterparty: bool = True,
    ) -> None:
        self.repository = repository
        self.wizard = wizard
        self.payments = payments
        self.fundraisers = fundraisers
        self.notify_counterparty = notify_counterparty
        self._handlers: dict[Command, Handler] = {
            Command.START: self._handle_start,
            Command.HELP: self._handle_help,
            Command.NEW_FUNDRAISER: self._handle_new_fundraiser,
            Command.MY_FUNDRAISERS: self._handle_my_fundraisers,
            Command.PAID: self._handle_paid,
            Command.CONFIRM: self._handle_confirm,
            Command.REJECT: self._handle_reject,
            Command.START_COLLECTION: self._handle_start_collection,
            Command.FINISH: self._handle_finish,
            Command.CANCEL: self._handle_cancel,
            Command.MY_PAYMENTS: self._handle_my_payments,
            Command.STATUS: self._handle_status,
            Command.PENDING: self._handle_pending,
        }
        missing = [command.value for command in Command if command not in self._handlers]
        if missing:
            raise RuntimeError(f"commands without handler: {', '.join(missing)}")

    def dispatch(self, event: InboundEvent) -> list[OutboundMessage]:
        user = self.repository.touch_user(
            telegram_id=event.sender_id,
            username=event.username,
            first_name=event.first_name,
            last_name=event.last_name,
        )
        if user.is_banned:
            logger.info("banned-user-ignored user_id=%s", event.sender_id)
            return [self._reply(event, message_templates.build_banned_message())]

        if event.text is None:
            return [self._reply(event, message_templates.build_text_only_message())]

        parsed = parse_command(event.text)
        if parsed is not None:
            if parsed.command is None:
                return [self._reply(event, message_templates.build_unknown_command_message())]
            handler = self._handlers[parsed.command]
            try:
                return handler(event, parsed)
            except LedgerError as exc:
                logger.info(
                    "command-refused command=%s user_id=%s code=%s",
                    parsed.command.value,
                    event.sender_id,
                    exc.code,
                )
                return [self._reply(event, message_templates.build_error_message(exc))]

        reply = self.wizard.handle_text(event)
        if reply is None:
            reply = message_templates.build_use_command_message()
        return [self._reply(event, reply)]

    def _handle_start(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        return [self._reply(event, message_templates.build_welcome_message(event.first_name))]

    def _handle_help(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        return [self._reply(event, message_templates.build_help_message())]

    def _handle_new_fundraiser(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        return [self._reply(event, self.wizard.start(event))]

    def _handle_my_fundraisers(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        fundraisers = self.fundraisers.list_for_creator(event.sender_id)
        text = message_templates.build_fundraiser_list_message(fundraisers, self.payments.currency)
        return [self._reply(event, text)]

    def _handle_paid(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        usage = USAGES[Command.PAID]
        args = parsed.split_args(3)
        if len(args) < 2:
            return [self._reply(event, message_templates.build_usage_message(usage))]
        fundraiser_id = parse_positive_id(args[0], usage)
        amount = parse_amount(args[1], usage)
        note = args[2] if len(args) > 2 else None

        transaction = self.payments.create_payment(
            fundraiser_id=fundraiser_id,
            donor_id=event.sender_id,
            amount=amount,
            note=note,
            donor_username=event.display_name,
        )
        fundraiser = self._fundraiser(transaction.fundraiser_id)
        messages = [self._reply(event, message_templates.build_payment_created_message(transaction, fundraiser))]
        if self.notify_counterparty:
            messages.append(
                OutboundMessage(
                    chat_id=fundraiser.creator_id,
                    text=message_templates.build_organizer_payment_notice(transaction, fundraiser),
                )
            )
        return messages

    def _handle_confirm(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        usage = USAGES[Command.CONFIRM]
        args = parsed.args
        if not args:
            return [self._reply(event, message_templates.build_usage_message(usage))]
        transaction = self.payments.confirm_payment(parse_positive_id(args[0], usage), event.sender_id)
        fundraiser = self._fundraiser(transaction.fundraiser_id)
        messages = [self._reply(event, message_templates.build_payment_confirmed_message(transaction, fundraiser))]
        if self.notify_counterparty:
            messages.append(
                OutboundMessage(
                    chat_id=transaction.donor_id,
                    text=message_templates.build_donor_confirmed_notice(transaction, fundraiser),
                )
            )
        return messages

    def _handle_reject(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        usage = USAGES[Command.REJECT]
        args = parsed.split_args(2)
        if not args:
            return [self._reply(event, message_templates.build_usage_message(usage))]
        reason = args[1] if len(args) > 1 else None
        transaction = self.payments.reject_payment(parse_positive_id(args[0], usage), event.sender_id, reason)
        messages = [self._reply(event, message_templates.build_payment_rejected_message(transaction))]
        if self.notify_counterparty:
            fundraiser = self._fundraiser(transaction.fundraiser_id)
            messages.append(
                OutboundMessage(
                    chat_id=transaction.donor_id,
                    text=message_templates.build_donor_rejected_notice(transaction, fundraiser),
                )
            )
        return messages

    def _handle_start_collection(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        usage = USAGES[Command.START_COLLECTION]
        args = parsed.args
        if not args:
            return [self._reply(event, message_templates.build_usage_message(usage))]
        fundraiser = self.fundraisers.start_collection(parse_positive_id(args[0], usage), event.sender_id)
        text = message_templates.build_collection_started_message(fundraiser, self.payments.currency)
        return [self._reply(event, text)]

    def _handle_finish(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        usage = USAGES[Command.FINISH]
        args = parsed.args
        if not args:
            return [self._reply(event, message_templates.build_usage_message(usage))]
        fundraiser = self.fundraisers.finish(parse_positive_id(args[0], usage), event.sender_id)
        text = message_templates.build_fundraiser_finished_message(fundraiser, self.payments.currency)
        return [self._reply(event, text)]

    def _handle_cancel(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        args = parsed.args
        if not args:
            reply = self.wizard.cancel(event)
            return [self._reply(event, reply or message_templates.build_nothing_to_cancel_message())]
        fundraiser = self.fundraisers.cancel(parse_positive_id(args[0], USAGES[Command.CANCEL]), event.sender_id)
        return [self._reply(event, message_templates.build_fundraiser_cancelled_message(fundraiser))]

    def _handle_my_payments(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        report = self.payments.get_payment_status(event.sender_id)
        return [self._reply(event, message_templates.build_payment_status_message(report, self.payments.currency))]

    def _handle_status(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        usage = USAGES[Command.STATUS]
        args = parsed.args
        if not args:
            return [self._reply(event, message_templates.build_usage_message(usage))]
        transaction, fundraiser = self.payments.get_transaction_for_viewer(
            parse_positive_id(args[0], usage),
            event.sender_id,
        )
        return [self._reply(event, message_templates.build_transaction_detail_message(transaction, fundraiser))]

    def _handle_pending(self, event: InboundEvent, parsed: ParsedCommand) -> list[OutboundMessage]:
        pending = self.payments.list_pending_for_organizer(event.sender_id)
        return [self._reply(event, message_templates.build_pending_list_message(pending))]

    def _fundraiser(self, fundraiser_id: int) -> Fundraiser:
        fundraiser = self.repository.get_fundraiser(fundraiser_id)
        if fundraiser is None:
            raise NotFound(f"Fundraiser #{fundraiser_id} does not exist.")
        return fundraiser

    @staticmethod
    def _reply(event: InboundEvent, text: str) -> OutboundMessage:
        return OutboundMessage(chat_id=event.chat_id, text=text)

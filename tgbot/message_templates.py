from __future__ import annotations

from typing import Any

from core.enums import FundraiserStatus, TransactionStatus
from core.errors import AlreadyFinalized, Forbidden, InvalidArgument, InvalidState, LedgerError, NotFound
from core.models import Fundraiser, FundraiserDraft, PaymentStatusReport, Transaction

DEFAULT_CURRENCY = "RUB"
MAX_MESSAGE_LENGTH = 4096

STATUS_LABELS = {
    TransactionStatus.PENDING: "awaiting confirmation",
    TransactionStatus.CONFIRMED: "confirmed",
    TransactionStatus.REJECTED: "rejected",
}

FUNDRAISER_STATUS_LABELS = {
    FundraiserStatus.ACTIVE: "active",
    FundraiserStatus.COMPLETED: "completed",
    FundraiserStatus.BLOCKED: "cancelled",
}

ERROR_PREFIXES: dict[type[LedgerError], str] = {
    InvalidArgument: "Invalid input.",
    NotFound: "Not found.",
    Forbidden: "Not allowed.",
    InvalidState: "Not possible right now.",
    AlreadyFinalized: "Already done.",
}


def _text(value: Any) -> str:
    if value in (None, ""):
        return "-"
    if isinstance(value, int):
        return f"{value:,}"
    return str(value)


def _money(amount: int | None, currency: str = DEFAULT_CURRENCY) -> str:
    return f"{_text(amount)} {currency}"


def build_welcome_message(first_name: str | None) -> str:
    name = (first_name or "").strip() or "there"
    return (
        f"Hi, {name}!\n\n"
        "I help you collect money for shared causes: create a fundraiser and "
        "let participants record their payments.\n\n"
        "/newfundraiser - create a new fundraiser\n"
        "/myfundraisers - list your fundraisers\n"
        "/help - show all commands"
    )


def build_help_message() -> str:
    return (
        "Available commands:\n\n"
        "/start - start working with the bot\n"
        "/newfundraiser - create a new fundraiser\n"
        "/myfundraisers - list your fundraisers\n"
        "/paid <fundraiser id> <amount> [note] - record a payment\n"
        "/mypayments - show your payments\n"
        "/status <transaction id> - show one payment\n"
        "/pending - payments waiting for your confirmation\n"
        "/confirm <transaction id> - confirm a payment\n"
        "/reject <transaction id> [reason] - reject a payment\n"
        "/start_collection <fundraiser id> - share collection instructions\n"
        "/finish <fundraiser id> - finish a fundraiser\n"
        "/cancel <fundraiser id> - cancel a fundraiser\n"
        "/cancel - abort fundraiser creation\n"
        "/help - show this help"
    )


def build_use_command_message() -> str:
    return "Please talk to me with commands. Send /help to see the list of commands."


def build_unknown_command_message() -> str:
    return "Sorry, I don't know this command. Send /help to see the list of commands."


def build_text_only_message() -> str:
    return "Only text messages are supported. Send /help to see the list of commands."


def build_banned_message() -> str:
    return "Your account has been blocked."


def build_not_allowed_message() -> str:
    return "This account cannot use the bot right now."


def build_generic_failure_message() -> str:
    return "Something went wrong on our side. Please try again later."


def build_usage_message(usage: str) -> str:
    return f"Usage: {usage}"


def build_error_message(exc: LedgerError) -> str:
    prefix = "Error."
    for error_type, text in ERROR_PREFIXES.items():
        if isinstance(exc, error_type):
            prefix = text
            break
    detail = str(exc).strip()
    return f"{prefix} {detail}" if detail else prefix


def build_wizard_start_message() -> str:
    return "Let's create a new fundraiser!\n\nPlease enter the fundraiser title:"


def build_ask_title_message() -> str:
    return "Please enter the fundraiser title:"


def build_ask_goal_message() -> str:
    return "Great! Now enter the goal amount (numbers only, e.g. 5000):"


def build_invalid_goal_message() -> str:
    return "Please enter a valid amount (numbers only, e.g. 5000):"


def build_ask_description_message() -> str:
    return "Goal set! Now enter the fundraiser description:"


def build_ask_deadline_message() -> str:
    return "Description added! Now enter the deadline in DD.MM.YYYY format:"


def build_invalid_deadline_message() -> str:
    return "Please enter the date in DD.MM.YYYY format:"


def build_draft_summary_message(draft: FundraiserDraft, currency: str = DEFAULT_CURRENCY) -> str:
    return (
        "Please check the fundraiser details:\n\n"
        f"Title: {_text(draft.title)}\n"
        f"Goal: {_money(draft.goal, currency)}\n"
        f"Description: {_text(draft.description)}\n"
        f"Deadline: {_text(draft.deadline)}\n\n"
        'Is everything correct? Reply "yes" to create the fundraiser or anything else to cancel.'
    )


def build_fundraiser_created_message(fundraiser: Fundraiser) -> str:
    return (
        f'Fundraiser "{fundraiser.title}" has been created!\n\n'
        f"Fundraiser ID: {fundraiser.id}\n\n"
        f"Participants can pay with /paid {fundraiser.id} <amount> [note]."
    )


def build_creation_cancelled_message() -> str:
    return "Fundraiser creation cancelled. You can start again with /newfundraiser"


def build_nothing_to_cancel_message() -> str:
    return "There is nothing to cancel. To cancel a fundraiser use /cancel <fundraiser id>."


def build_fundraiser_list_message(fundraisers: list[Fundraiser], currency: str = DEFAULT_CURRENCY) -> str:
    if not fundraisers:
        return "You have no fundraisers yet. Create one with /newfundraiser"
    lines = ["Your fundraisers:", ""]
    for index, fundraiser in enumerate(fundraisers, start=1):
        lines.append(
            f"{index}. [#{fundraiser.id}] {fundraiser.title} - "
            f"{_text(fundraiser.raised)}/{_money(fundraiser.goal, currency)} "
            f"({fundraiser.percent_raised}%) {FUNDRAISER_STATUS_LABELS[fundraiser.status]}"
        )
    return "\n".join(lines)


def build_collection_started_message(fundraiser: Fundraiser, currency: str = DEFAULT_CURRENCY) -> str:
    return (
        f'Collection for "{fundraiser.title}" is open.\n\n'
        f"Goal: {_money(fundraiser.goal, currency)}\n"
        f"Raised: {_money(fundraiser.raised, currency)} ({fundraiser.percent_raised}%)\n"
        f"Deadline: {_text(fundraiser.deadline)}\n\n"
        "Forward this to participants:\n"
        f"/paid {fundraiser.id} <amount> [note]"
    )


def build_fundraiser_finished_message(fundraiser: Fundraiser, currency: str = DEFAULT_CURRENCY) -> str:
    return (
        f'Fundraiser "{fundraiser.title}" is completed.\n'
        f"Raised: {_money(fundraiser.raised, currency)} of {_money(fundraiser.goal, currency)}."
    )


def build_fundraiser_cancelled_message(fundraiser: Fundraiser) -> str:
    return f'Fundraiser "{fundraiser.title}" has been cancelled and no longer accepts payments.'


def build_payment_created_message(transaction: Transaction, fundraiser: Fundraiser) -> str:
    return (
        f"Thank you! Your payment of {_money(transaction.amount, transaction.currency)} "
        f'to "{fundraiser.title}" is waiting for the organizer\'s confirmation.\n\n'
        f"Transaction ID: {transaction.id}\n"
        "You will be notified when the payment is confirmed."
    )


def build_organizer_payment_notice(transaction: Transaction, fundraiser: Fundraiser) -> str:
    donor = transaction.donor_username or str(transaction.donor_id)
    lines = [
        f'New payment for "{fundraiser.title}":',
        f"From: {donor}",
        f"Amount: {_money(transaction.amount, transaction.currency)}",
    ]
    if transaction.notes:
        lines.append(f"Note: {transaction.notes}")
    lines.extend(
        [
            "",
            f"/confirm {transaction.id} - confirm",
            f"/reject {transaction.id} [reason] - reject",
        ]
    )
    return "\n".join(lines)


def build_payment_confirmed_message(transaction: Transaction, fundraiser: Fundraiser) -> str:
    return (
        f"Payment #{transaction.id} of {_money(transaction.amount, transaction.currency)} confirmed.\n"
        f'"{fundraiser.title}": {_text(fundraiser.raised)}/{_money(fundraiser.goal, transaction.currency)} '
        f"({fundraiser.percent_raised}%)"
    )


def build_donor_confirmed_notice(transaction: Transaction, fundraiser: Fundraiser) -> str:
    return (
        f"Your payment #{transaction.id} of {_money(transaction.amount, transaction.currency)} "
        f'to "{fundraiser.title}" has been confirmed. Thank you!'
    )


def build_payment_rejected_message(transaction: Transaction) -> str:
    return (
        f"Payment #{transaction.id} of {_money(transaction.amount, transaction.currency)} rejected.\n\n"
        f"Reason: {transaction.rejection_reason or 'not specified'}\n"
        "The participant will be notified."
    )


def build_donor_rejected_notice(transaction: Transaction, fundraiser: Fundraiser) -> str:
    return (
        f"Your payment #{transaction.id} of {_money(transaction.amount, transaction.currency)} "
        f'to "{fundraiser.title}" has been rejected.\n'
        f"Reason: {transaction.rejection_reason or 'not specified'}"
    )


def build_payment_status_message(report: PaymentStatusReport, currency: str = DEFAULT_CURRENCY) -> str:
    if not report.transactions:
        return "You have no payments yet."
    lines = ["Your payments:", ""]
    for transaction in report.transactions:
        lines.append(
            f"#{transaction.id} fundraiser #{transaction.fundraiser_id}: "
            f"{_money(transaction.amount, transaction.currency)} - {STATUS_LABELS[transaction.status]}"
        )
    lines.extend(
        [
            "",
            f"Confirmed total: {_money(report.confirmed_total, currency)}",
            f"Awaiting confirmation: {report.pending_count}",
        ]
    )
    return "\n".join(lines)


def build_transaction_detail_message(transaction: Transaction, fundraiser: Fundraiser) -> str:
    lines = [
        f"Payment #{transaction.id}:",
        "",
        f"Fundraiser: {fundraiser.title}",
        f"Amount: {_money(transaction.amount, transaction.currency)}",
        f"Status: {STATUS_LABELS[transaction.status]}",
    ]
    if transaction.notes:
        lines.append(f"Note: {transaction.notes}")
    if transaction.status == TransactionStatus.REJECTED and transaction.rejection_reason:
        lines.append(f"Rejection reason: {transaction.rejection_reason}")
    lines.append(f"Created: {transaction.created_at}")
    if transaction.confirmed_at:
        lines.append(f"Confirmed: {transaction.confirmed_at}")
    if transaction.rejected_at:
        lines.append(f"Rejected: {transaction.rejected_at}")
    return "\n".join(lines)


def build_pending_list_message(pending: list[tuple[Transaction, Fundraiser]]) -> str:
    if not pending:
        return "There are no payments waiting for your confirmation."
    lines = ["Payments waiting for confirmation:", ""]
    for transaction, fundraiser in pending:
        donor = transaction.donor_username or str(transaction.donor_id)
        lines.append(
            f"#{transaction.id} {fundraiser.title}: {_money(transaction.amount, transaction.currency)} from {donor}"
        )
    lines.extend(["", "/confirm <transaction id> or /reject <transaction id> [reason]"])
    return "\n".join(lines)


def truncate(text: str) -> str:
    if len(text) <= MAX_MESSAGE_LENGTH:
        return text
    return text[: MAX_MESSAGE_LENGTH - 1] + "…"

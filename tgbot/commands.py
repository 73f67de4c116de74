from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from core.errors import InvalidArgument
from core.models import MAX_AMOUNT


class Command(str, Enum):
    START = "/start"
    HELP = "/help"
    NEW_FUNDRAISER = "/newfundraiser"
    MY_FUNDRAISERS = "/myfundraisers"
    PAID = "/paid"
    CONFIRM = "/confirm"
    REJECT = "/reject"
    START_COLLECTION = "/start_collection"
    FINISH = "/finish"
    CANCEL = "/cancel"
    MY_PAYMENTS = "/mypayments"
    STATUS = "/status"
    PENDING = "/pending"


COMMAND_ALIASES = {
    "/new_fundraiser": Command.NEW_FUNDRAISER,
    "/my_fundraisers": Command.MY_FUNDRAISERS,
    "/my_payments": Command.MY_PAYMENTS,
    "/startcollection": Command.START_COLLECTION,
}

USAGES = {
    Command.PAID: "/paid <fundraiser id> <amount> [note]",
    Command.CONFIRM: "/confirm <transaction id>",
    Command.REJECT: "/reject <transaction id> [reason]",
    Command.START_COLLECTION: "/start_collection <fundraiser id>",
    Command.FINISH: "/finish <fundraiser id>",
    Command.CANCEL: "/cancel [fundraiser id]",
    Command.STATUS: "/status <transaction id>",
}

_BY_TOKEN = {command.value: command for command in Command}
_BY_TOKEN.update(COMMAND_ALIASES)


@dataclass(frozen=True, slots=True)
class ParsedCommand:
    token: str
    command: Command | None
    arg_text: str = ""

    @property
    def args(self) -> list[str]:
        return self.arg_text.split()

    def split_args(self, max_parts: int) -> list[str]:
        """Split into at most ``max_parts`` items; the last keeps its inner spaces."""
        if not self.arg_text:
            return []
        return self.arg_text.split(maxsplit=max_parts - 1)


def parse_command(text: str | None) -> ParsedCommand | None:
    """Return the parsed command, or None when the message is free text.

    "/Paid@fund_bot 3 100" resolves to ``Command.PAID`` with ``arg_text`` "3 100".
    """
    stripped = (text or "").strip()
    if not stripped.startswith("/"):
        return None
    parts = stripped.split(maxsplit=1)
    token = parts[0].split("@", 1)[0].lower()
    rest = parts[1].strip() if len(parts) > 1 else ""
    return ParsedCommand(token=token, command=_BY_TOKEN.get(token), arg_text=rest)


def parse_positive_id(value: str | None, usage: str) -> int:
    raw = (value or "").strip().lstrip("#")
    if not raw.isdecimal() or not 0 < int(raw) <= MAX_AMOUNT:
        raise InvalidArgument(f"Expected a numeric id. Usage: {usage}")
    return int(raw)


def parse_amount(value: str | None, usage: str) -> int:
    raw = (value or "").strip()
    try:
        amount = int(raw)
    except ValueError as exc:
        raise InvalidArgument(f"Expected a whole number amount. Usage: {usage}") from exc
    if amount > MAX_AMOUNT:
        raise InvalidArgument(f"The amount is too large. Usage: {usage}")
    return amount

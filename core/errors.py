from __future__ import annotations


class LedgerError(RuntimeError):
    """Base class for recoverable outcomes that are reported back to the user."""

    code = "error"


class InvalidArgument(LedgerError):
    code = "invalid_argument"


class NotFound(LedgerError):
    code = "not_found"


class Forbidden(LedgerError):
    code = "forbidden"


class InvalidState(LedgerError):
    code = "invalid_state"


class AlreadyFinalized(LedgerError):
    code = "already_finalized"

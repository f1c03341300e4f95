"""Ledger call failures. Every failing call leaves ledger state untouched."""


class LedgerError(Exception):
    """Base exception for rejected ledger calls."""


class UnauthorizedCallerError(LedgerError):
    """Caller is not allowed to invoke this operation (owner-only)."""


class ContestNotFoundError(LedgerError):
    """No contest exists with the given id."""


class TimingViolationError(LedgerError):
    """Call made outside the window the operation requires."""


class FeeMismatchError(LedgerError):
    """Attached value differs from the contest entry fee."""


class AlreadyEnteredError(LedgerError):
    """Player already holds an entry in this contest."""


class NotEnteredError(LedgerError):
    """Player submitted a completion without entering the contest."""


class InvalidCompletionError(LedgerError):
    """Move count, secret, or proof is malformed."""


class ReplayedSecretError(LedgerError):
    """Secret was already credited for a completion in this contest."""


class AlreadyDistributedError(LedgerError):
    """Prizes were already distributed; distribution is one-way."""


class NothingToWithdrawError(LedgerError):
    """No pending balance for the caller."""


class TransferError(Exception):
    """Raised by a transfer callable when a payout cannot be delivered."""

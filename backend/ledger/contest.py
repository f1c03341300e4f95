"""
Contest ledger operations.

An in-process model of the contest contract boundary: create a contest,
enter it with a commitment and the exact entry fee, submit a verified
completion (secret + proof), and distribute prizes once the window closes.

Each operation validates everything before mutating state, so a rejected
call has no partial effect. Payouts follow check-effects-interactions: the
contest is marked distributed and its pool zeroed before any transfer, and a
failed transfer is parked in pending_withdrawals instead of blocking the
remaining recipients.

Trust model: the verifying service is a trusted oracle for board validity.
The ledger does not re-derive the commitment from the revealed secret (it
never sees the board). It does require a stored entry for the submitting
player, well-formed secret and proof digests, and refuses to credit the same
secret twice within a contest.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from game.logic.commitment import is_digest, is_secret, strip_hex_prefix
from game.logic.ranking import compute_prize_distribution, rank_completions
from ledger.exceptions import (
    AlreadyDistributedError,
    AlreadyEnteredError,
    ContestNotFoundError,
    FeeMismatchError,
    InvalidCompletionError,
    LedgerError,
    NotEnteredError,
    NothingToWithdrawError,
    ReplayedSecretError,
    TimingViolationError,
    TransferError,
    UnauthorizedCallerError,
)
from ledger.state import Contest, ContestDetails, Score

if TYPE_CHECKING:
    from collections.abc import Callable

    from game.logic.ranking import PrizeDistribution
    from ledger.state import LedgerState

    Transfer = Callable[[str, int], bool]

logger = structlog.get_logger()


def _require_owner(state: LedgerState, caller: str) -> None:
    if caller.lower() != state.owner.lower():
        raise UnauthorizedCallerError(f"{caller} is not the ledger owner")


def _get_contest(state: LedgerState, contest_id: int) -> Contest:
    contest = state.contests.get(contest_id)
    if contest is None:
        raise ContestNotFoundError(f"contest {contest_id} does not exist")
    return contest


def create_contest(state: LedgerState, caller: str, start_time: int, end_time: int, entry_fee: int) -> int:
    """Open a new contest window [start_time, end_time). Owner only."""
    _require_owner(state, caller)
    if end_time <= start_time:
        raise TimingViolationError("contest must end after it starts")
    if entry_fee <= 0:
        raise FeeMismatchError("entry fee must be positive")

    contest_id = state.next_contest_id
    state.contests[contest_id] = Contest(
        contest_id=contest_id,
        start_time=start_time,
        end_time=end_time,
        entry_fee=entry_fee,
    )
    state.next_contest_id += 1
    logger.info("contest created", contest_id=contest_id, start_time=start_time, end_time=end_time)
    return contest_id


def contest_details(state: LedgerState, contest_id: int) -> ContestDetails:
    contest = _get_contest(state, contest_id)
    return ContestDetails(
        start_time=contest.start_time,
        end_time=contest.end_time,
        entry_fee=contest.entry_fee,
        prize_pool=contest.prize_pool,
        player_count=contest.player_count,
        distributed=contest.distributed,
    )


def enter_contest(
    state: LedgerState,
    contest_id: int,
    player: str,
    commitment: str,
    *,
    value: int,
    now: int,
) -> None:
    """Record a player's commitment and add the entry fee to the pool."""
    contest = _get_contest(state, contest_id)
    if not contest.is_open(now):
        raise TimingViolationError(f"contest {contest_id} is not accepting entries")
    if value != contest.entry_fee:
        raise FeeMismatchError(f"entry fee is {contest.entry_fee}, got {value}")
    key = player.lower()
    if key in contest.commitments:
        raise AlreadyEnteredError(f"{player} already entered contest {contest_id}")
    if not is_digest(commitment):
        raise LedgerError("commitment must be a 0x-prefixed 32-byte hex digest")

    contest.commitments[key] = commitment.lower()
    contest.prize_pool += value
    logger.info("contest entered", contest_id=contest_id, player_address=key)


def submit_completion(
    state: LedgerState,
    contest_id: int,
    player: str,
    moves: int,
    secret: str,
    proof: str,
    *,
    elapsed_seconds: int,
    now: int,
) -> bool:
    """Credit a verified completion. Return True when it became the player's best score."""
    contest = _get_contest(state, contest_id)
    key = player.lower()
    if key not in contest.commitments:
        raise NotEnteredError(f"{player} has not entered contest {contest_id}")
    if not contest.is_open(now):
        raise TimingViolationError(f"contest {contest_id} is not accepting completions")
    if moves <= 0 or elapsed_seconds <= 0:
        raise InvalidCompletionError("moves and elapsed time must be positive")
    if not is_secret(secret) or not is_digest(proof):
        raise InvalidCompletionError("secret and proof must be 32-byte hex values")
    normalized_secret = strip_hex_prefix(secret).lower()
    if normalized_secret in contest.used_secrets:
        raise ReplayedSecretError("secret already credited in this contest")

    contest.used_secrets.add(normalized_secret)
    score = Score(moves=moves, elapsed_seconds=elapsed_seconds)
    current = contest.scores.get(key)
    improved = current is None or score < current
    if improved:
        contest.scores[key] = score
    logger.info("completion recorded", contest_id=contest_id, player_address=key, moves=moves, improved=improved)
    return improved


def _pay(state: LedgerState, transfer: Transfer, recipient: str, amount: int) -> None:
    if amount <= 0:
        return
    recipient = recipient.lower()
    try:
        delivered = transfer(recipient, amount)
    except TransferError:
        delivered = False
    except Exception:
        logger.exception("payout transfer raised", recipient=recipient, amount=amount)
        delivered = False
    if not delivered:
        state.pending_withdrawals[recipient] = state.pending_withdrawals.get(recipient, 0) + amount
        logger.warning("payout deferred to withdrawal", recipient=recipient, amount=amount)


def distribute_prizes(
    state: LedgerState,
    contest_id: int,
    caller: str,
    *,
    now: int,
    transfer: Transfer,
) -> PrizeDistribution:
    """Pay the platform fee and the top-ranked players once the contest has ended.

    The owner receives the platform fee and any remainder (unfilled places and
    rounding dust).
    """
    _require_owner(state, caller)
    contest = _get_contest(state, contest_id)
    if now < contest.end_time:
        raise TimingViolationError(f"contest {contest_id} has not ended")
    if contest.distributed:
        raise AlreadyDistributedError(f"contest {contest_id} was already distributed")

    distribution = compute_prize_distribution(
        rank_completions(contest.ranked_entries()),
        contest.prize_pool,
        fallback_recipient=state.owner,
        platform_fee_bps=state.platform_fee_bps,
        weights=state.prize_weights,
    )

    contest.distributed = True
    contest.prize_pool = 0

    _pay(state, transfer, state.owner, distribution.platform_fee)
    for share in distribution.shares:
        _pay(state, transfer, share.player, share.amount)
    _pay(state, transfer, state.owner, distribution.remainder)

    logger.info(
        "prizes distributed",
        contest_id=contest_id,
        pool=distribution.pool,
        winners=len(distribution.shares),
        remainder=distribution.remainder,
    )
    return distribution


def withdraw(state: LedgerState, player: str, *, transfer: Transfer) -> int:
    """Pull a payout that failed to transfer during distribution."""
    player = player.lower()
    amount = state.pending_withdrawals.pop(player, 0)
    if amount <= 0:
        raise NothingToWithdrawError(f"nothing pending for {player}")
    try:
        delivered = transfer(player, amount)
    except TransferError:
        delivered = False
    except Exception:
        state.pending_withdrawals[player] = amount
        raise
    if not delivered:
        state.pending_withdrawals[player] = amount
        raise TransferError(f"withdrawal to {player} failed")
    return amount

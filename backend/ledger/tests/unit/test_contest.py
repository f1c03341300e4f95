"""
Unit tests for the contest ledger.

Covers contest creation, entry rules, completion crediting (best score,
secret replay), prize distribution with failed transfers, and withdrawals.
"""

import pytest

from ledger.contest import (
    contest_details,
    create_contest,
    distribute_prizes,
    enter_contest,
    submit_completion,
    withdraw,
)
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
from ledger.state import LedgerState, Score

OWNER = "0x" + "00" * 19 + "01"
ALICE = "0x" + "aa" * 20
BOB = "0x" + "bb" * 20
CAROL = "0x" + "cc" * 20
MIXED_CASE_PLAYER = "0x" + "Aa" * 20
DAVE = "0x" + "dd" * 20
START, END = 1_000, 2_000
FEE = 250


def _digest(n: int) -> str:
    return "0x" + f"{n:064x}"


class RecordingTransfer:
    """Transfer callback that records payments and can refuse chosen recipients."""

    def __init__(
        self,
        refuse: set[str] | None = None,
        raise_for: set[str] | None = None,
        crash_for: set[str] | None = None,
    ) -> None:
        self.paid: list[tuple[str, int]] = []
        self.refuse = refuse or set()
        self.raise_for = raise_for or set()
        self.crash_for = crash_for or set()

    def __call__(self, recipient: str, amount: int) -> bool:
        if recipient in self.crash_for:
            raise ConnectionError("rpc endpoint unreachable")
        if recipient in self.raise_for:
            raise TransferError("recipient reverted")
        if recipient in self.refuse:
            return False
        self.paid.append((recipient, amount))
        return True

    def total_to(self, recipient: str) -> int:
        return sum(a for r, a in self.paid if r == recipient)


@pytest.fixture
def state() -> LedgerState:
    return LedgerState(owner=OWNER)


@pytest.fixture
def contest_id(state: LedgerState) -> int:
    return create_contest(state, OWNER, START, END, FEE)


def _enter(state, contest_id, player, n):
    enter_contest(state, contest_id, player, _digest(n), value=FEE, now=START)


def _submit(state, contest_id, player, moves, elapsed, secret_n):
    return submit_completion(
        state,
        contest_id,
        player,
        moves,
        _digest(secret_n),
        _digest(secret_n + 10_000),
        elapsed_seconds=elapsed,
        now=START + 10,
    )


class TestCreateContest:
    def test_ids_increase(self, state):
        assert create_contest(state, OWNER, START, END, FEE) == 1
        assert create_contest(state, OWNER, START, END, FEE) == 2
        assert state.current_contest_id == 2

    def test_owner_only(self, state):
        with pytest.raises(UnauthorizedCallerError):
            create_contest(state, ALICE, START, END, FEE)
        assert state.contests == {}

    def test_owner_match_ignores_case(self, state):
        assert create_contest(state, OWNER.upper().replace("0X", "0x"), START, END, FEE) == 1

    def test_window_must_be_positive(self, state):
        with pytest.raises(TimingViolationError):
            create_contest(state, OWNER, END, START, FEE)

    def test_fee_must_be_positive(self, state):
        with pytest.raises(FeeMismatchError):
            create_contest(state, OWNER, START, END, 0)

    def test_details(self, state, contest_id):
        _enter(state, contest_id, ALICE, 1)
        details = contest_details(state, contest_id)
        assert (details.start_time, details.end_time, details.entry_fee) == (START, END, FEE)
        assert details.prize_pool == FEE
        assert details.player_count == 1
        assert not details.distributed

    def test_details_unknown_contest(self, state):
        with pytest.raises(ContestNotFoundError):
            contest_details(state, 99)


class TestEnterContest:
    def test_adds_fee_to_pool(self, state, contest_id):
        _enter(state, contest_id, ALICE, 1)
        _enter(state, contest_id, BOB, 2)
        assert state.contests[contest_id].prize_pool == 2 * FEE

    @pytest.mark.parametrize("now", [START - 1, END, END + 100])
    def test_outside_window(self, state, contest_id, now):
        with pytest.raises(TimingViolationError):
            enter_contest(state, contest_id, ALICE, _digest(1), value=FEE, now=now)

    @pytest.mark.parametrize("value", [0, FEE - 1, FEE + 1])
    def test_wrong_fee(self, state, contest_id, value):
        with pytest.raises(FeeMismatchError):
            enter_contest(state, contest_id, ALICE, _digest(1), value=value, now=START)
        assert state.contests[contest_id].prize_pool == 0

    def test_one_entry_per_player(self, state, contest_id):
        _enter(state, contest_id, ALICE, 1)
        with pytest.raises(AlreadyEnteredError):
            enter_contest(state, contest_id, ALICE.upper().replace("0X", "0x"), _digest(2), value=FEE, now=START)
        assert state.contests[contest_id].prize_pool == FEE

    def test_malformed_commitment(self, state, contest_id):
        with pytest.raises(LedgerError):
            enter_contest(state, contest_id, ALICE, "0x1234", value=FEE, now=START)
        assert state.contests[contest_id].player_count == 0

    def test_unknown_contest(self, state):
        with pytest.raises(ContestNotFoundError):
            enter_contest(state, 5, ALICE, _digest(1), value=FEE, now=START)


class TestSubmitCompletion:
    def test_records_first_score(self, state, contest_id):
        _enter(state, contest_id, ALICE, 1)
        assert _submit(state, contest_id, ALICE, 30, 90, 1) is True
        assert state.contests[contest_id].scores[ALICE] == Score(30, 90)

    def test_keeps_best_score(self, state, contest_id):
        _enter(state, contest_id, ALICE, 1)
        _submit(state, contest_id, ALICE, 30, 90, 1)
        assert _submit(state, contest_id, ALICE, 35, 10, 2) is False
        assert _submit(state, contest_id, ALICE, 30, 80, 3) is True
        assert _submit(state, contest_id, ALICE, 25, 200, 4) is True
        assert state.contests[contest_id].scores[ALICE] == Score(25, 200)

    def test_requires_entry(self, state, contest_id):
        with pytest.raises(NotEnteredError):
            _submit(state, contest_id, ALICE, 30, 90, 1)

    def test_after_end_rejected(self, state, contest_id):
        _enter(state, contest_id, ALICE, 1)
        with pytest.raises(TimingViolationError):
            submit_completion(
                state, contest_id, ALICE, 30, _digest(1), _digest(2), elapsed_seconds=90, now=END,
            )

    @pytest.mark.parametrize(("moves", "elapsed"), [(0, 10), (-3, 10), (10, 0)])
    def test_non_positive_values_rejected(self, state, contest_id, moves, elapsed):
        _enter(state, contest_id, ALICE, 1)
        with pytest.raises(InvalidCompletionError):
            _submit(state, contest_id, ALICE, moves, elapsed, 1)

    def test_malformed_secret_or_proof(self, state, contest_id):
        _enter(state, contest_id, ALICE, 1)
        with pytest.raises(InvalidCompletionError):
            submit_completion(state, contest_id, ALICE, 5, "0xabc", _digest(1), elapsed_seconds=5, now=START)
        with pytest.raises(InvalidCompletionError):
            submit_completion(state, contest_id, ALICE, 5, _digest(1), "nope", elapsed_seconds=5, now=START)

    def test_replayed_secret_rejected(self, state, contest_id):
        _enter(state, contest_id, ALICE, 1)
        _enter(state, contest_id, BOB, 2)
        _submit(state, contest_id, ALICE, 30, 90, 7)
        with pytest.raises(ReplayedSecretError):
            _submit(state, contest_id, BOB, 10, 10, 7)
        assert BOB not in state.contests[contest_id].scores

    def test_secret_prefix_does_not_bypass_replay_check(self, state, contest_id):
        _enter(state, contest_id, ALICE, 1)
        _submit(state, contest_id, ALICE, 30, 90, 7)
        bare = _digest(7)[2:].upper()
        with pytest.raises(ReplayedSecretError):
            submit_completion(state, contest_id, ALICE, 5, bare, _digest(8), elapsed_seconds=5, now=START)


class TestDistributePrizes:
    def _fill(self, state, contest_id, players):
        for i, (player, moves, elapsed) in enumerate(players, start=1):
            _enter(state, contest_id, player, i)
            _submit(state, contest_id, player, moves, elapsed, i)

    def test_pays_fee_and_top_three(self, state, contest_id):
        self._fill(state, contest_id, [(ALICE, 10, 50), (BOB, 10, 40), (CAROL, 9, 99), (DAVE, 20, 1)])
        transfer = RecordingTransfer()

        dist = distribute_prizes(state, contest_id, OWNER, now=END, transfer=transfer)

        # pool 1000 -> fee 50, distributable 950 -> 475 / 285 / 190
        assert dist.pool == 4 * FEE
        assert transfer.paid == [(OWNER, 50), (CAROL, 475), (BOB, 285), (ALICE, 190)]
        assert transfer.total_to(DAVE) == 0
        assert state.contests[contest_id].distributed
        assert state.contests[contest_id].prize_pool == 0

    def test_remainder_to_owner_when_places_unfilled(self, state, contest_id):
        self._fill(state, contest_id, [(ALICE, 10, 50)])
        _enter(state, contest_id, BOB, 9)  # entered but never finished
        transfer = RecordingTransfer()

        distribute_prizes(state, contest_id, OWNER, now=END, transfer=transfer)

        # pool 500 -> fee 25, distributable 475 -> alice 237, remainder 238
        assert transfer.paid == [(OWNER, 25), (ALICE, 237), (OWNER, 238)]

    def test_before_end_rejected(self, state, contest_id):
        self._fill(state, contest_id, [(ALICE, 10, 50)])
        with pytest.raises(TimingViolationError):
            distribute_prizes(state, contest_id, OWNER, now=END - 1, transfer=RecordingTransfer())
        assert not state.contests[contest_id].distributed

    def test_owner_only(self, state, contest_id):
        with pytest.raises(UnauthorizedCallerError):
            distribute_prizes(state, contest_id, ALICE, now=END, transfer=RecordingTransfer())

    def test_one_shot(self, state, contest_id):
        self._fill(state, contest_id, [(ALICE, 10, 50)])
        distribute_prizes(state, contest_id, OWNER, now=END, transfer=RecordingTransfer())
        transfer = RecordingTransfer()
        with pytest.raises(AlreadyDistributedError):
            distribute_prizes(state, contest_id, OWNER, now=END + 1, transfer=transfer)
        assert transfer.paid == []

    def test_failed_transfer_parked_for_withdrawal(self, state, contest_id):
        self._fill(state, contest_id, [(ALICE, 10, 50), (BOB, 11, 50)])
        transfer = RecordingTransfer(refuse={ALICE}, raise_for={BOB})

        distribute_prizes(state, contest_id, OWNER, now=END, transfer=transfer)

        # pool 500 -> fee 25, distributable 475 -> 237 / 142
        assert state.pending_withdrawals == {ALICE: 237, BOB: 142}
        assert transfer.total_to(OWNER) == 25 + (475 - 237 - 142)

    def test_empty_contest_sends_everything_to_owner(self, state, contest_id):
        transfer = RecordingTransfer()
        dist = distribute_prizes(state, contest_id, OWNER, now=END, transfer=transfer)
        assert dist.pool == 0
        assert transfer.paid == []


class TestWithdraw:
    def test_withdraw_pending(self, state):
        state.pending_withdrawals[ALICE] = 100
        transfer = RecordingTransfer()
        assert withdraw(state, ALICE, transfer=transfer) == 100
        assert transfer.paid == [(ALICE, 100)]
        assert ALICE not in state.pending_withdrawals

    def test_nothing_pending(self, state):
        with pytest.raises(NothingToWithdrawError):
            withdraw(state, ALICE, transfer=RecordingTransfer())

    def test_failed_withdrawal_keeps_balance(self, state):
        state.pending_withdrawals[ALICE] = 100
        with pytest.raises(TransferError):
            withdraw(state, ALICE, transfer=RecordingTransfer(refuse={ALICE}))
        assert state.pending_withdrawals[ALICE] == 100


class TestUnexpectedTransferFailures:
    def test_crashing_transfer_parks_payout_and_pays_others(self, state, contest_id):
        for i, player in enumerate([ALICE, BOB, CAROL, DAVE], start=1):
            _enter(state, contest_id, player, i)
        _submit(state, contest_id, ALICE, 10, 50, 1)
        _submit(state, contest_id, BOB, 11, 50, 2)
        transfer = RecordingTransfer(crash_for={ALICE})

        distribute_prizes(state, contest_id, OWNER, now=END, transfer=transfer)

        # pool 1000 -> fee 50, distributable 950 -> 475 / 285, remainder 190
        assert state.pending_withdrawals == {ALICE: 475}
        assert transfer.paid == [(OWNER, 50), (BOB, 285), (OWNER, 190)]
        assert state.contests[contest_id].distributed

    def test_crashing_withdrawal_keeps_balance(self, state):
        state.pending_withdrawals[ALICE] = 100
        with pytest.raises(ConnectionError):
            withdraw(state, ALICE, transfer=RecordingTransfer(crash_for={ALICE}))
        assert state.pending_withdrawals[ALICE] == 100


class TestMixedCaseAddresses:
    def test_parked_prize_withdrawable_with_entry_address(self, state, contest_id):
        _enter(state, contest_id, MIXED_CASE_PLAYER, 1)
        _submit(state, contest_id, MIXED_CASE_PLAYER, 10, 50, 1)
        distribute_prizes(
            state, contest_id, OWNER, now=END, transfer=RecordingTransfer(refuse={MIXED_CASE_PLAYER.lower()}),
        )

        transfer = RecordingTransfer()
        # pool 250 -> fee 12, distributable 238 -> 119
        assert withdraw(state, MIXED_CASE_PLAYER, transfer=transfer) == 119
        assert transfer.paid == [(MIXED_CASE_PLAYER.lower(), 119)]
        assert state.pending_withdrawals == {}

    def test_checksummed_owner_payouts_keyed_lowercase(self):
        owner = "0x" + "Ab" * 20
        state = LedgerState(owner=owner)
        contest_id = create_contest(state, owner, START, END, FEE)
        _enter(state, contest_id, ALICE, 1)

        distribute_prizes(state, contest_id, owner, now=END, transfer=RecordingTransfer(refuse={owner.lower()}))

        assert state.pending_withdrawals == {owner.lower(): FEE}

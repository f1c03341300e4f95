"""Ledger state: contests, entries, best scores, and pending withdrawals.

Everything the contract would hold in storage lives in LedgerState, which is
passed explicitly to every operation in ledger.contest.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from game.logic.ranking import DEFAULT_PLATFORM_FEE_BPS, DEFAULT_PRIZE_WEIGHTS, RankedEntry


@dataclass(frozen=True, order=True)
class Score:
    """Best completion for a player. Lower compares better."""

    moves: int
    elapsed_seconds: int


@dataclass
class Contest:
    contest_id: int
    start_time: int
    end_time: int  # exclusive
    entry_fee: int
    prize_pool: int = 0
    commitments: dict[str, str] = field(default_factory=dict)
    scores: dict[str, Score] = field(default_factory=dict)
    used_secrets: set[str] = field(default_factory=set)
    distributed: bool = False

    def is_open(self, now: int) -> bool:
        return self.start_time <= now < self.end_time

    @property
    def player_count(self) -> int:
        return len(self.commitments)

    def ranked_entries(self) -> list[RankedEntry]:
        return [RankedEntry(player=p, moves=s.moves, elapsed_seconds=s.elapsed_seconds) for p, s in self.scores.items()]


@dataclass(frozen=True)
class ContestDetails:
    start_time: int
    end_time: int
    entry_fee: int
    prize_pool: int
    player_count: int
    distributed: bool


@dataclass
class LedgerState:
    owner: str
    platform_fee_bps: int = DEFAULT_PLATFORM_FEE_BPS
    prize_weights: tuple[int, ...] = DEFAULT_PRIZE_WEIGHTS
    next_contest_id: int = 1
    contests: dict[int, Contest] = field(default_factory=dict)
    pending_withdrawals: dict[str, int] = field(default_factory=dict)

    @property
    def current_contest_id(self) -> int:
        """Id of the most recently created contest (0 when none exist)."""
        return self.next_contest_id - 1

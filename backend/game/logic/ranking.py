"""
Leaderboard ordering and prize-share arithmetic.

Ranking keeps each player's best completion and orders by fewest moves,
then shortest elapsed time. Ties beyond that fall back to earliest
completion and finally the address, so the order is fully deterministic.

Prize shares use integer floor division only, so an auditor replaying the
split off-chain gets exactly the amounts the ledger paid:

    platform_fee  = pool * platform_fee_bps // 10_000
    distributable = pool - platform_fee
    share[i]      = distributable * weights[i] // 100      (top len(weights))
    remainder     = distributable - sum(share)             -> fallback recipient

The canonical split is top-3 at 50/30/20.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from game.logic.exceptions import InvalidPrizeParametersError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime

BPS_DENOMINATOR = 10_000
WEIGHT_DENOMINATOR = 100
DEFAULT_PLATFORM_FEE_BPS = 500  # 5%
DEFAULT_PRIZE_WEIGHTS = (50, 30, 20)


@dataclass(frozen=True)
class RankedEntry:
    player: str
    moves: int
    elapsed_seconds: int
    completed_at: datetime | None = None

    def sort_key(self) -> tuple[int, int, float, str]:
        completed = self.completed_at.timestamp() if self.completed_at is not None else float("inf")
        return self.moves, self.elapsed_seconds, completed, self.player.lower()


@dataclass(frozen=True)
class PrizeShare:
    player: str
    amount: int


@dataclass(frozen=True)
class PrizeDistribution:
    pool: int
    platform_fee: int
    distributable: int
    shares: list[PrizeShare] = field(default_factory=list)
    remainder: int = 0
    fallback_recipient: str = ""

    @property
    def total_paid(self) -> int:
        return self.platform_fee + sum(s.amount for s in self.shares) + self.remainder


def validate_weights(weights: Sequence[int]) -> None:
    if not weights or any(w < 0 for w in weights) or sum(weights) != WEIGHT_DENOMINATOR:
        raise InvalidPrizeParametersError(
            f"prize weights must be non-negative and sum to {WEIGHT_DENOMINATOR}, got {list(weights)}",
        )


def rank_completions(completions: Iterable[RankedEntry]) -> list[RankedEntry]:
    """Return one best entry per player, best first."""
    best: dict[str, RankedEntry] = {}
    for entry in completions:
        key = entry.player.lower()
        current = best.get(key)
        if current is None or entry.sort_key() < current.sort_key():
            best[key] = entry
    return sorted(best.values(), key=RankedEntry.sort_key)


def compute_prize_distribution(
    ranked: Sequence[RankedEntry],
    pool: int,
    *,
    fallback_recipient: str,
    platform_fee_bps: int = DEFAULT_PLATFORM_FEE_BPS,
    weights: Sequence[int] = DEFAULT_PRIZE_WEIGHTS,
) -> PrizeDistribution:
    """Split a prize pool among the top-ranked players.

    Places with no qualifying player, plus rounding dust, are swept into
    remainder for the fallback recipient.
    """
    if pool < 0:
        raise InvalidPrizeParametersError(f"pool must be non-negative, got {pool}")
    if not 0 <= platform_fee_bps <= BPS_DENOMINATOR:
        raise InvalidPrizeParametersError(f"platform fee must be in [0, {BPS_DENOMINATOR}] bps, got {platform_fee_bps}")
    validate_weights(weights)

    platform_fee = pool * platform_fee_bps // BPS_DENOMINATOR
    distributable = pool - platform_fee
    shares = [
        PrizeShare(player=entry.player, amount=distributable * weight // WEIGHT_DENOMINATOR)
        for entry, weight in zip(ranked, weights, strict=False)
    ]
    remainder = distributable - sum(s.amount for s in shares)
    return PrizeDistribution(
        pool=pool,
        platform_fee=platform_fee,
        distributable=distributable,
        shares=shares,
        remainder=remainder,
        fallback_recipient=fallback_recipient,
    )

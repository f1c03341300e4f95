"""Replay the prize split for a contest from the recorded completions.

Usage: uv run python bin/replay-payouts.py <contest_id> <pool>

Reads the database and fee settings from CHALLENGE_* environment variables.
Nothing is written; the output is what a distribution would pay right now.
"""

import asyncio
import sys
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from game.server.settings import GameServerSettings
from game.session.manager import GameSessionManager
from shared.db import Database, SqliteGameRepository


async def main() -> None:
    if len(sys.argv) != 3:
        print(f"Usage: {sys.argv[0]} <contest_id> <pool>")
        sys.exit(1)

    try:
        contest_id, pool = int(sys.argv[1]), int(sys.argv[2])
    except ValueError:
        print("Error: contest_id and pool must be integers")
        sys.exit(1)

    settings = GameServerSettings()
    db = Database(settings.database_path)
    db.connect()

    try:
        manager = GameSessionManager(
            SqliteGameRepository(db),
            platform_fee_bps=settings.platform_fee_bps,
            prize_weights=settings.prize_weights,
            fallback_recipient=settings.fallback_recipient,
        )
        try:
            distribution = await manager.payouts(contest_id, pool)
        except ValueError as e:
            print(f"Error: {e}")
            sys.exit(1)

        print(f"Contest {contest_id}: pool {distribution.pool}")
        print(f"  platform fee   {distribution.platform_fee}")
        for place, share in enumerate(distribution.shares, start=1):
            print(f"  #{place} {share.player}  {share.amount}")
        recipient = distribution.fallback_recipient or "owner"
        print(f"  remainder      {distribution.remainder} -> {recipient}")
    finally:
        db.close()


if __name__ == "__main__":
    asyncio.run(main())

"""
Commit-reveal hashing for minefield games.

A commitment binds a board, a per-game secret, and the player address:
    0x + SHA256(canonical_board_json + secret_hex + player_address)
It is published to the contest ledger before play and reveals nothing about
the board while the secret stays private.

A reveal proof ties the disclosed secret to the exact claim that earned it:
    0x + SHA256("game_id:moves:elapsed_seconds:player_address:secret_hex")
so a leaked secret cannot be replayed for a different game, score, or player.

All functions here are pure and safe to call without locking.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from game.logic.board import Board

SECRET_BYTES = 32
HEX_PREFIX = "0x"
_DIGEST_PATTERN = re.compile(r"^0x[0-9a-f]{64}$")
_SECRET_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


def generate_secret() -> str:
    """Return a fresh 256-bit secret as 64 lowercase hex chars (no prefix)."""
    return secrets.token_bytes(SECRET_BYTES).hex()


def _sha256_hex(data: str) -> str:
    return HEX_PREFIX + hashlib.sha256(data.encode("utf-8")).hexdigest()


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value[:2].lower() == HEX_PREFIX else value


def is_digest(value: str) -> bool:
    """True for a 0x-prefixed 32-byte lowercase hex digest."""
    return bool(_DIGEST_PATTERN.match(value.lower()))


def is_secret(value: str) -> bool:
    """True for a 32-byte hex secret, with or without the 0x prefix."""
    return bool(_SECRET_PATTERN.match(value))


def commit(board: Board, secret: str, player_address: str) -> str:
    """Compute the public commitment for (board, secret, player)."""
    return _sha256_hex(board.serialize() + strip_hex_prefix(secret) + player_address)


def reveal_proof(
    game_id: str,
    moves: int,
    elapsed_seconds: int,
    player_address: str,
    secret: str,
) -> str:
    """Compute the proof accompanying a disclosed secret for one completion claim."""
    return _sha256_hex(f"{game_id}:{moves}:{elapsed_seconds}:{player_address}:{strip_hex_prefix(secret)}")


def _digests_equal(expected: str, provided: str) -> bool:
    return hmac.compare_digest(expected.lower(), provided.lower())


def verify_commitment(commitment: str, board: Board, secret: str, player_address: str) -> bool:
    """Check a disclosed (board, secret) against a published commitment."""
    return _digests_equal(commit(board, secret, player_address), commitment)


def verify_reveal_proof(
    proof: str,
    *,
    game_id: str,
    moves: int,
    elapsed_seconds: int,
    player_address: str,
    secret: str,
) -> bool:
    """Independently recompute a reveal proof from the disclosed secret."""
    expected = reveal_proof(game_id, moves, elapsed_seconds, player_address, secret)
    return _digests_equal(expected, proof)

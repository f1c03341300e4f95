"""Typed domain exceptions for board generation, verification, and sessions.

Domain code raises subclasses of ChallengeError rather than raw ValueError.
The HTTP layer (game.server.app) catches them at the boundary and converts
them to JSON error responses.
"""


class ChallengeError(Exception):
    """Base exception for minesweeper challenge domain errors."""


class InvalidBoardParametersError(ChallengeError):
    """Board dimensions or mine count are out of range."""


class GeneratorExhaustedError(ChallengeError):
    """Mine density too high for the grid once the safe block is reserved."""


class CorruptedBoardError(ChallengeError):
    """Persisted board data does not describe a valid minefield."""


class GameNotFoundError(ChallengeError):
    """Game does not exist, has expired, or belongs to another player."""


class AlreadyCompletedError(ChallengeError):
    """Game was already verified once; completions are single-shot."""


class InvalidSolutionError(ChallengeError):
    """Submitted solution does not prove a win on the stored board.

    Attributes:
        reason: Human-readable explanation of which check failed.

    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"invalid solution: {reason}")


class CorruptedGameError(ChallengeError):
    """A persisted game record cannot be decoded. Fatal to that game only.

    Attributes:
        game_id: Identifier of the unreadable game.

    """

    def __init__(self, game_id: str) -> None:
        self.game_id = game_id
        super().__init__(f"game {game_id} has corrupted persisted data")


class InvalidPrizeParametersError(ChallengeError, ValueError):
    """Negative pool, fee outside [0, 10000] bps, or weights not summing to 100.

    Also a ValueError so settings validators report it as a validation error.
    """

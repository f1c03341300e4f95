from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

from shared.validators import normalize_address

_GAME_ID_PATTERN = r"^[0-9a-f]{32}$"
_MAX_GRID_SIDE = 64


class _ApiRequest(BaseModel):
    """Request bodies use camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    player_address: str = Field(alias="playerAddress")

    @field_validator("player_address")
    @classmethod
    def _validate_player_address(cls, v: str) -> str:
        return normalize_address(v)


class NewGameRequest(_ApiRequest):
    contest_id: int = Field(alias="contestId", ge=1, strict=True)


class VerifyRequest(_ApiRequest):
    game_id: str = Field(alias="gameId", pattern=_GAME_ID_PATTERN)
    moves: int = Field(ge=0, strict=True)
    time_taken: int = Field(alias="timeTaken", ge=0, strict=True)
    solution_state: list[list[StrictBool]] = Field(alias="solutionState", max_length=_MAX_GRID_SIDE)

    @field_validator("solution_state")
    @classmethod
    def _validate_row_lengths(cls, v: list[list[bool]]) -> list[list[bool]]:
        if any(len(row) > _MAX_GRID_SIDE for row in v):
            raise ValueError(f"solutionState rows must have at most {_MAX_GRID_SIDE} cells")
        return v


class BoardQuery(_ApiRequest):
    game_id: str = Field(alias="gameId", pattern=_GAME_ID_PATTERN)

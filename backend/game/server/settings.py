"""Challenge server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING, Self

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from game.logic.ranking import BPS_DENOMINATOR, DEFAULT_PLATFORM_FEE_BPS, DEFAULT_PRIZE_WEIGHTS, validate_weights
from shared.validators import ListEnvSettingsSource, normalize_address, parse_int_list, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class GameServerSettings(BaseSettings):
    model_config = {"env_prefix": "CHALLENGE_"}

    database_path: str = Field(default="backend/storage.db", min_length=1)
    log_dir: str = Field(default="backend/logs/challenge", min_length=1)
    cors_origins: list[str] = ["http://localhost:3000"]
    game_ttl_seconds: int = Field(default=86400, ge=60)  # 24 hours, min 60s
    cleanup_interval_seconds: int = Field(default=300, ge=1)
    rate_limit_requests: int = Field(default=30, ge=1)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    max_request_body_size: int = Field(default=65536, ge=1024)

    # Replayed prize splits; must match what the contest ledger was deployed with.
    platform_fee_bps: int = Field(default=DEFAULT_PLATFORM_FEE_BPS, ge=0, le=BPS_DENOMINATOR)
    prize_weights: tuple[int, ...] = DEFAULT_PRIZE_WEIGHTS
    fallback_recipient: str = ""

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

    @field_validator("prize_weights", mode="before")
    @classmethod
    def validate_prize_weights(cls, v: str | list[int] | tuple[int, ...]) -> tuple[int, ...]:
        weights = parse_int_list(v)
        validate_weights(weights)
        return weights

    @field_validator("fallback_recipient")
    @classmethod
    def validate_fallback_recipient(cls, v: str) -> str:
        return normalize_address(v) if v else v

    @model_validator(mode="after")
    def _check_cleanup_interval(self) -> Self:
        if self.cleanup_interval_seconds > self.game_ttl_seconds:
            raise ValueError("cleanup_interval_seconds must not exceed game_ttl_seconds")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, ListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings

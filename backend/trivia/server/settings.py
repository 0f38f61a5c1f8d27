"""Room server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class TriviaServerSettings(BaseSettings):
    model_config = {"env_prefix": "TRIVIA_"}

    database_path: str = Field(default="backend/data/trivia.db", min_length=1)
    log_dir: str | None = None
    cors_origins: list[str] = ["http://localhost:5173"]
    catalog_path: str | None = None  # bundled questions.json when unset

    max_players_limit: int = Field(default=30, ge=1, le=500)
    starting_bankroll: int = Field(default=1_000_000, ge=1)
    store_timeout_seconds: float = Field(default=5.0, gt=0)

    # Per-socket budget for every message kind.
    message_rate: float = Field(default=20.0, gt=0)
    message_burst: int = Field(default=40, ge=1)
    # Tighter budget for UPDATE_BET, which clients send on every slider move.
    bet_update_rate: float = Field(default=10.0, gt=0)
    bet_update_burst: int = Field(default=20, ge=1)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings

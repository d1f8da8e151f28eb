"""Game server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from highlow.logic.settings import GameSettings
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class GameServerSettings(BaseSettings):
    model_config = {"env_prefix": "HIGHLOW_"}

    max_rooms: int = Field(default=1000, ge=1)
    log_dir: str = Field(default="backend/logs/highlow", min_length=1)
    cors_origins: list[str] = ["http://localhost:3000"]

    session_ttl_seconds: float = Field(default=24 * 60 * 60, gt=0)
    disconnect_grace_seconds: float = Field(default=90, gt=0)
    empty_room_grace_seconds: float = Field(default=30, ge=0)
    sweep_interval_seconds: float = Field(default=3600, ge=1)
    newly_dealt_display_seconds: float = Field(default=2.5, ge=0)
    random_first_player: bool = False

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    def game_settings(self) -> GameSettings:
        return GameSettings(random_first_player=self.random_first_player)

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

"""Room server configuration via environment variables."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from pydantic_settings.sources.base import PydanticBaseSettingsSource

from cowbull.logic.settings import DISCONNECT_GRACE_SECONDS, RoomSettings
from shared.validators import StringListEnvSettingsSource, parse_cors_origins

_LIST_FIELDS = frozenset({"cors_origins"})


class GameServerSettings(BaseSettings):
    model_config = {"env_prefix": "COWBULL_"}

    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(default=3000, ge=1, le=65535)
    max_rooms: int = Field(default=1000, ge=1)
    log_dir: str = Field(default="logs/cowbull", min_length=1)
    cors_origins: list[str] = ["http://localhost:5173"]

    grace_period_seconds: int = Field(default=DISCONNECT_GRACE_SECONDS, ge=1)
    # Seconds per countdown step; only shortened in tests.
    tick_seconds: float = Field(default=1.0, gt=0)
    code_length: int = Field(default=4, ge=1, le=10)
    clear_chat_on_rematch: bool = False
    dissolve_on_leave: bool = True

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_cors_origins(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            StringListEnvSettingsSource(settings_cls, _LIST_FIELDS),
            dotenv_settings,
            file_secret_settings,
        )

    def room_settings(self) -> RoomSettings:
        """Per-room rules derived from the server configuration."""
        return RoomSettings(
            code_length=self.code_length,
            grace_period_seconds=self.grace_period_seconds,
            clear_chat_on_rematch=self.clear_chat_on_rematch,
            dissolve_on_leave=self.dissolve_on_leave,
        )

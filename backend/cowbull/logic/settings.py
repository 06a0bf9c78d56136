"""Per-room rule and policy settings."""

from pydantic import BaseModel, Field

from cowbull.logic.code import CODE_LENGTH

PLAYERS_PER_ROOM = 2
DISCONNECT_GRACE_SECONDS = 60


class RoomSettings(BaseModel):
    """Rules and policies applied to every room created by a session manager."""

    model_config = {"frozen": True}

    code_length: int = Field(default=CODE_LENGTH, ge=1, le=10)
    grace_period_seconds: int = Field(default=DISCONNECT_GRACE_SECONDS, ge=1)
    # keep the chat log across rematches unless asked otherwise
    clear_chat_on_rematch: bool = False
    # leaving outside the lobby ends the session for the remaining player
    dissolve_on_leave: bool = True

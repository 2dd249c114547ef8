"""
Inbound WebSocket message shapes (client → server).

Every message is a JSON object with a `type` discriminator. Field names are
camelCase on the wire; older clients' `themeIndex` / `impostors`
spellings are accepted as aliases. Numeric settings are lenient: anything
non-numeric is treated as absent.
"""
from typing import Any, Dict, Optional, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

MAX_NAME_LENGTH = 32


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class InboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class _SettingsFields(InboundMessage):
    topic_index: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("topicIndex", "themeIndex", "topic_index")
    )
    impostor_count: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("impostorCount", "impostors", "impostor_count")
    )

    @field_validator("topic_index", mode="before")
    @classmethod
    def _lenient_topic(cls, v: Any) -> Optional[int]:
        v = _optional_int(v)
        return None if v is None else max(0, v)

    @field_validator("impostor_count", mode="before")
    @classmethod
    def _lenient_impostors(cls, v: Any) -> Optional[int]:
        v = _optional_int(v)
        return None if v is None else max(1, v)


class _NamedFields(InboundMessage):
    name: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _clean_name(cls, v: Any) -> Optional[str]:
        if not isinstance(v, str):
            return None
        v = v.strip()[:MAX_NAME_LENGTH]
        return v or None


class CreateLobbyMessage(_SettingsFields, _NamedFields):
    pass


class LobbyMessage(InboundMessage):
    lobby_id: str = Field(validation_alias=AliasChoices("lobbyId", "lobby_id"))

    @field_validator("lobby_id")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper()


class JoinLobbyMessage(LobbyMessage, _NamedFields):
    pass


class UpdateSettingsMessage(LobbyMessage, _SettingsFields):
    pass


class StartGameMessage(LobbyMessage, _SettingsFields):
    pass


class VoteMessage(LobbyMessage):
    target_id: str = Field(validation_alias=AliasChoices("targetId", "target_id"))


class CancelVoteMessage(LobbyMessage):
    pass


class PingMessage(InboundMessage):
    pass


MESSAGE_TYPES: Dict[str, Type[InboundMessage]] = {
    "createLobby": CreateLobbyMessage,
    "joinLobby": JoinLobbyMessage,
    "updateSettings": UpdateSettingsMessage,
    "startGame": StartGameMessage,
    "vote": VoteMessage,
    "cancelVote": CancelVoteMessage,
    "ping": PingMessage,
}

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from engine.errors import NotHost


class GameResult(str, Enum):
    CIVILIANS = "civilians"
    IMPOSTOR = "impostor"


class Player(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    name: str
    # Back-reference to the transport (a starlette WebSocket); never serialized
    connection: Any = Field(default=None, exclude=True, repr=False)

    def to_public(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


class LobbySettings(BaseModel):
    topic_index: int = Field(default=0, ge=0)
    impostor_count: int = Field(default=1, ge=1)

    def to_public(self) -> Dict[str, Any]:
        # themeIndex / impostors mirror the fields for clients that still read the old names
        return {
            "topicIndex": self.topic_index,
            "impostorCount": self.impostor_count,
            "themeIndex": self.topic_index,
            "impostors": self.impostor_count,
        }


class SpeakingSlot(BaseModel):
    id: str
    name: str


class VotingRound(BaseModel):
    """Ballots for one voting round.

    tally[target] always equals the number of ballots naming target; both
    maps are updated together and never rebuilt from scratch.
    """

    tally: Dict[str, int] = {}
    ballots: Dict[str, str] = {}  # voter_id → target_id
    is_open: bool = True

    @property
    def voted_count(self) -> int:
        return len(self.ballots)


class RoundState(BaseModel):
    topic_name: str
    secret: str
    hint: str = ""
    impostor_ids: Set[str]
    speaking_order: List[SpeakingSlot]
    alive_ids: Set[str]
    voting: VotingRound = Field(default_factory=VotingRound)
    result: Optional[GameResult] = None

    def ordered_alive_ids(self) -> List[str]:
        return [slot.id for slot in self.speaking_order if slot.id in self.alive_ids]

    def alive_order(self) -> List[Dict[str, str]]:
        return [slot.model_dump() for slot in self.speaking_order if slot.id in self.alive_ids]

    def impostors_alive(self) -> int:
        return len(self.impostor_ids & self.alive_ids)

    def name_of(self, player_id: str, default: str = "Jugador") -> str:
        for slot in self.speaking_order:
            if slot.id == player_id:
                return slot.name
        return default


class LobbySession(BaseModel):
    code: str
    host_id: str
    # Insertion order is join order; host migration relies on it
    players: Dict[str, Player] = {}
    settings: LobbySettings = Field(default_factory=LobbySettings)
    round: Optional[RoundState] = None

    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    @property
    def lock(self) -> asyncio.Lock:
        """Serializes every mutation of this lobby, including the sends it triggers."""
        return self._lock

    def is_host(self, player_id: str) -> bool:
        return self.host_id == player_id

    def update_settings(
        self,
        requester_id: str,
        topic_index: Optional[int] = None,
        impostor_count: Optional[int] = None,
    ) -> None:
        """Host-only; overwrites just the fields that were provided."""
        if not self.is_host(requester_id):
            raise NotHost()
        if topic_index is not None:
            self.settings.topic_index = max(0, topic_index)
        if impostor_count is not None:
            self.settings.impostor_count = max(1, impostor_count)

    def to_public(self) -> Dict[str, Any]:
        """Lobby summary sent in lobbyJoined / lobbyUpdate."""
        return {
            "lobbyId": self.code,
            "hostId": self.host_id,
            "settings": self.settings.to_public(),
            "players": [p.to_public() for p in self.players.values()],
        }

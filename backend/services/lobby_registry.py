"""
Lobby Registry: owns every live LobbySession, keyed by lobby code.

One instance is created by the app lifespan and stored on app.state; nothing
here is module-global. All methods are synchronous: callers that mutate an
existing lobby hold that lobby's lock around the call (see routers/ws_router).
"""
import logging
from typing import Any, Callable, Dict, Optional

from engine.errors import LobbyNotFound
from models.game import LobbySession, LobbySettings, Player
from utils.ids import new_lobby_code

logger = logging.getLogger(__name__)


def _as_int(value: Any, default: int, minimum: int) -> int:
    """Lenient numeric coercion: bools and non-numeric values fall back to `default`."""
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(minimum, number)


class LobbyRegistry:

    MAX_CODE_ATTEMPTS = 100

    def __init__(
        self,
        code_length: int = 6,
        code_factory: Callable[[int], str] = new_lobby_code,
    ):
        self._code_length = code_length
        self._code_factory = code_factory
        self._lobbies: Dict[str, LobbySession] = {}
        # player_id → lobby code; a connection sits in at most one lobby
        self._membership: Dict[str, str] = {}

    # ── Lookup ────────────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._lobbies)

    def __contains__(self, code: str) -> bool:
        return self.normalize(code) in self._lobbies

    @staticmethod
    def normalize(code: Any) -> str:
        return str(code or "").strip().upper()

    def get(self, code: Any) -> Optional[LobbySession]:
        return self._lobbies.get(self.normalize(code))

    def require(self, code: Any) -> LobbySession:
        session = self.get(code)
        if session is None:
            raise LobbyNotFound()
        return session

    def lobby_of(self, player_id: str) -> Optional[str]:
        return self._membership.get(player_id)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def _allocate_code(self) -> str:
        for _ in range(self.MAX_CODE_ATTEMPTS):
            code = self._code_factory(self._code_length)
            if code not in self._lobbies:
                return code
            logger.debug("Lobby code collision on %s; re-rolling", code)
        raise RuntimeError(
            f"Could not allocate a free lobby code after {self.MAX_CODE_ATTEMPTS} attempts"
        )

    def create_lobby(
        self,
        connection: Any,
        player_id: str,
        name: Optional[str] = None,
        topic_index: Any = None,
        impostor_count: Any = None,
    ) -> LobbySession:
        """Register a new lobby with the requester as its only player and host."""
        code = self._allocate_code()
        host = Player(id=player_id, name=name or "Host", connection=connection)
        session = LobbySession(
            code=code,
            host_id=player_id,
            players={player_id: host},
            settings=LobbySettings(
                topic_index=_as_int(topic_index, 0, 0),
                impostor_count=_as_int(impostor_count, 1, 1),
            ),
        )
        self._lobbies[code] = session
        self._membership[player_id] = code
        logger.info(f"[{code}] Lobby created by {player_id} ({host.name})")
        return session

    def join_lobby(
        self,
        code: Any,
        connection: Any,
        player_id: str,
        name: Optional[str] = None,
    ) -> LobbySession:
        """Append the requester to the roster. Raises LobbyNotFound for unknown codes."""
        session = self.require(code)
        existing = session.players.get(player_id)
        if existing is not None:
            # Re-join from the same connection keeps the original join position
            existing.name = name or existing.name
            existing.connection = connection
            return session
        session.players[player_id] = Player(
            id=player_id, name=name or "Jugador", connection=connection
        )
        self._membership[player_id] = session.code
        logger.info(
            f"[{session.code}] {player_id} ({session.players[player_id].name}) joined "
            f"({len(session.players)} players)"
        )
        return session

    def remove_player(self, code: Any, player_id: str) -> Optional[LobbySession]:
        """
        Drop a player from a lobby.

        Returns the surviving session, or None when the lobby was destroyed
        (or never existed). A departing host hands authority to the earliest
        remaining joiner.
        """
        session = self.get(code)
        if self._membership.get(player_id) == self.normalize(code):
            del self._membership[player_id]
        if session is None or player_id not in session.players:
            return session

        del session.players[player_id]
        if not session.players:
            self._lobbies.pop(session.code, None)
            logger.info(f"[{session.code}] Last player left, lobby destroyed")
            return None

        if session.host_id == player_id:
            session.host_id = next(iter(session.players))
            logger.info(f"[{session.code}] Host {player_id} left, host is now {session.host_id}")
        else:
            logger.info(f"[{session.code}] {player_id} left ({len(session.players)} players)")
        return session

    def clear(self) -> None:
        self._lobbies.clear()
        self._membership.clear()

"""Domain errors raised by the registry and the round/voting engines.

The WebSocket hub turns these into `error` events for the requester, except
NotHost which it drops silently.
"""


class GameError(Exception):
    code = "GAME_ERROR"
    message = "Algo salió mal"

    def __init__(self, message: str = ""):
        super().__init__(message or self.message)
        self.message = message or self.message


class LobbyNotFound(GameError):
    code = "LOBBY_NOT_FOUND"
    message = "Lobby no encontrado"


class NotHost(GameError):
    code = "NOT_HOST"
    message = "Solo el anfitrión puede hacer eso."


class InsufficientPlayers(GameError):
    code = "INSUFFICIENT_PLAYERS"
    message = "Necesitas al menos 3 jugadores."


class PlayerEliminated(GameError):
    code = "PLAYER_ELIMINATED"
    message = "Estás eliminado, no puedes votar."


class InvalidTarget(GameError):
    code = "INVALID_TARGET"
    message = "Jugador no válido o eliminado."

import asyncio
import random
from typing import Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from main import app
from models.game import LobbySession, Player, RoundState, SpeakingSlot
from services.lobby_registry import LobbyRegistry
from services.topic_catalog import TopicCatalog, load_catalog


SMALL_CATALOG = {
    "topics": [
        {"name": "Animales", "words": ["perro", "gato", "loro"]},
        {"name": "Comida", "words": ["pizza", "taco"]},
    ],
    "aggregate": {
        "name": "Random",
        "extras": [{"hint": "Naturaleza", "words": ["playa", "bosque"]}],
    },
}


class FakeSocket:
    """Stands in for a starlette WebSocket in unit tests."""

    def __init__(self, connected: bool = True, fail: bool = False):
        state = WebSocketState.CONNECTED if connected else WebSocketState.DISCONNECTED
        self.client_state = state
        self.application_state = state
        self.fail = fail
        self.sent: List[dict] = []

    async def send_json(self, message: dict) -> None:
        if self.fail:
            raise RuntimeError("socket went away")
        self.sent.append(message)


class YieldingSocket(FakeSocket):
    """FakeSocket that hands control back to the event loop on every send."""

    async def send_json(self, message: dict) -> None:
        await asyncio.sleep(0)
        await super().send_json(message)


@pytest.fixture
def catalog() -> TopicCatalog:
    return TopicCatalog.from_dict(SMALL_CATALOG)


@pytest.fixture(scope="session")
def bundled_catalog() -> TopicCatalog:
    return load_catalog()


@pytest.fixture
def registry() -> LobbyRegistry:
    return LobbyRegistry()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def client():
    # Entering the context runs the lifespan, so every test gets a fresh registry
    with TestClient(app) as c:
        yield c


def make_session(names: Iterable[str], code: str = "ABC123") -> LobbySession:
    """Lobby whose players have ids equal to their names; the first one hosts."""
    names = list(names)
    return LobbySession(
        code=code,
        host_id=names[0],
        players={n: Player(id=n, name=n, connection=FakeSocket()) for n in names},
    )


def install_round(
    session: LobbySession,
    impostors: Iterable[str],
    order: Optional[Iterable[str]] = None,
) -> RoundState:
    """Put a round with a known impostor set and speaking order on the session."""
    order = list(order) if order is not None else list(session.players)
    session.round = RoundState(
        topic_name="Animales",
        secret="perro",
        hint="Animales",
        impostor_ids=set(impostors),
        speaking_order=[SpeakingSlot(id=pid, name=session.players[pid].name) for pid in order],
        alive_ids=set(order),
    )
    return session.round


def recv_until(ws, msg_type, max_messages=50):
    """Receive WS messages until we get the expected type."""
    for _ in range(max_messages):
        data = ws.receive_json()
        if data.get("type") == msg_type:
            return data
    raise TimeoutError(f"Never received {msg_type} after {max_messages} messages")


def collect_until(ws, msg_type, max_messages=50):
    """Like recv_until, but returns every message seen, the match included."""
    seen = []
    for _ in range(max_messages):
        data = ws.receive_json()
        seen.append(data)
        if data.get("type") == msg_type:
            return seen
    raise TimeoutError(f"Never received {msg_type} after {max_messages} messages")

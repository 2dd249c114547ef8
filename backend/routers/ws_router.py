"""
WebSocket Hub: real-time lobby and round protocol.

URL: /ws

Connection flow:
  1. Accept connection → issue an ephemeral player id
  2. Send private "hello" with the player id and the dataset summary
  3. Message loop: parse JSON envelope → routing table → handler
  4. On disconnect: remove the player from their lobby (host migration /
     teardown) and broadcast "lobbyUpdate" to whoever is left

Client → server message types (see models/messages.py):
  createLobby     open a new lobby with the sender as host
  joinLobby       join an existing lobby by code
  updateSettings  host changes topic / impostor count
  startGame       host starts a round (role assignment + speaking order)
  vote            cast or move a ballot in the open voting round
  cancelVote      withdraw the sender's ballot
  ping            keep-alive heartbeat → responds with "pong"

Every handler that touches an existing lobby runs under that lobby's
asyncio.Lock, sends included, so events for one lobby are processed one at a
time while other lobbies proceed independently. Malformed envelopes are
dropped without a reply.
"""
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from config import settings
from engine.errors import GameError, NotHost
from engine.round_engine import RoundAssignment, RoundEngine
from engine.voting_engine import Elimination, VoteOutcome, VotingEngine
from models.game import LobbySession
from models.messages import (
    MESSAGE_TYPES,
    CancelVoteMessage,
    CreateLobbyMessage,
    InboundMessage,
    JoinLobbyMessage,
    StartGameMessage,
    UpdateSettingsMessage,
    VoteMessage,
)
from services.lobby_registry import LobbyRegistry
from services.topic_catalog import TopicCatalog
from utils.ids import new_player_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


# ── Connection Manager ─────────────────────────────────────────────────────────

def _deliverable(ws: Any) -> bool:
    return (
        ws is not None
        and getattr(ws, "client_state", None) == WebSocketState.CONNECTED
        and getattr(ws, "application_state", None) == WebSocketState.CONNECTED
    )


class ConnectionManager:
    """
    Delivers events to lobby members through the connections held in each
    session's roster. Members whose socket is no longer open are skipped;
    a mid-broadcast disconnect is normal and never aborts the broadcast.
    """

    # ── Sending ────────────────────────────────────────────────────────────────

    async def send_direct(self, ws: Any, message: Dict) -> None:
        """Send to a connection that may not belong to any lobby yet."""
        if not _deliverable(ws):
            return
        try:
            await ws.send_json(message)
        except Exception as exc:
            logger.warning(f"send of '{message.get('type')}' failed: {exc}")

    async def send_to(
        self, session: LobbySession, player_id: str, message: Dict
    ) -> None:
        """Send a private message to a single lobby member."""
        player = session.players.get(player_id)
        if player is None or not _deliverable(player.connection):
            return
        try:
            await player.connection.send_json(message)
        except Exception as exc:
            logger.warning(
                f"[{session.code}] send_to {player_id} failed: {exc}"
            )

    async def broadcast(self, session: LobbySession, message: Dict) -> None:
        """Broadcast a message to all connected members of a lobby."""
        for pid, player in list(session.players.items()):
            if not _deliverable(player.connection):
                continue
            try:
                await player.connection.send_json(message)
            except Exception as exc:
                logger.warning(
                    f"[{session.code}] broadcast to {pid} failed: {exc}"
                )

    # ── High-level event helpers ───────────────────────────────────────────────

    async def send_hello(self, ws: Any, player_id: str, catalog: TopicCatalog) -> None:
        await self.send_direct(ws, {
            "type": "hello",
            "playerId": player_id,
            "dataset": catalog.summary(),
        })

    async def send_error(self, ws: Any, error: GameError) -> None:
        await self.send_direct(ws, {
            "type": "error",
            "message": error.message,
            "code": error.code,
        })

    async def send_lobby_joined(self, session: LobbySession, player_id: str) -> None:
        await self.send_to(session, player_id, {
            "type": "lobbyJoined",
            "lobby": session.to_public(),
            "isHost": session.is_host(player_id),
        })

    async def broadcast_lobby_update(self, session: LobbySession) -> None:
        await self.broadcast(session, {
            "type": "lobbyUpdate",
            "lobby": session.to_public(),
        })

    async def broadcast_round_start(
        self, session: LobbySession, assignment: RoundAssignment
    ) -> None:
        """
        Private role card to every player, then the public round summary.
        A round start is only complete once both have gone out.
        """
        for card in assignment.cards:
            message: Dict[str, Any] = {
                "type": "roundAssigned",
                "lobbyId": session.code,
                "isImpostor": card.is_impostor,
                "word": card.word,
                "theme": assignment.topic.name,
            }
            if card.secret_word is not None:
                message["secretWord"] = card.secret_word
            await self.send_to(session, card.player_id, message)

        order = [slot.model_dump() for slot in assignment.round.speaking_order]
        await self.broadcast(session, {
            "type": "roundStarted",
            "theme": assignment.topic.name,
            "impostorCount": assignment.impostor_count,
            "order": order,
            "alive": [slot["id"] for slot in order],
        })

    async def broadcast_vote_update(
        self, session: LobbySession, outcome: VoteOutcome
    ) -> None:
        await self.broadcast(session, {
            "type": "voteUpdate",
            "votes": outcome.votes,
            "votedCount": outcome.voted_count,
            "totalVoters": outcome.total_voters,
        })

    async def broadcast_elimination(
        self, session: LobbySession, elimination: Elimination
    ) -> None:
        """Elimination event followed by either gameEnd or votingReset."""
        await self.broadcast(session, {
            "type": "elimination",
            "eliminatedId": elimination.eliminated_id,
            "eliminatedName": elimination.eliminated_name,
            "votes": elimination.votes,
            "aliveIds": elimination.alive_ids,
            "order": elimination.order,
            "impostorsAlive": elimination.impostors_alive,
        })
        if elimination.result is not None:
            await self.broadcast(session, {
                "type": "gameEnd",
                "result": elimination.result.value,
            })
        else:
            await self.broadcast(session, {
                "type": "votingReset",
                "aliveIds": elimination.alive_ids,
                "order": elimination.order,
            })


# Stateless gateway: connections live in the session rosters
manager = ConnectionManager()


# ── Per-connection context ─────────────────────────────────────────────────────

@dataclass
class ClientContext:
    ws: WebSocket
    player_id: str
    registry: LobbyRegistry
    catalog: TopicCatalog
    round_engine: RoundEngine
    voting_engine: VotingEngine


@asynccontextmanager
async def _locked_lobby(ctx: ClientContext, code: str) -> AsyncIterator[Optional[LobbySession]]:
    """
    Hold the lobby's lock for the duration of the block.

    Yields None when the lobby does not exist, was torn down while we waited
    for the lock, or the sender is not one of its members.
    """
    session = ctx.registry.get(code)
    if session is None:
        yield None
        return
    async with session.lock:
        if ctx.registry.get(code) is not session or ctx.player_id not in session.players:
            yield None
        else:
            yield session


async def _leave_lobby(ctx: ClientContext, code: str) -> None:
    session = ctx.registry.get(code)
    if session is None:
        ctx.registry.remove_player(code, ctx.player_id)
        return
    async with session.lock:
        survivor = ctx.registry.remove_player(code, ctx.player_id)
        if survivor is not None:
            await manager.broadcast_lobby_update(survivor)


async def _leave_current_lobby(ctx: ClientContext, unless: Optional[str] = None) -> None:
    current = ctx.registry.lobby_of(ctx.player_id)
    if current is not None and current != unless:
        await _leave_lobby(ctx, current)


# ── Handlers ──────────────────────────────────────────────────────────────────

async def _on_create_lobby(ctx: ClientContext, msg: CreateLobbyMessage) -> None:
    await _leave_current_lobby(ctx)
    session = ctx.registry.create_lobby(
        ctx.ws,
        ctx.player_id,
        name=msg.name,
        topic_index=msg.topic_index,
        impostor_count=msg.impostor_count,
    )
    async with session.lock:
        await manager.send_lobby_joined(session, ctx.player_id)
        await manager.broadcast_lobby_update(session)


async def _on_join_lobby(ctx: ClientContext, msg: JoinLobbyMessage) -> None:
    target = ctx.registry.require(msg.lobby_id)
    await _leave_current_lobby(ctx, unless=target.code)
    async with target.lock:
        # Re-resolve: the lobby may have been torn down while we waited
        session = ctx.registry.join_lobby(msg.lobby_id, ctx.ws, ctx.player_id, name=msg.name)
        await manager.send_lobby_joined(session, ctx.player_id)
        await manager.broadcast_lobby_update(session)


async def _on_update_settings(ctx: ClientContext, msg: UpdateSettingsMessage) -> None:
    async with _locked_lobby(ctx, msg.lobby_id) as session:
        if session is None:
            return
        session.update_settings(
            ctx.player_id,
            topic_index=msg.topic_index,
            impostor_count=msg.impostor_count,
        )
        await manager.broadcast_lobby_update(session)


async def _on_start_game(ctx: ClientContext, msg: StartGameMessage) -> None:
    async with _locked_lobby(ctx, msg.lobby_id) as session:
        if session is None:
            return
        assignment = ctx.round_engine.start_round(
            session,
            ctx.player_id,
            topic_index=msg.topic_index,
            impostor_count=msg.impostor_count,
        )
        await manager.broadcast_round_start(session, assignment)


async def _on_vote(ctx: ClientContext, msg: VoteMessage) -> None:
    async with _locked_lobby(ctx, msg.lobby_id) as session:
        if session is None:
            return
        outcome = ctx.voting_engine.cast_vote(session, ctx.player_id, msg.target_id)
        if outcome is None:
            return
        await manager.broadcast_vote_update(session, outcome)
        if outcome.elimination is not None:
            await manager.broadcast_elimination(session, outcome.elimination)


async def _on_cancel_vote(ctx: ClientContext, msg: CancelVoteMessage) -> None:
    async with _locked_lobby(ctx, msg.lobby_id) as session:
        if session is None:
            return
        outcome = ctx.voting_engine.cancel_vote(session, ctx.player_id)
        if outcome is not None:
            await manager.broadcast_vote_update(session, outcome)


async def _on_ping(ctx: ClientContext, msg: InboundMessage) -> None:
    await manager.send_direct(ctx.ws, {"type": "pong"})


Handler = Callable[[ClientContext, Any], Awaitable[None]]

HANDLERS: Dict[str, Handler] = {
    "createLobby": _on_create_lobby,
    "joinLobby": _on_join_lobby,
    "updateSettings": _on_update_settings,
    "startGame": _on_start_game,
    "vote": _on_vote,
    "cancelVote": _on_cancel_vote,
    "ping": _on_ping,
}


# ── Message dispatcher ─────────────────────────────────────────────────────────

def parse_message(raw: Optional[str]) -> Optional[Tuple[str, InboundMessage]]:
    """
    Decode one frame into (type, typed message), or None if it is noise.

    Accepts flat envelopes ({type, lobbyId, ...}) and the nested
    {type, data: {...}} form.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    msg_type = data.get("type")
    model = MESSAGE_TYPES.get(msg_type) if isinstance(msg_type, str) else None
    if model is None:
        return None
    payload = data.get("data") if isinstance(data.get("data"), dict) else data
    try:
        return msg_type, model.model_validate(payload)
    except ValidationError:
        return None


async def _handle_message(ctx: ClientContext, raw: Optional[str]) -> None:
    parsed = parse_message(raw)
    if parsed is None:
        logger.debug("Dropped malformed message from %s: %.200r", ctx.player_id, raw)
        return
    msg_type, msg = parsed
    try:
        await HANDLERS[msg_type](ctx, msg)
    except WebSocketDisconnect:
        raise
    except NotHost:
        logger.debug("Ignored %s from non-host %s", msg_type, ctx.player_id)
    except GameError as exc:
        await manager.send_error(ctx.ws, exc)
    except Exception:
        logger.exception("Unhandled error in _handle_message (type=%s, player=%s)", msg_type, ctx.player_id)
        await manager.send_direct(ctx.ws, {
            "type": "error", "message": "Internal server error", "code": "SERVER_ERROR"
        })


# ── WebSocket endpoint ─────────────────────────────────────────────────────────

@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    state = ws.app.state
    await ws.accept()

    ctx = ClientContext(
        ws=ws,
        player_id=new_player_id(settings.player_id_length),
        registry=state.registry,
        catalog=state.catalog,
        round_engine=state.round_engine,
        voting_engine=state.voting_engine,
    )
    logger.debug("%s connected", ctx.player_id)
    await manager.send_hello(ws, ctx.player_id, ctx.catalog)

    # ── Message loop ───────────────────────────────────────────────────────────
    try:
        while True:
            frame = await ws.receive()
            if frame["type"] == "websocket.disconnect":
                break
            raw = frame.get("text")
            if raw is None and frame.get("bytes") is not None:
                raw = frame["bytes"].decode("utf-8", errors="replace")
            await _handle_message(ctx, raw)
    except WebSocketDisconnect:
        pass
    finally:
        code = ctx.registry.lobby_of(ctx.player_id)
        if code is not None:
            await _leave_lobby(ctx, code)
        logger.debug("%s disconnected", ctx.player_id)

"""
Read-only HTTP endpoints. All game actions go over the WebSocket.

Routes:
  GET /api/topics               Dataset summary (topic names + word counts)
  GET /api/lobbies/{code}       Public lobby summary (no roles, no words)
"""
import logging

from fastapi import APIRouter, HTTPException, Request

logger = logging.getLogger(__name__)

router = APIRouter(tags=["lobbies"])


@router.get("/topics")
async def list_topics(request: Request):
    """Topic names and word counts, same shape as the WebSocket hello."""
    return {"topics": request.app.state.catalog.summary()}


@router.get("/lobbies/{code}")
async def get_lobby(code: str, request: Request):
    """
    Public lobby state.
    Roles and the secret are never included; those go out privately over WebSocket.
    """
    session = request.app.state.registry.get(code)
    if session is None:
        raise HTTPException(status_code=404, detail="Lobby not found")

    summary = session.to_public()
    summary["playerCount"] = len(session.players)
    summary["inRound"] = session.round is not None and session.round.result is None
    return summary

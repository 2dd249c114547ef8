import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from config import settings
from engine.round_engine import RoundEngine
from engine.voting_engine import VotingEngine
from services.lobby_registry import LobbyRegistry
from services.topic_catalog import load_catalog

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Impostor backend starting up...")
    catalog = load_catalog(settings.catalog_path)
    app.state.catalog = catalog
    app.state.registry = LobbyRegistry(code_length=settings.lobby_code_length)
    app.state.round_engine = RoundEngine(
        catalog,
        min_players=settings.min_players,
        reveal_secret_to_impostors=settings.reveal_secret_to_impostors,
    )
    app.state.voting_engine = VotingEngine(tie_break=settings.tie_break)
    yield
    logger.info("Backend shutting down (%d open lobbies dropped).", len(app.state.registry))
    app.state.registry.clear()


app = FastAPI(
    title="Impostor",
    version="0.1.0",
    description="Real-time social deduction word game: find the impostor who doesn't know the secret word",
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "impostor", "version": "0.1.0"}


from routers.game_router import router as game_router
from routers.ws_router import router as ws_router

app.include_router(game_router, prefix="/api")
app.include_router(ws_router)


# Serve the compiled frontend when it has been built next to the backend
_frontend_dist = os.path.abspath(
    os.path.join(os.path.dirname(__file__), "..", "frontend", "dist")
)
if os.path.isdir(_frontend_dist):
    app.mount("/", StaticFiles(directory=_frontend_dist, html=True), name="static")
    logger.info(f"Serving frontend from {_frontend_dist}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.environ.get("PORT", 3001)), reload=settings.debug)

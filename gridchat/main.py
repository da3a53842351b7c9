"""
Grid Chat: FastAPI application entry-point.

Run with:
    uvicorn gridchat.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from gridchat.config import settings
from gridchat.database import async_session, create_tables
from gridchat.errors import register_error_handlers
from gridchat.services.broadcast import BroadcastChannel
from gridchat.services.connections import ConnectionManager
from gridchat.services.room_registry import RoomRegistry

# ── Import routers ──
from gridchat.routers import chat, live, notifications

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: tables, general room, live registry ──
@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    async with async_session() as db:
        general = await RoomRegistry(db).ensure_general()
    logger.info("General chat room: %s", general.id)

    app.state.channel = BroadcastChannel()
    app.state.connections = ConnectionManager(app.state.channel)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    description="Real-time chat for the racing club: rooms, history and live delivery.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=("*",))
register_error_handlers(app)

# ── Register API routers ──
app.include_router(chat.router)
app.include_router(notifications.router)
app.include_router(live.router)


@app.get("/health")
async def health():
    connections: ConnectionManager = app.state.connections
    return {
        "status": "ok",
        "liveConnections": connections.active_count,
        "activeRooms": len(connections.channel.rooms),
    }

# chatroom/main.py

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatroom.core import state
from chatroom.core.logging import setup_logging, get_logger
from chatroom.api.routes import root, health, metrics, messages
from chatroom.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="Lobby Chat")

# CORS (relaxed for now – tighten in prod)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(root.router)
app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(messages.router)

# WebSocket routes
app.include_router(websocket_module.router)


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Application starting - Lobby Chat")
    await state.init_state()


@app.on_event("shutdown")
async def on_shutdown():
    await state.shutdown_state()
    logger.info("Application stopped")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("chatroom.main:app", host="0.0.0.0", port=8000)

# ============================================================================
# END OF FILE
# ============================================================================

# babelchat/main.py

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from babelchat.api import websocket as websocket_module
from babelchat.api.routes import health, messages, profiles, rooms, root, translate
from babelchat.core import state
from babelchat.core.config import settings
from babelchat.core.logging import get_logger, setup_logging

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="BabelChat - Realtime Multilingual Chat")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(root.router)
app.include_router(health.router)
app.include_router(profiles.router)
app.include_router(rooms.router)
app.include_router(messages.router)
app.include_router(translate.router)

# WebSocket routes
app.include_router(websocket_module.router)


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Application starting - channel backend: %s", settings.CHANNEL_BACKEND)
    await state.init()


@app.on_event("shutdown")
async def on_shutdown():
    await state.shutdown()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("babelchat.main:app", host="0.0.0.0", port=8000)

# ============================================================================
# END OF FILE
# ============================================================================

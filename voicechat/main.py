"""
Application entry point.
Wires together all components and registers routes.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from voicechat.config import get_settings
from voicechat.core.logging import configure_logging, get_logger
from voicechat.gateway.websocket_handler import WebSocketHandler

# ── Bootstrap logging before anything else ────────────────────────────────────
configure_logging()
logger = get_logger(__name__)

settings = get_settings()
ws_handler = WebSocketHandler(settings=settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Voice chat backend started",
        extra={
            "default_provider": settings.default_provider,
            "speech_input_engine": settings.speech_input_engine,
            "speech_output_engine": settings.speech_output_engine,
        },
    )
    yield
    logger.info("Voice chat backend shut down")


app = FastAPI(
    title="Voice Chat Backend",
    description="Text and voice chat with Gemini or OpenAI, with optional image analysis",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict in production
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.websocket("/ws/chat")
async def chat_endpoint(websocket: WebSocket):
    await ws_handler.handle(websocket)


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "active_chats": ws_handler.active_connections,
        "default_provider": settings.default_provider,
    }


@app.get("/")
async def root():
    return {"message": "Voice chat backend running. Connect via WebSocket at /ws/chat"}

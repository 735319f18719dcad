"""Application factory for the FastAPI service."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from starlette.datastructures import Headers

from .config import get_settings
from .routers.auth import router as auth_router
from .routers.tts import router as tts_router
from .routers.voices import router as voices_router
from .services.edge_upstream import EdgeUpstreamClient
from .services.password_gate import PasswordGate
from .services.voice_catalog import VoiceCatalog

# Preflight responses may be cached by browsers for a day
PREFLIGHT_MAX_AGE = 86400
CORS_METHODS = ["GET", "POST", "OPTIONS"]
CORS_HEADERS = ["Content-Type"]

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": ", ".join(CORS_METHODS),
    "Access-Control-Allow-Headers": ", ".join(CORS_HEADERS),
    "Access-Control-Max-Age": str(PREFLIGHT_MAX_AGE),
}


class PreflightCORSMiddleware(CORSMiddleware):
    """CORS middleware whose accepted preflights are empty 204 responses."""

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response
        headers = {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in ("content-length", "content-type")
        }
        return Response(status_code=204, headers=headers)


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []
    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("tts_gateway").setLevel(log_level)
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(log_level)

    # Upstream request lines are only interesting while debugging
    quiet_level = log_level if log_level <= logging.DEBUG else logging.WARNING
    logging.getLogger("httpx").setLevel(quiet_level)
    logging.getLogger("httpcore").setLevel(quiet_level)


def create_app() -> FastAPI:
    _configure_logging()

    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            await EdgeUpstreamClient.aclose_shared()

    app = FastAPI(
        title="TTS Gateway",
        version="0.1.0",
        description="Text-to-speech proxy with voice catalog and password gate.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.edge_upstream = EdgeUpstreamClient(settings)
    app.state.voice_catalog = VoiceCatalog(settings)
    app.state.password_gate = PasswordGate(settings.password_value)

    app.add_middleware(
        PreflightCORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        max_age=PREFLIGHT_MAX_AGE,
    )

    app.include_router(tts_router)
    app.include_router(voices_router)
    app.include_router(auth_router)

    @app.options("/api/{path:path}", include_in_schema=False)
    async def preflight(path: str) -> Response:
        return Response(status_code=204, headers=_CORS_HEADERS)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | bool]:
        return {
            "status": "ok",
            "voices_source": settings.voices_source,
            "password_required": app.state.password_gate.check_required(),
        }

    return app


__all__ = ["create_app"]

"""Proxy route forwarding one synthesis request to the Edge upstream."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response
from pydantic import ValidationError

from ..errors import UpstreamError
from ..schemas.tts import TTSRequestPayload
from ..services.edge_upstream import EdgeUpstreamClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["tts"])


def get_edge_upstream(request: Request) -> EdgeUpstreamClient:
    client = getattr(request.app.state, "edge_upstream", None)
    if client is None:  # pragma: no cover - defensive
        raise RuntimeError("Edge upstream client is not configured")
    return client


async def _parse_payload(request: Request) -> TTSRequestPayload:
    raw = await request.body()
    try:
        body = json.loads(raw or b"null")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be valid JSON",
        ) from exc
    if not isinstance(body, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be a JSON object",
        )
    if not body.get("text") or not body.get("voice"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required parameters: text and voice",
        )
    try:
        return TTSRequestPayload.model_validate(body)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc.errors()[0].get("msg", "Invalid request")),
        ) from exc


@router.post("/tts")
async def synthesize(
    request: Request,
    upstream: EdgeUpstreamClient = Depends(get_edge_upstream),
) -> Response:
    payload = await _parse_payload(request)
    logger.info("TTS request: voice=%s chars=%d", payload.voice, len(payload.text))

    try:
        audio = await upstream.synthesize(payload)
    except UpstreamError as exc:
        logger.error("TTS upstream failed: %s", exc.detail)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"TTS request failed: {exc.detail}",
        ) from exc

    return Response(content=audio, media_type="audio/mpeg")


__all__ = ["router", "get_edge_upstream"]

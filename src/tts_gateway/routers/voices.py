"""Voice catalog route."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from ..services.voice_catalog import (
    VoiceCatalog,
    VoiceCatalogError,
    filter_voices,
    format_catalog,
)

router = APIRouter(prefix="/api", tags=["voices"])


def get_voice_catalog(request: Request) -> VoiceCatalog:
    catalog = getattr(request.app.state, "voice_catalog", None)
    if catalog is None:  # pragma: no cover - defensive
        raise RuntimeError("Voice catalog is not configured")
    return catalog


@router.get("/voices")
async def list_voices(
    l: Optional[str] = Query(default=None, description="Locale filter"),  # noqa: E741
    f: Optional[str] = Query(default=None, description="Output format"),
    catalog: VoiceCatalog = Depends(get_voice_catalog),
) -> Response:
    try:
        voices = await catalog.list_voices()
    except VoiceCatalogError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to load voice list: {exc.detail}",
        ) from exc

    formatted = format_catalog(filter_voices(voices, l), f)
    if isinstance(formatted, str):
        return PlainTextResponse(formatted)
    return JSONResponse(formatted)


__all__ = ["router", "get_voice_catalog"]

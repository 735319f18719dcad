"""Password gate routes."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from ..schemas.auth import PasswordRequirement, PasswordVerification
from ..services.password_gate import PasswordGate

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["auth"])


def get_password_gate(request: Request) -> PasswordGate:
    gate = getattr(request.app.state, "password_gate", None)
    if gate is None:  # pragma: no cover - defensive
        raise RuntimeError("Password gate is not configured")
    return gate


def _verification(status_code: int, valid: bool, error: str | None = None) -> JSONResponse:
    body = PasswordVerification(valid=valid, error=error)
    return JSONResponse(body.model_dump(exclude_none=True), status_code=status_code)


@router.get("/check-password", response_model=PasswordRequirement)
async def check_password(
    gate: PasswordGate = Depends(get_password_gate),
) -> PasswordRequirement:
    return PasswordRequirement(require_password=gate.check_required())


@router.post("/verify-password")
async def verify_password(
    request: Request,
    gate: PasswordGate = Depends(get_password_gate),
) -> JSONResponse:
    try:
        body = json.loads(await request.body() or b"null")
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _verification(status.HTTP_400_BAD_REQUEST, False, "Invalid request body")

    password = body.get("password") if isinstance(body, dict) else None
    if not isinstance(password, str) or not password:
        return _verification(status.HTTP_400_BAD_REQUEST, False, "Password is required")

    if gate.verify(password):
        return _verification(status.HTTP_200_OK, True)

    logger.info("Rejected password attempt")
    return _verification(status.HTTP_401_UNAUTHORIZED, False, "Invalid password")


__all__ = ["router", "get_password_gate"]

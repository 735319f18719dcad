"""Password gate response payloads."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PasswordRequirement(BaseModel):
    require_password: bool = Field(alias="requirePassword")

    model_config = ConfigDict(populate_by_name=True)


class PasswordVerification(BaseModel):
    valid: bool
    error: Optional[str] = None

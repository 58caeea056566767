from __future__ import annotations

from pydantic import BaseModel, Field


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    lifetime_total: float = 0.0
    is_admin: bool = False


class SettingsUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)

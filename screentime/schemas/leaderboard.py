"""Pydantic schemas for submissions and leaderboard snapshots."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, Field, field_validator

from ..services.aggregator import RankMode, SortOrder


class ScreenTimeSubmit(BaseModel):
    # strict: JSON booleans and numeric strings are rejected, ints still pass
    minutes: Annotated[float, Field(strict=True)]

    @field_validator("minutes")
    @classmethod
    def finite_minutes(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("minutes must be a finite number")
        return value

    model_config = {"json_schema_extra": {"example": {"minutes": 45}}}


class SubmitOut(BaseModel):
    week_id: str
    week_start: datetime
    weekly_minutes: float
    lifetime_total: float


class LeaderboardEntryOut(BaseModel):
    rank: int
    user_id: str
    name: str
    minutes: float


class LeaderboardOut(BaseModel):
    mode: RankMode
    order: SortOrder
    week_id: Optional[str] = None
    week_start: Optional[datetime] = None
    generated_at: datetime
    entries: list[LeaderboardEntryOut]

    @classmethod
    def from_snapshot(cls, snapshot) -> "LeaderboardOut":
        return cls(
            mode=snapshot.mode,
            order=snapshot.order,
            week_id=snapshot.week_id,
            week_start=snapshot.week_start,
            generated_at=snapshot.generated_at,
            entries=[LeaderboardEntryOut(**vars(entry)) for entry in snapshot.entries],
        )


class ResetOut(BaseModel):
    status: str = "reset"
    deleted_records: int
    reset_profiles: int

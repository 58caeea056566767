"""Process-wide service instances, overridable through ``app.dependency_overrides``."""

from __future__ import annotations

from functools import lru_cache

from ..db.session import SessionLocal
from ..services.aggregator import Aggregator
from ..services.identity import IdentityService


@lru_cache(maxsize=1)
def get_identity() -> IdentityService:
    return IdentityService(SessionLocal)


@lru_cache(maxsize=1)
def get_aggregator() -> Aggregator:
    return Aggregator(SessionLocal, identity=get_identity())

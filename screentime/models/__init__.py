"""Importing this package registers every table with ``Base.metadata``."""

from __future__ import annotations

from .account import Account
from .revoked_token import RevokedToken
from .user import UserProfile
from .weekly_record import WeeklyRecord

__all__ = ["Account", "RevokedToken", "UserProfile", "WeeklyRecord"]

from datetime import datetime

from pydantic import BaseModel, Field


class User(BaseModel):
    """Point balance owner. Accounts are created elsewhere; postbacks only move balances."""
    id: str
    points: int = 0  # may dip below zero after a reversal
    lifetime_points: int = 0
    last_active_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

from datetime import datetime

from pydantic import BaseModel, Field


class ProviderAccount(BaseModel):
    """Provider player id -> user id, plus per-provider conversion stats."""
    provider: str
    player_id: str
    user_id: str
    total_earnings: float = 0  # payout units, not points
    total_conversions: int = 0
    total_reversals: int = 0
    last_conversion_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def key(self) -> str:
        return account_key(self.provider, self.player_id)


def account_key(provider: str, player_id: str) -> str:
    return f"{provider}:{player_id}"

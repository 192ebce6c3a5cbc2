from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class TransactionStatus(str, Enum):
    PENDING = "pending"  # received, user not resolved
    COMPLETED = "completed"
    REVERSED = "reversed"
    FRAUD = "fraud"


REVERSED_STATUSES = (TransactionStatus.REVERSED, TransactionStatus.FRAUD)


class PostbackTransaction(BaseModel):
    """One record per (provider, transaction id): the dedup key and the audit trail of a conversion."""
    provider: str
    transaction_id: str
    user_id: str | None = None
    player_id: str | None = None
    offer_id: str | None = None
    offer_name: str | None = None
    payout: float = 0
    points: int = 0
    status: TransactionStatus = TransactionStatus.COMPLETED
    created_at: datetime = Field(default_factory=datetime.utcnow)
    reversed_at: datetime | None = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)
    reversal_payload: dict[str, Any] | None = None

    @property
    def key(self) -> str:
        return transaction_key(self.provider, self.transaction_id)


def transaction_key(provider: str, transaction_id: str) -> str:
    return f"{provider}:{transaction_id}"
